"""Demo records for a fresh database."""

from __future__ import annotations

from datetime import date, timedelta

from clinic_scheduler.services.database import db, fetch_one
from clinic_scheduler.services.doctors import create_doctor
from clinic_scheduler.services.patients import create_patient
from clinic_scheduler.services.rooms import create_room
from clinic_scheduler.services.specializations import create_specialization
from clinic_scheduler.services.treatments import create_treatment


def _weekdays(start: str, end: str, friday_end: str) -> dict[str, dict]:
    days: dict[str, dict] = {
        name: {"is_working": True, "hours": {"start": start, "end": end}}
        for name in ("monday", "tuesday", "wednesday", "thursday")
    }
    days["friday"] = {"is_working": True, "hours": {"start": start, "end": friday_end}}
    days["saturday"] = {"is_working": False}
    days["sunday"] = {"is_working": False}
    return days


def first_monday_of_next_month(today: date) -> date:
    day = date(today.year + (today.month // 12), today.month % 12 + 1, 1)
    return day + timedelta(days=(7 - day.weekday()) % 7)


def seed_demo(today: date | None = None) -> dict[str, int]:
    """Insert the demo catalogue; returns counts, or zeros when doctors already exist."""

    conn = db()
    try:
        if fetch_one(conn, "SELECT 1 FROM doctors LIMIT 1") is not None:
            return {"specializations": 0, "doctors": 0, "patients": 0, "treatments": 0, "rooms": 0}
    finally:
        conn.close()

    dermatology = create_specialization(
        {"name": "Dermatology", "description": "Diagnosis and treatment of skin conditions"}
    )
    cosmetic = create_specialization(
        {"name": "Cosmetic Surgery", "description": "Surgical procedures to enhance appearance"}
    )
    vacation = first_monday_of_next_month(today or date.today())
    create_doctor(
        {
            "first_name": "John",
            "last_name": "Doe",
            "email": "johndoe@clinic.example",
            "phone": "+48123456789",
            "specializations": [dermatology["id"]],
            "working_days": _weekdays("09:00", "17:00", "15:00"),
            "working_days_exceptions": [{"date": vacation.isoformat(), "is_working": False}],
        }
    )
    create_doctor(
        {
            "first_name": "Jane",
            "last_name": "Smith",
            "email": "janesmith@clinic.example",
            "phone": "+48123456790",
            "specializations": [cosmetic["id"], dermatology["id"]],
            "working_days": _weekdays("10:00", "18:00", "16:00"),
        }
    )
    create_patient(
        {
            "first_name": "Alice",
            "last_name": "Smith",
            "phone": "+48987654321",
            "email": "alice.smith@example.com",
            "birth_date": "1990-05-15",
            "gender": "female",
            "address": {"street": "Kwiatowa 1", "city": "Warsaw", "postal_code": "00-001"},
        }
    )
    create_patient(
        {
            "first_name": "Bob",
            "last_name": "Johnson",
            "phone": "+48987654322",
            "email": "bob.johnson@example.com",
            "birth_date": "1985-08-22",
            "gender": "male",
            "address": {"street": "Polna 15", "city": "Warsaw", "postal_code": "00-002"},
        }
    )
    for name, description, duration, price in (
        ("Botox Injection", "Facial wrinkle reduction treatment", 30, 1500),
        ("Dermal Fillers", "Injectable treatment to restore volume", 45, 2000),
        ("Chemical Peel", "Skin resurfacing treatment", 60, 800),
    ):
        create_treatment(
            {
                "name": name,
                "description": description,
                "duration": duration,
                "price": price,
                "specialization_id": dermatology["id"],
            }
        )
    create_room({"name": "Room 101", "specializations": [dermatology["id"]]})
    create_room({"name": "Room 102", "specializations": [cosmetic["id"], dermatology["id"]]})
    return {"specializations": 2, "doctors": 2, "patients": 2, "treatments": 3, "rooms": 2}
