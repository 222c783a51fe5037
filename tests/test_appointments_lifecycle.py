import threading

import pytest

from clinic_scheduler.services.appointments import (
    AppointmentConflict,
    InvalidTransition,
    InvalidWindow,
    OutsideWorkingHours,
    create_appointment,
    delete_appointment,
    get_appointment,
    list_appointments,
    preview_conflicts,
    update_appointment,
    update_payment_status,
    update_status,
)
from clinic_scheduler.services.database import db
from clinic_scheduler.services.errors import NotFound, ValidationFailed
from clinic_scheduler.services.slots import slots_for_doctor

from conftest import MONDAY, NEXT_MONDAY, SATURDAY


def _count(table: str) -> int:
    conn = db()
    try:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
    finally:
        conn.close()


def test_booking_inside_working_hours(booking):
    appt = create_appointment(booking(starts_at=f"{MONDAY}T09:00", ends_at=f"{MONDAY}T09:30"))
    assert appt["status"] == "booked"
    assert appt["payment_status"] == "unpaid"
    assert appt["starts_at"] == f"{MONDAY}T09:00:00"
    assert appt["ends_at"] == f"{MONDAY}T09:30:00"
    assert appt["duration_minutes"] == 30
    assert appt["doctor_name"] == "John Doe"
    assert appt["room_name"] == "Room 101"


def test_overlapping_booking_reports_doctor_and_room(booking, clinic):
    first = create_appointment(booking(starts_at=f"{MONDAY}T09:00", ends_at=f"{MONDAY}T09:30"))
    with pytest.raises(AppointmentConflict) as excinfo:
        create_appointment(
            booking(
                patient_id=clinic["other_patient_id"],
                starts_at=f"{MONDAY}T09:15",
                ends_at=f"{MONDAY}T09:45",
            )
        )
    conflicts = excinfo.value.to_dict()["conflicts"]
    assert {(item["type"], item["appointment_id"]) for item in conflicts} == {
        ("doctor", first["id"]),
        ("room", first["id"]),
    }
    assert excinfo.value.status_code == 409
    assert _count("appointments") == 1


def test_saturday_is_outside_working_hours(booking):
    with pytest.raises(OutsideWorkingHours) as excinfo:
        create_appointment(booking(starts_at=f"{SATURDAY}T10:00", ends_at=f"{SATURDAY}T10:30"))
    assert excinfo.value.to_dict() == {"error": "outside_working_hours", "weekday": "saturday"}


def test_exception_day_reports_date(booking):
    with pytest.raises(OutsideWorkingHours) as excinfo:
        create_appointment(booking(starts_at=f"{NEXT_MONDAY}T10:00", ends_at=f"{NEXT_MONDAY}T10:30"))
    assert excinfo.value.to_dict()["date"] == NEXT_MONDAY


def test_partially_outside_window_rejected(booking):
    with pytest.raises(OutsideWorkingHours):
        create_appointment(booking(starts_at=f"{MONDAY}T16:45", ends_at=f"{MONDAY}T17:15"))
    with pytest.raises(OutsideWorkingHours):
        create_appointment(booking(starts_at=f"{MONDAY}T08:45", ends_at=f"{MONDAY}T09:15"))


def test_unchanged_time_update_does_not_conflict_with_itself(booking):
    appt = create_appointment(booking(starts_at=f"{MONDAY}T09:00", ends_at=f"{MONDAY}T09:30"))
    updated = update_appointment(
        appt["id"], {"starts_at": f"{MONDAY}T09:00", "ends_at": f"{MONDAY}T09:30", "note": "follow-up"}
    )
    assert updated["note"] == "follow-up"
    moved = update_appointment(appt["id"], {"ends_at": f"{MONDAY}T09:45"})
    assert moved["ends_at"] == f"{MONDAY}T09:45:00"


def test_empty_window_rejected_before_store_access(booking, monkeypatch):
    import clinic_scheduler.services.appointments as appointments

    def _no_store():
        raise AssertionError("store touched")

    monkeypatch.setattr(appointments, "db", _no_store)
    with pytest.raises(InvalidWindow):
        create_appointment(booking(starts_at=f"{MONDAY}T10:00", ends_at=f"{MONDAY}T10:00"))
    with pytest.raises(InvalidWindow):
        create_appointment(booking(starts_at=f"{MONDAY}T10:00", ends_at=f"{MONDAY}T09:00"))


def test_unknown_references_raise_not_found(booking):
    for field_name in ("doctor_id", "patient_id", "treatment_id", "room_id"):
        with pytest.raises(NotFound):
            create_appointment(booking(**{field_name: "missing"}))
    assert _count("appointments") == 0


def test_seconds_in_booking_times_rejected(booking):
    with pytest.raises(ValidationFailed) as excinfo:
        create_appointment(booking(starts_at=f"{MONDAY}T16:30", ends_at=f"{MONDAY}T17:00:45"))
    assert str(excinfo.value) == "ends_at_minute_precision"
    assert excinfo.value.field == "ends_at"
    assert _count("appointments") == 0

    appt = create_appointment(booking(starts_at=f"{MONDAY}T16:30:00", ends_at=f"{MONDAY}T17:00:00"))
    with pytest.raises(ValidationFailed) as patched:
        update_appointment(appt["id"], {"starts_at": f"{MONDAY}T16:15:30"})
    assert str(patched.value) == "starts_at_minute_precision"
    assert get_appointment(appt["id"])["starts_at"] == f"{MONDAY}T16:30:00"


def test_missing_fields_are_validation_errors(booking):
    with pytest.raises(ValidationFailed) as excinfo:
        create_appointment(booking(room_id=""))
    assert excinfo.value.field == "room_id"
    with pytest.raises(ValidationFailed):
        create_appointment(booking(starts_at="tomorrow"))


def test_ends_at_and_price_derived_from_treatment(booking):
    payload = booking()
    payload.pop("ends_at")
    appt = create_appointment(payload)
    assert appt["ends_at"] == f"{MONDAY}T10:30:00"
    assert appt["price_cents"] == 8000
    assert appt["price"] == "80.00"
    custom = create_appointment(booking(starts_at=f"{MONDAY}T11:00", ends_at=f"{MONDAY}T11:30", price="65.5"))
    assert custom["price_cents"] == 6550
    explicit = create_appointment(
        booking(starts_at=f"{MONDAY}T12:00", ends_at=f"{MONDAY}T12:30", price_cents=0, payment_status="paid")
    )
    assert explicit["price_cents"] == 0
    assert explicit["payment_status"] == "paid"


def test_negative_price_rejected(booking):
    with pytest.raises(ValidationFailed):
        create_appointment(booking(price_cents=-1))


def test_failed_reschedule_leaves_row_unchanged(booking, clinic):
    first = create_appointment(booking(starts_at=f"{MONDAY}T09:00", ends_at=f"{MONDAY}T09:30"))
    second = create_appointment(
        booking(
            patient_id=clinic["other_patient_id"],
            room_id=clinic["other_room_id"],
            starts_at=f"{MONDAY}T10:00",
            ends_at=f"{MONDAY}T10:30",
        )
    )
    with pytest.raises(AppointmentConflict):
        update_appointment(second["id"], {"starts_at": f"{MONDAY}T09:15", "note": "moved"})
    with pytest.raises(OutsideWorkingHours):
        update_appointment(second["id"], {"starts_at": f"{SATURDAY}T10:00", "ends_at": f"{SATURDAY}T10:30"})
    with pytest.raises(InvalidWindow):
        update_appointment(second["id"], {"ends_at": f"{MONDAY}T09:59"})
    assert get_appointment(second["id"]) == second
    assert get_appointment(first["id"]) == first


def test_reference_fields_cannot_be_patched(booking, clinic):
    appt = create_appointment(booking())
    with pytest.raises(ValidationFailed) as excinfo:
        update_appointment(appt["id"], {"doctor_id": clinic["other_doctor_id"]})
    assert str(excinfo.value) == "field_not_updatable"


def test_status_transitions(booking):
    appt = create_appointment(booking())
    assert update_status(appt["id"], "ongoing")["status"] == "ongoing"
    with pytest.raises(InvalidTransition) as excinfo:
        update_status(appt["id"], "booked")
    assert excinfo.value.to_dict() == {"error": "invalid_transition", "from": "ongoing", "to": "booked"}
    assert update_status(appt["id"], "canceled")["status"] == "canceled"
    with pytest.raises(InvalidTransition):
        update_status(appt["id"], "ongoing")
    # Same status is a no-op.
    assert update_status(appt["id"], "canceled")["status"] == "canceled"
    with pytest.raises(ValidationFailed):
        update_status(appt["id"], "done")


def test_canceled_slot_can_be_rebooked(booking, clinic):
    appt = create_appointment(booking())
    update_status(appt["id"], "canceled")
    again = create_appointment(booking(patient_id=clinic["other_patient_id"]))
    assert again["status"] == "booked"


def test_payment_status_toggle(booking):
    appt = create_appointment(booking())
    assert update_payment_status(appt["id"], "paid")["payment_status"] == "paid"
    assert update_payment_status(appt["id"], "UNPAID")["payment_status"] == "unpaid"
    with pytest.raises(ValidationFailed):
        update_payment_status(appt["id"], "maybe")
    with pytest.raises(ValidationFailed):
        update_payment_status(appt["id"], "")


def test_missing_appointment(app_ctx):
    with pytest.raises(NotFound):
        get_appointment("nope")
    with pytest.raises(NotFound):
        update_appointment("nope", {"note": "x"})
    with pytest.raises(NotFound):
        delete_appointment("nope")


def test_delete_is_hard_and_audited(booking):
    appt = create_appointment(booking(), actor_id=None)
    delete_appointment(appt["id"])
    with pytest.raises(NotFound):
        get_appointment(appt["id"])
    conn = db()
    try:
        actions = [row[0] for row in conn.execute("SELECT action FROM audit_log ORDER BY id")]
    finally:
        conn.close()
    assert actions == ["appointment_create", "appointment_delete"]


def test_list_filters(booking, clinic):
    early = create_appointment(booking(starts_at=f"{MONDAY}T09:00", ends_at=f"{MONDAY}T09:30"))
    late = create_appointment(
        booking(
            doctor_id=clinic["other_doctor_id"],
            patient_id=clinic["other_patient_id"],
            room_id=clinic["other_room_id"],
            starts_at="2030-01-08T15:00",
            ends_at="2030-01-08T15:30",
        )
    )
    update_status(late["id"], "canceled")

    assert [a["id"] for a in list_appointments()] == [early["id"], late["id"]]
    assert [a["id"] for a in list_appointments({"end_date": MONDAY})] == [early["id"]]
    assert [a["id"] for a in list_appointments({"start_date": "2030-01-08"})] == [late["id"]]
    assert [a["id"] for a in list_appointments({"end_date": "2030-01-08"})] == [early["id"], late["id"]]
    assert [a["id"] for a in list_appointments({"end_date": "2030-01-08T15:00"})] == [early["id"], late["id"]]
    assert [a["id"] for a in list_appointments({"end_date": "2030-01-08T14:59"})] == [early["id"]]
    assert [a["id"] for a in list_appointments({"doctor_id": clinic["doctor_id"]})] == [early["id"]]
    assert [a["id"] for a in list_appointments({"patient_id": clinic["other_patient_id"]})] == [late["id"]]
    assert [a["id"] for a in list_appointments({"status": "canceled"})] == [late["id"]]
    assert list_appointments({"doctor_id": clinic["doctor_id"], "status": "canceled"}) == []
    with pytest.raises(ValidationFailed):
        list_appointments({"status": "later"})
    with pytest.raises(ValidationFailed):
        list_appointments({"start_date": "2030-13-01"})


def test_offered_slots_always_book(booking, clinic):
    create_appointment(booking(starts_at=f"{MONDAY}T10:00", ends_at=f"{MONDAY}T11:00"))
    create_appointment(
        booking(
            doctor_id=clinic["other_doctor_id"],
            patient_id=clinic["other_patient_id"],
            starts_at=f"{MONDAY}T13:00",
            ends_at=f"{MONDAY}T14:00",
        )
    )
    offered = slots_for_doctor(
        clinic["doctor_id"], MONDAY, 45, room_id=clinic["room_id"], patient_id=clinic["patient_id"]
    )["slots"]
    assert f"{MONDAY}T10:00:00" not in offered
    assert f"{MONDAY}T12:30:00" not in offered
    for start in offered[::4]:
        appt = create_appointment(booking(starts_at=start, ends_at=_plus(start, 45)))
        update_status(appt["id"], "canceled")


def test_no_double_booking_after_many_writes(booking, clinic):
    starts = ["09:00", "09:20", "09:40", "10:00", "10:10", "10:30", "11:00", "10:45"]
    for hhmm in starts:
        try:
            create_appointment(booking(starts_at=f"{MONDAY}T{hhmm}", ends_at=_plus(f"{MONDAY}T{hhmm}:00", 30)))
        except AppointmentConflict:
            pass
    booked = [a for a in list_appointments({"doctor_id": clinic["doctor_id"]}) if a["status"] != "canceled"]
    for i, a in enumerate(booked):
        for b in booked[i + 1 :]:
            assert not (a["starts_at"] < b["ends_at"] and b["starts_at"] < a["ends_at"])


def test_concurrent_bookings_for_one_slot_admit_one(app, booking):
    payload = booking(starts_at=f"{MONDAY}T09:00", ends_at=f"{MONDAY}T09:30")
    workers = 6
    barrier = threading.Barrier(workers)
    outcomes: list[str] = []
    lock = threading.Lock()

    def _book():
        with app.app_context():
            barrier.wait()
            try:
                create_appointment(payload)
                result = "ok"
            except AppointmentConflict:
                result = "conflict"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=_book) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes) == ["conflict"] * (workers - 1) + ["ok"]
    assert _count("appointments") == 1


def test_preview_conflicts_is_read_only(booking, clinic):
    first = create_appointment(booking())
    preview = preview_conflicts(
        {
            "doctor_id": clinic["doctor_id"],
            "room_id": clinic["other_room_id"],
            "treatment_id": clinic["treatment_id"],
            "starts_at": f"{MONDAY}T10:15",
        }
    )
    assert preview["ends_at"] == f"{MONDAY}T10:45:00"
    assert preview["within_working_hours"] is True
    assert preview["has_conflicts"] is True
    assert [(c["type"], c["appointment_id"]) for c in preview["conflicts"]] == [("doctor", first["id"])]
    saturday = preview_conflicts(
        {"doctor_id": clinic["doctor_id"], "starts_at": f"{SATURDAY}T10:00", "ends_at": f"{SATURDAY}T11:00"}
    )
    assert saturday["within_working_hours"] is False
    assert saturday["has_conflicts"] is False
    own = preview_conflicts(
        {
            "doctor_id": clinic["doctor_id"],
            "room_id": clinic["room_id"],
            "patient_id": clinic["patient_id"],
            "starts_at": f"{MONDAY}T10:00",
            "ends_at": f"{MONDAY}T11:00",
            "exclude_appointment_id": first["id"],
        }
    )
    assert own["has_conflicts"] is False
    assert _count("appointments") == 1


def _plus(start: str, minutes: int) -> str:
    from datetime import datetime, timedelta

    value = datetime.fromisoformat(start) + timedelta(minutes=minutes)
    return value.isoformat(timespec="seconds")
