"""Free-slot enumeration inside a doctor's working window."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Iterable

from flask import current_app

from clinic_scheduler.services.conflicts import booked_intervals
from clinic_scheduler.services.database import db, fetch_all, require_row
from clinic_scheduler.services.errors import ValidationFailed
from clinic_scheduler.services.intervals import overlaps_any, serialize
from clinic_scheduler.services.schedule import WorkingSchedule, effective_window, load_schedule, parse_calendar_date

DEFAULT_STEP_MINUTES = 15


def available_slots(
    schedule: WorkingSchedule,
    booked: Iterable[tuple[datetime, datetime]],
    day: date,
    duration_minutes: int,
    step_minutes: int = DEFAULT_STEP_MINUTES,
) -> list[datetime]:
    """Start times, every ``step_minutes`` from the window start, where ``duration_minutes`` is free."""

    if duration_minutes < 1:
        raise ValidationFailed("duration_must_be_positive", "duration")
    if step_minutes < 1:
        raise ValidationFailed("step_must_be_positive", "step")
    window = effective_window(schedule, day)
    if window is None:
        return []
    busy = list(booked)
    length = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=step_minutes)
    slots: list[datetime] = []
    cursor = window.start
    while cursor + length <= window.end:
        if not overlaps_any(cursor, cursor + length, busy):
            slots.append(cursor)
        cursor += step
    return slots


def free_ranges(
    schedule: WorkingSchedule,
    booked: Iterable[tuple[datetime, datetime]],
    day: date,
) -> list[tuple[datetime, datetime]]:
    """Gaps between bookings, clipped to the effective window."""

    window = effective_window(schedule, day)
    if window is None:
        return []
    gaps: list[tuple[datetime, datetime]] = []
    cursor = window.start
    for start, end in sorted(booked):
        if end <= window.start or start >= window.end:
            continue
        if start > cursor:
            gaps.append((cursor, start))
        cursor = max(cursor, end)
    if cursor < window.end:
        gaps.append((cursor, window.end))
    return gaps


def _step_minutes() -> int:
    return int(current_app.config.get("APPOINTMENT_SLOT_STEP_MINUTES", DEFAULT_STEP_MINUTES))


def _duration(conn, duration_minutes: Any, treatment_id: str | None) -> int:
    if duration_minutes not in (None, ""):
        try:
            value = int(duration_minutes)
        except (TypeError, ValueError) as exc:
            raise ValidationFailed("duration_invalid", "duration") from exc
        if value < 1:
            raise ValidationFailed("duration_must_be_positive", "duration")
        return value
    if treatment_id:
        return int(require_row(conn, "treatments", treatment_id, "treatment")["duration_minutes"])
    raise ValidationFailed("duration_or_treatment_required", "duration")


def slots_for_doctor(
    doctor_id: str,
    day: Any,
    duration_minutes: Any = None,
    *,
    treatment_id: str | None = None,
    room_id: str | None = None,
    patient_id: str | None = None,
) -> dict[str, Any]:
    target = parse_calendar_date(day)
    conn = db()
    try:
        doctor = require_row(conn, "doctors", doctor_id, "doctor")
        if room_id:
            require_row(conn, "rooms", room_id, "room")
        if patient_id:
            require_row(conn, "patients", patient_id, "patient")
        duration = _duration(conn, duration_minutes, treatment_id)
        schedule = load_schedule(doctor)
        busy = booked_intervals(conn, target, doctor_id=doctor_id, room_id=room_id, patient_id=patient_id)
    finally:
        conn.close()
    window = effective_window(schedule, target)
    slots = available_slots(schedule, busy, target, duration, _step_minutes())
    return {
        "doctor_id": doctor_id,
        "date": target.isoformat(),
        "duration": duration,
        "window": window.to_dict() if window else None,
        "slots": [serialize(slot) for slot in slots],
    }


def doctors_availability(day: Any) -> list[dict[str, Any]]:
    """Per-doctor free ranges for ``day``; doctors off that day get an empty list."""

    target = parse_calendar_date(day)
    conn = db()
    try:
        doctors = fetch_all(conn, "SELECT * FROM doctors ORDER BY last_name, first_name, id")
        result: list[dict[str, Any]] = []
        for doctor in doctors:
            schedule = load_schedule(doctor)
            window = effective_window(schedule, target)
            busy = booked_intervals(conn, target, doctor_id=doctor["id"]) if window else []
            result.append(
                {
                    "doctor_id": doctor["id"],
                    "name": f"{doctor['first_name']} {doctor['last_name']}",
                    "window": window.to_dict() if window else None,
                    "free": [
                        {"start": serialize(start), "end": serialize(end)}
                        for start, end in free_ranges(schedule, busy, target)
                    ],
                }
            )
        return result
    finally:
        conn.close()
