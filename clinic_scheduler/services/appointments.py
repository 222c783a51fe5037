"""Appointment lifecycle: booking, rescheduling, status and payment changes."""

from __future__ import annotations

import sqlite3
import uuid
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Mapping

from flask import current_app

from clinic_scheduler.services.audit import write_event
from clinic_scheduler.services.conflicts import Conflict, find_conflicts
from clinic_scheduler.services.database import db, fetch_all, fetch_one, now_iso, require_row, write_transaction
from clinic_scheduler.services.errors import ClinicError, NotFound, ValidationFailed
from clinic_scheduler.services.intervals import ISO_FMT, parse_timestamp, plus_minutes, serialize
from clinic_scheduler.services.payments import money, parse_payment_status, price_from_payload
from clinic_scheduler.services.schedule import effective_window, load_schedule, weekday_name


class AppointmentError(ClinicError):
    """Base exception for appointment operations."""

    code = "appointment_error"


class InvalidWindow(AppointmentError):
    """Raised when ``ends_at`` is not after ``starts_at``."""

    code = "invalid_window"

    def __init__(self) -> None:
        super().__init__(self.code)


class OutsideWorkingHours(AppointmentError):
    """Raised when the window is not inside the doctor's effective working hours."""

    code = "outside_working_hours"

    def __init__(self, weekday: str, exception_date: date | None = None) -> None:
        super().__init__(self.code)
        self.weekday = weekday
        self.exception_date = exception_date

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"error": self.code, "weekday": self.weekday}
        if self.exception_date is not None:
            payload["date"] = self.exception_date.isoformat()
        return payload


class AppointmentConflict(AppointmentError):
    """Raised when the requested slot overlaps an existing booking."""

    code = "appointment_conflict"
    status_code = 409

    def __init__(self, conflicts: list[Conflict]) -> None:
        super().__init__(self.code)
        self.conflicts = conflicts

    def to_dict(self) -> dict[str, object]:
        return {"error": self.code, "conflicts": [item.to_dict() for item in self.conflicts]}


class InvalidTransition(AppointmentError):
    code = "invalid_transition"

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(self.code)
        self.current = current
        self.requested = requested

    def to_dict(self) -> dict[str, object]:
        return {"error": self.code, "from": self.current, "to": self.requested}


class AppointmentStatus(str, Enum):
    BOOKED = "booked"
    ONGOING = "ongoing"
    CANCELED = "canceled"


TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.BOOKED: frozenset({AppointmentStatus.ONGOING, AppointmentStatus.CANCELED}),
    AppointmentStatus.ONGOING: frozenset({AppointmentStatus.CANCELED}),
    AppointmentStatus.CANCELED: frozenset(),
}

REFERENCE_FIELDS = ("doctor_id", "patient_id", "treatment_id", "room_id")

_SELECT_SQL = """
    SELECT a.*,
           d.first_name || ' ' || d.last_name AS doctor_name,
           p.first_name || ' ' || p.last_name AS patient_name,
           t.name AS treatment_name,
           r.name AS room_name
      FROM appointments a
      LEFT JOIN doctors d ON d.id = a.doctor_id
      LEFT JOIN patients p ON p.id = a.patient_id
      LEFT JOIN treatments t ON t.id = a.treatment_id
      LEFT JOIN rooms r ON r.id = a.room_id
"""


def parse_status(value: Any) -> AppointmentStatus:
    try:
        return AppointmentStatus(str(value or "").strip().lower())
    except ValueError as exc:
        raise ValidationFailed("status_invalid", "status") from exc


def check_transition(current: AppointmentStatus, requested: AppointmentStatus) -> bool:
    """Return True when ``requested`` changes the status; raise if not allowed."""

    if requested == current:
        return False
    if requested not in TRANSITIONS[current]:
        raise InvalidTransition(current.value, requested.value)
    return True


def serialize_appointment(row: sqlite3.Row) -> dict[str, Any]:
    starts_at = datetime.strptime(row["starts_at"], ISO_FMT)
    ends_at = datetime.strptime(row["ends_at"], ISO_FMT)
    return {
        "id": row["id"],
        "doctor_id": row["doctor_id"],
        "doctor_name": row["doctor_name"],
        "patient_id": row["patient_id"],
        "patient_name": row["patient_name"],
        "treatment_id": row["treatment_id"],
        "treatment_name": row["treatment_name"],
        "room_id": row["room_id"],
        "room_name": row["room_name"],
        "starts_at": row["starts_at"],
        "ends_at": row["ends_at"],
        "duration_minutes": int((ends_at - starts_at).total_seconds() // 60),
        "price_cents": row["price_cents"],
        "price": money(row["price_cents"]),
        "status": row["status"],
        "payment_status": row["payment_status"],
        "note": row["note"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def _load(conn: sqlite3.Connection, appt_id: str) -> sqlite3.Row:
    row = fetch_one(conn, _SELECT_SQL + " WHERE a.id=?", (appt_id,))
    if row is None:
        raise NotFound("appointment", appt_id)
    return row


def _require_id(payload: Mapping[str, Any], field_name: str) -> str:
    value = str(payload.get(field_name) or "").strip()
    if not value:
        raise ValidationFailed(f"{field_name}_required", field_name)
    return value


def _parse_note(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationFailed("note_invalid", "note")
    return value.strip() or None


def _check_window(starts_at: datetime, ends_at: datetime) -> None:
    if ends_at <= starts_at:
        current_app.logger.warning("Rejected appointment window %s -> %s", starts_at, ends_at)
        raise InvalidWindow()


def _check_working_hours(doctor: sqlite3.Row, starts_at: datetime, ends_at: datetime) -> None:
    schedule = load_schedule(doctor)
    day = starts_at.date()
    window = effective_window(schedule, day)
    if window is not None and window.contains(starts_at, ends_at):
        return
    exception = schedule.exception_for(day)
    current_app.logger.warning(
        "Appointment %s -> %s outside working hours of doctor %s", starts_at, ends_at, doctor["id"]
    )
    raise OutsideWorkingHours(weekday_name(day), exception.day if exception else None)


def _check_conflicts(
    conn: sqlite3.Connection,
    *,
    doctor_id: str,
    room_id: str | None,
    patient_id: str | None,
    starts_at: datetime,
    ends_at: datetime,
    exclude_appointment_id: str | None = None,
) -> None:
    conflicts = find_conflicts(
        conn,
        doctor_id=doctor_id,
        room_id=room_id,
        patient_id=patient_id,
        starts_at=starts_at,
        ends_at=ends_at,
        exclude_appointment_id=exclude_appointment_id,
    )
    if conflicts:
        current_app.logger.warning(
            "Appointment %s -> %s conflicts with %d booking(s)", starts_at, ends_at, len(conflicts)
        )
        raise AppointmentConflict(conflicts)


def create_appointment(payload: Mapping[str, Any], *, actor_id: str | None = None) -> dict[str, Any]:
    """Validate and persist a new booking, returning its serialized row.

    The window is checked before any store access; the reference lookups,
    working-hours check, conflict check and insert then run inside one
    ``BEGIN IMMEDIATE`` transaction.
    """

    doctor_id = _require_id(payload, "doctor_id")
    patient_id = _require_id(payload, "patient_id")
    treatment_id = _require_id(payload, "treatment_id")
    room_id = _require_id(payload, "room_id")
    starts_at = parse_timestamp(payload.get("starts_at"), "starts_at", exact=True)
    ends_at = None
    if payload.get("ends_at") not in (None, ""):
        ends_at = parse_timestamp(payload.get("ends_at"), "ends_at", exact=True)
        _check_window(starts_at, ends_at)
    price_cents = price_from_payload(dict(payload))
    payment_status = parse_payment_status(payload.get("payment_status"))
    note = _parse_note(payload.get("note"))

    appt_id = str(uuid.uuid4())
    conn = db()
    try:
        with write_transaction(conn):
            doctor = require_row(conn, "doctors", doctor_id, "doctor")
            require_row(conn, "patients", patient_id, "patient")
            treatment = require_row(conn, "treatments", treatment_id, "treatment")
            require_row(conn, "rooms", room_id, "room")

            if ends_at is None:
                ends_at = plus_minutes(starts_at, int(treatment["duration_minutes"]))
                _check_window(starts_at, ends_at)
            if price_cents is None:
                price_cents = int(treatment["price_cents"])

            _check_working_hours(doctor, starts_at, ends_at)
            _check_conflicts(
                conn,
                doctor_id=doctor_id,
                room_id=room_id,
                patient_id=patient_id,
                starts_at=starts_at,
                ends_at=ends_at,
            )

            stamp = now_iso()
            conn.execute(
                """
                INSERT INTO appointments(
                    id, doctor_id, patient_id, treatment_id, room_id,
                    starts_at, ends_at, price_cents, status, payment_status, note,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    appt_id,
                    doctor_id,
                    patient_id,
                    treatment_id,
                    room_id,
                    serialize(starts_at),
                    serialize(ends_at),
                    price_cents,
                    AppointmentStatus.BOOKED.value,
                    payment_status.value,
                    note,
                    stamp,
                    stamp,
                ),
            )
            write_event(
                actor_id,
                "appointment_create",
                entity="appointment",
                entity_id=appt_id,
                meta={"starts_at": serialize(starts_at), "ends_at": serialize(ends_at), "note": note},
                conn=conn,
            )
            row = _load(conn, appt_id)
        current_app.logger.info("Appointment %s booked for doctor %s at %s", appt_id, doctor_id, serialize(starts_at))
        return serialize_appointment(row)
    finally:
        conn.close()


def update_appointment(appt_id: str, patch: Mapping[str, Any], *, actor_id: str | None = None) -> dict[str, Any]:
    """Apply ``patch`` (starts_at, ends_at, status, note, payment_status) atomically."""

    for field_name in REFERENCE_FIELDS:
        if field_name in patch:
            raise ValidationFailed("field_not_updatable", field_name)
    new_start = parse_timestamp(patch["starts_at"], "starts_at", exact=True) if patch.get("starts_at") not in (None, "") else None
    new_end = parse_timestamp(patch["ends_at"], "ends_at", exact=True) if patch.get("ends_at") not in (None, "") else None
    new_status = parse_status(patch["status"]) if patch.get("status") not in (None, "") else None
    new_payment = (
        parse_payment_status(patch["payment_status"], default=None)
        if patch.get("payment_status") not in (None, "")
        else None
    )
    note_given = "note" in patch
    note = _parse_note(patch.get("note")) if note_given else None

    conn = db()
    try:
        with write_transaction(conn):
            existing = _load(conn, appt_id)
            current_start = datetime.strptime(existing["starts_at"], ISO_FMT)
            current_end = datetime.strptime(existing["ends_at"], ISO_FMT)
            starts_at = new_start or current_start
            ends_at = new_end or current_end

            changes: dict[str, Any] = {}
            if starts_at != current_start or ends_at != current_end:
                _check_window(starts_at, ends_at)
                doctor = require_row(conn, "doctors", existing["doctor_id"], "doctor")
                _check_working_hours(doctor, starts_at, ends_at)
                _check_conflicts(
                    conn,
                    doctor_id=existing["doctor_id"],
                    room_id=existing["room_id"],
                    patient_id=existing["patient_id"],
                    starts_at=starts_at,
                    ends_at=ends_at,
                    exclude_appointment_id=appt_id,
                )
                changes["starts_at"] = serialize(starts_at)
                changes["ends_at"] = serialize(ends_at)
            if new_status is not None:
                if check_transition(AppointmentStatus(existing["status"]), new_status):
                    changes["status"] = new_status.value
            if new_payment is not None and new_payment.value != existing["payment_status"]:
                changes["payment_status"] = new_payment.value
            if note_given and note != existing["note"]:
                changes["note"] = note

            if changes:
                changes["updated_at"] = now_iso()
                assignments = ", ".join(f"{column}=?" for column in changes)
                conn.execute(
                    f"UPDATE appointments SET {assignments} WHERE id=?",
                    (*changes.values(), appt_id),
                )
                write_event(
                    actor_id,
                    "appointment_update",
                    entity="appointment",
                    entity_id=appt_id,
                    meta={key: value for key, value in changes.items() if key != "updated_at"},
                    conn=conn,
                )
            row = _load(conn, appt_id)
        if changes:
            current_app.logger.info("Appointment %s updated: %s", appt_id, ", ".join(sorted(changes)))
        return serialize_appointment(row)
    finally:
        conn.close()


def update_status(appt_id: str, status: Any, *, actor_id: str | None = None) -> dict[str, Any]:
    if status in (None, ""):
        raise ValidationFailed("status_required", "status")
    return update_appointment(appt_id, {"status": status}, actor_id=actor_id)


def update_payment_status(appt_id: str, payment_status: Any, *, actor_id: str | None = None) -> dict[str, Any]:
    if payment_status in (None, ""):
        raise ValidationFailed("payment_status_required", "payment_status")
    return update_appointment(appt_id, {"payment_status": payment_status}, actor_id=actor_id)


def delete_appointment(appt_id: str, *, actor_id: str | None = None) -> None:
    conn = db()
    try:
        with write_transaction(conn):
            require_row(conn, "appointments", appt_id, "appointment")
            conn.execute("DELETE FROM appointments WHERE id=?", (appt_id,))
            write_event(actor_id, "appointment_delete", entity="appointment", entity_id=appt_id, conn=conn)
        current_app.logger.info("Appointment %s deleted", appt_id)
    finally:
        conn.close()


def get_appointment(appt_id: str) -> dict[str, Any]:
    conn = db()
    try:
        return serialize_appointment(_load(conn, appt_id))
    finally:
        conn.close()


def _range_bound(value: Any, field_name: str, *, upper: bool) -> str:
    text = str(value).strip()
    if len(text) == 10:
        try:
            day = date.fromisoformat(text)
        except ValueError as exc:
            raise ValidationFailed(f"{field_name}_invalid", field_name) from exc
        if upper:
            # Date-only upper bound covers the whole day.
            return datetime.combine(day + timedelta(days=1), datetime.min.time()).strftime(ISO_FMT)
        return datetime.combine(day, datetime.min.time()).strftime(ISO_FMT)
    return serialize(parse_timestamp(text, field_name))


def list_appointments(filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
    """Appointments ordered by start, filtered on start range, doctor, patient and status."""

    filters = filters or {}
    clauses: list[str] = []
    params: list[Any] = []
    if filters.get("start_date"):
        clauses.append("a.starts_at >= ?")
        params.append(_range_bound(filters["start_date"], "start_date", upper=False))
    if filters.get("end_date"):
        end_text = str(filters["end_date"]).strip()
        bound = _range_bound(end_text, "end_date", upper=True)
        clauses.append("a.starts_at < ?" if len(end_text) == 10 else "a.starts_at <= ?")
        params.append(bound)
    for column in ("doctor_id", "patient_id"):
        if filters.get(column):
            clauses.append(f"a.{column} = ?")
            params.append(filters[column])
    if filters.get("status"):
        clauses.append("a.status = ?")
        params.append(parse_status(filters["status"]).value)

    sql = _SELECT_SQL
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY a.starts_at, a.id"
    conn = db()
    try:
        return [serialize_appointment(row) for row in fetch_all(conn, sql, params)]
    finally:
        conn.close()


def preview_conflicts(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Dry-run of the create checks: working hours and conflicts, no write."""

    doctor_id = _require_id(payload, "doctor_id")
    room_id = str(payload.get("room_id") or "").strip() or None
    patient_id = str(payload.get("patient_id") or "").strip() or None
    exclude_id = str(payload.get("exclude_appointment_id") or "").strip() or None
    starts_at = parse_timestamp(payload.get("starts_at"), "starts_at", exact=True)
    ends_at = None
    if payload.get("ends_at") not in (None, ""):
        ends_at = parse_timestamp(payload.get("ends_at"), "ends_at", exact=True)
        _check_window(starts_at, ends_at)

    conn = db()
    try:
        doctor = require_row(conn, "doctors", doctor_id, "doctor")
        if ends_at is None:
            treatment_id = _require_id(payload, "treatment_id")
            treatment = require_row(conn, "treatments", treatment_id, "treatment")
            ends_at = plus_minutes(starts_at, int(treatment["duration_minutes"]))
        conflicts = find_conflicts(
            conn,
            doctor_id=doctor_id,
            room_id=room_id,
            patient_id=patient_id,
            starts_at=starts_at,
            ends_at=ends_at,
            exclude_appointment_id=exclude_id,
        )
    finally:
        conn.close()
    window = effective_window(load_schedule(doctor), starts_at.date())
    return {
        "starts_at": serialize(starts_at),
        "ends_at": serialize(ends_at),
        "within_working_hours": bool(window and window.contains(starts_at, ends_at)),
        "has_conflicts": bool(conflicts),
        "conflicts": [item.to_dict() for item in conflicts],
    }
