"""Doctor records, their specializations and working schedules."""

from __future__ import annotations

import sqlite3
import uuid
from typing import Any, Mapping

from flask import current_app

from clinic_scheduler.services.database import db, fetch_all, fetch_one, now_iso, require_row, write_transaction
from clinic_scheduler.services.errors import InUse
from clinic_scheduler.services.schedule import (
    WorkingSchedule,
    default_schedule,
    dump_schedule,
    effective_window,
    load_schedule,
    parse_calendar_date,
    parse_exceptions,
    parse_working_days,
    weekday_name,
)
from clinic_scheduler.services.specializations import replace_links, specializations_for
from clinic_scheduler.services.validation import email, ensure_unique, id_list, text


def serialize_doctor(conn: sqlite3.Connection, row: sqlite3.Row) -> dict[str, Any]:
    schedule = load_schedule(row)
    return {
        "id": row["id"],
        "first_name": row["first_name"],
        "last_name": row["last_name"],
        "name": f"{row['first_name']} {row['last_name']}",
        "email": row["email"],
        "phone": row["phone"],
        "working_days": schedule.working_days_document(),
        "working_days_exceptions": schedule.exceptions_document(),
        "specializations": specializations_for(conn, "doctor_specializations", "doctor_id", row["id"]),
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def _schedule_from_payload(payload: Mapping[str, Any], current: WorkingSchedule) -> WorkingSchedule:
    """Merge submitted weekdays onto ``current``; a submitted exception list replaces the old one."""

    by_weekday = current.by_weekday
    if "working_days" in payload:
        by_weekday = parse_working_days(payload["working_days"], strict=True, base=current.by_weekday)
    exceptions = current.exceptions
    if "working_days_exceptions" in payload:
        exceptions = parse_exceptions(payload["working_days_exceptions"], strict=True)
    return WorkingSchedule(by_weekday, exceptions)


def list_doctors() -> list[dict[str, Any]]:
    conn = db()
    try:
        rows = fetch_all(conn, "SELECT * FROM doctors ORDER BY last_name, first_name, id")
        return [serialize_doctor(conn, row) for row in rows]
    finally:
        conn.close()


def get_doctor(doctor_id: str) -> dict[str, Any]:
    conn = db()
    try:
        return serialize_doctor(conn, require_row(conn, "doctors", doctor_id, "doctor"))
    finally:
        conn.close()


def create_doctor(payload: Mapping[str, Any]) -> dict[str, Any]:
    first_name = text(payload, "first_name")
    last_name = text(payload, "last_name")
    email_addr = email(payload)
    phone = text(payload, "phone", max_len=40)
    specialization_ids = id_list(payload, "specializations") or []
    schedule = _schedule_from_payload(payload, default_schedule())
    working_days_json, exceptions_json = dump_schedule(schedule)

    doctor_id = str(uuid.uuid4())
    conn = db()
    try:
        with write_transaction(conn):
            ensure_unique(conn, "doctors", "email", email_addr, nocase=True)
            stamp = now_iso()
            conn.execute(
                """
                INSERT INTO doctors(
                    id, first_name, last_name, email, phone,
                    working_days_json, working_exceptions_json, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (doctor_id, first_name, last_name, email_addr, phone, working_days_json, exceptions_json, stamp, stamp),
            )
            replace_links(conn, "doctor_specializations", "doctor_id", doctor_id, specialization_ids)
            row = require_row(conn, "doctors", doctor_id, "doctor")
            result = serialize_doctor(conn, row)
        current_app.logger.info("Doctor %s created", doctor_id)
        return result
    finally:
        conn.close()


def update_doctor(doctor_id: str, payload: Mapping[str, Any]) -> dict[str, Any]:
    """Update profile fields, replace specializations, and merge the schedule."""

    conn = db()
    try:
        with write_transaction(conn):
            existing = require_row(conn, "doctors", doctor_id, "doctor")
            first_name = text(payload, "first_name") if "first_name" in payload else existing["first_name"]
            last_name = text(payload, "last_name") if "last_name" in payload else existing["last_name"]
            email_addr = email(payload) if "email" in payload else existing["email"]
            phone = text(payload, "phone", max_len=40) if "phone" in payload else existing["phone"]
            specialization_ids = id_list(payload, "specializations")
            schedule = _schedule_from_payload(payload, load_schedule(existing))
            working_days_json, exceptions_json = dump_schedule(schedule)

            ensure_unique(conn, "doctors", "email", email_addr, exclude_id=doctor_id, nocase=True)
            conn.execute(
                """
                UPDATE doctors
                   SET first_name=?, last_name=?, email=?, phone=?,
                       working_days_json=?, working_exceptions_json=?, updated_at=?
                 WHERE id=?
                """,
                (first_name, last_name, email_addr, phone, working_days_json, exceptions_json, now_iso(), doctor_id),
            )
            if specialization_ids is not None:
                replace_links(conn, "doctor_specializations", "doctor_id", doctor_id, specialization_ids)
            row = require_row(conn, "doctors", doctor_id, "doctor")
            result = serialize_doctor(conn, row)
        current_app.logger.info("Doctor %s updated", doctor_id)
        return result
    finally:
        conn.close()


def delete_doctor(doctor_id: str) -> None:
    conn = db()
    try:
        with write_transaction(conn):
            require_row(conn, "doctors", doctor_id, "doctor")
            if fetch_one(conn, "SELECT 1 FROM appointments WHERE doctor_id=? LIMIT 1", (doctor_id,)):
                raise InUse("doctor_has_appointments")
            conn.execute("DELETE FROM doctors WHERE id=?", (doctor_id,))
        current_app.logger.info("Doctor %s deleted", doctor_id)
    finally:
        conn.close()


def doctors_by_treatment(treatment_id: str) -> list[dict[str, Any]]:
    """Doctors holding the specialization the treatment belongs to."""

    conn = db()
    try:
        treatment = require_row(conn, "treatments", treatment_id, "treatment")
        rows = fetch_all(
            conn,
            """
            SELECT d.* FROM doctors d
              JOIN doctor_specializations ds ON ds.doctor_id = d.id
             WHERE ds.specialization_id = ?
             ORDER BY d.last_name, d.first_name, d.id
            """,
            (treatment["specialization_id"],),
        )
        return [serialize_doctor(conn, row) for row in rows]
    finally:
        conn.close()


def doctor_schedule_for(doctor_id: str, day: Any) -> dict[str, Any]:
    target = parse_calendar_date(day)
    conn = db()
    try:
        doctor = require_row(conn, "doctors", doctor_id, "doctor")
    finally:
        conn.close()
    schedule = load_schedule(doctor)
    window = effective_window(schedule, target)
    exception = schedule.exception_for(target)
    return {
        "doctor_id": doctor_id,
        "date": target.isoformat(),
        "weekday": weekday_name(target),
        "is_exception": exception is not None,
        "window": window.to_dict() if window else None,
    }
