"""Patient helpers shared across routes."""

from __future__ import annotations

import re
import sqlite3
import uuid
from datetime import date
from typing import Any, Mapping

from clinic_scheduler.services.appointments import list_appointments
from clinic_scheduler.services.database import db, fetch_all, fetch_one, now_iso, require_row, write_transaction
from clinic_scheduler.services.errors import InUse, ValidationFailed
from clinic_scheduler.services.validation import email, text

GENDERS = ("male", "female", "not_specified")
ADDRESS_FIELDS = ("street", "city", "postal_code")


def normalize_query(s: str) -> str:
    return re.sub(r"\s+", " ", (s or "").strip().lower())


def serialize_patient(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": row["id"],
        "first_name": row["first_name"],
        "last_name": row["last_name"],
        "name": f"{row['first_name']} {row['last_name']}",
        "birth_date": row["birth_date"],
        "gender": row["gender"],
        "address": {name: row[name] for name in ADDRESS_FIELDS},
        "phone": row["phone"],
        "email": row["email"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def _birth_date(payload: Mapping[str, Any]) -> str:
    raw = text(payload, "birth_date", max_len=32)
    try:
        value = date.fromisoformat(raw[:10])
    except ValueError as exc:
        raise ValidationFailed("birth_date_invalid", "birth_date") from exc
    if value > date.today():
        raise ValidationFailed("birth_date_in_future", "birth_date")
    return value.isoformat()


def _gender(payload: Mapping[str, Any]) -> str:
    value = (text(payload, "gender", required=False, max_len=20) or "not_specified").lower()
    if value not in GENDERS:
        raise ValidationFailed("gender_invalid", "gender")
    return value


def _address(payload: Mapping[str, Any], existing: Mapping[str, Any] | None = None) -> dict[str, str | None]:
    """Accept a nested ``address`` object or flat street/city/postal_code keys."""

    source = payload.get("address") if isinstance(payload.get("address"), Mapping) else payload
    result: dict[str, str | None] = {}
    for name in ADDRESS_FIELDS:
        if name in source:
            result[name] = text(source, name, required=False)
        else:
            result[name] = existing[name] if existing is not None else None
    return result


def _fields(payload: Mapping[str, Any], existing: sqlite3.Row | None = None) -> dict[str, Any]:
    def pick(name: str, parser) -> Any:
        if existing is not None and name not in payload:
            return existing[name]
        return parser(payload)

    fields = {
        "first_name": pick("first_name", lambda p: text(p, "first_name")),
        "last_name": pick("last_name", lambda p: text(p, "last_name")),
        "birth_date": pick("birth_date", _birth_date),
        "gender": pick("gender", _gender),
        "phone": pick("phone", lambda p: text(p, "phone", max_len=40)),
        "email": pick("email", lambda p: email(p, required=False)),
    }
    fields.update(_address(payload, existing))
    return fields


def list_patients(query: str | None = None) -> list[dict[str, Any]]:
    """All patients, or those whose name, phone or email contains ``query``."""

    conn = db()
    try:
        q = normalize_query(query or "")
        if q:
            like = f"%{q}%"
            rows = fetch_all(
                conn,
                """
                SELECT * FROM patients
                 WHERE lower(first_name || ' ' || last_name) LIKE ?
                    OR lower(phone) LIKE ?
                    OR lower(COALESCE(email, '')) LIKE ?
                 ORDER BY last_name, first_name
                """,
                (like, like, like),
            )
        else:
            rows = fetch_all(conn, "SELECT * FROM patients ORDER BY last_name, first_name")
        return [serialize_patient(row) for row in rows]
    finally:
        conn.close()


def get_patient(patient_id: str, *, with_appointments: bool = True) -> dict[str, Any]:
    conn = db()
    try:
        result = serialize_patient(require_row(conn, "patients", patient_id, "patient"))
    finally:
        conn.close()
    if with_appointments:
        result["appointments"] = list_appointments({"patient_id": patient_id})
    return result


def create_patient(payload: Mapping[str, Any]) -> dict[str, Any]:
    fields = _fields(payload)
    patient_id = str(uuid.uuid4())
    conn = db()
    try:
        with write_transaction(conn):
            stamp = now_iso()
            columns = ["id", *fields, "created_at", "updated_at"]
            conn.execute(
                f"INSERT INTO patients({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
                (patient_id, *fields.values(), stamp, stamp),
            )
            return serialize_patient(require_row(conn, "patients", patient_id, "patient"))
    finally:
        conn.close()


def update_patient(patient_id: str, payload: Mapping[str, Any]) -> dict[str, Any]:
    conn = db()
    try:
        with write_transaction(conn):
            existing = require_row(conn, "patients", patient_id, "patient")
            fields = _fields(payload, existing)
            fields["updated_at"] = now_iso()
            assignments = ", ".join(f"{name}=?" for name in fields)
            conn.execute(f"UPDATE patients SET {assignments} WHERE id=?", (*fields.values(), patient_id))
            return serialize_patient(require_row(conn, "patients", patient_id, "patient"))
    finally:
        conn.close()


def delete_patient(patient_id: str) -> None:
    conn = db()
    try:
        with write_transaction(conn):
            require_row(conn, "patients", patient_id, "patient")
            if fetch_one(conn, "SELECT 1 FROM appointments WHERE patient_id=? LIMIT 1", (patient_id,)):
                raise InUse("patient_has_appointments")
            conn.execute("DELETE FROM patients WHERE id=?", (patient_id,))
    finally:
        conn.close()
