"""Treatment catalogue: duration, list price and owning specialization."""

from __future__ import annotations

import sqlite3
import uuid
from typing import Any, Mapping

from clinic_scheduler.services.database import db, fetch_all, fetch_one, now_iso, require_row, write_transaction
from clinic_scheduler.services.errors import InUse, ValidationFailed
from clinic_scheduler.services.payments import money, price_from_payload
from clinic_scheduler.services.validation import text

_SELECT_SQL = """
    SELECT t.*, s.name AS specialization_name
      FROM treatments t
      LEFT JOIN specializations s ON s.id = t.specialization_id
"""


def serialize_treatment(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": row["id"],
        "name": row["name"],
        "description": row["description"],
        "duration": row["duration_minutes"],
        "price_cents": row["price_cents"],
        "price": money(row["price_cents"]),
        "specialization": {"id": row["specialization_id"], "name": row["specialization_name"]},
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def _duration(payload: Mapping[str, Any]) -> int:
    raw = payload.get("duration", payload.get("duration_minutes"))
    if raw in (None, ""):
        raise ValidationFailed("duration_required", "duration")
    if isinstance(raw, bool):
        raise ValidationFailed("duration_invalid", "duration")
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationFailed("duration_invalid", "duration") from exc
    if value < 1:
        raise ValidationFailed("duration_must_be_positive", "duration")
    return value


def _load(conn: sqlite3.Connection, treatment_id: str) -> sqlite3.Row:
    require_row(conn, "treatments", treatment_id, "treatment")
    return fetch_one(conn, _SELECT_SQL + " WHERE t.id=?", (treatment_id,))


def list_treatments(specialization_id: str | None = None) -> list[dict[str, Any]]:
    conn = db()
    try:
        if specialization_id:
            rows = fetch_all(conn, _SELECT_SQL + " WHERE t.specialization_id=? ORDER BY t.name", (specialization_id,))
        else:
            rows = fetch_all(conn, _SELECT_SQL + " ORDER BY t.name")
        return [serialize_treatment(row) for row in rows]
    finally:
        conn.close()


def get_treatment(treatment_id: str) -> dict[str, Any]:
    conn = db()
    try:
        return serialize_treatment(_load(conn, treatment_id))
    finally:
        conn.close()


def create_treatment(payload: Mapping[str, Any]) -> dict[str, Any]:
    name = text(payload, "name")
    description = text(payload, "description", required=False, max_len=2000)
    duration = _duration(payload)
    price_cents = price_from_payload(dict(payload))
    if price_cents is None:
        raise ValidationFailed("price_required", "price")
    specialization_id = text(payload, "specialization_id")
    treatment_id = str(uuid.uuid4())
    conn = db()
    try:
        with write_transaction(conn):
            require_row(conn, "specializations", specialization_id, "specialization")
            stamp = now_iso()
            conn.execute(
                """
                INSERT INTO treatments(
                    id, name, description, duration_minutes, price_cents, specialization_id, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (treatment_id, name, description, duration, price_cents, specialization_id, stamp, stamp),
            )
            return serialize_treatment(_load(conn, treatment_id))
    finally:
        conn.close()


def update_treatment(treatment_id: str, payload: Mapping[str, Any]) -> dict[str, Any]:
    """Existing appointments keep the price they were booked with."""

    conn = db()
    try:
        with write_transaction(conn):
            existing = require_row(conn, "treatments", treatment_id, "treatment")
            name = text(payload, "name") if "name" in payload else existing["name"]
            description = (
                text(payload, "description", required=False, max_len=2000)
                if "description" in payload
                else existing["description"]
            )
            duration = (
                _duration(payload)
                if "duration" in payload or "duration_minutes" in payload
                else existing["duration_minutes"]
            )
            price_cents = price_from_payload(dict(payload))
            if price_cents is None:
                price_cents = existing["price_cents"]
            specialization_id = existing["specialization_id"]
            if "specialization_id" in payload:
                specialization_id = text(payload, "specialization_id")
                require_row(conn, "specializations", specialization_id, "specialization")
            conn.execute(
                """
                UPDATE treatments
                   SET name=?, description=?, duration_minutes=?, price_cents=?, specialization_id=?, updated_at=?
                 WHERE id=?
                """,
                (name, description, duration, price_cents, specialization_id, now_iso(), treatment_id),
            )
            return serialize_treatment(_load(conn, treatment_id))
    finally:
        conn.close()


def delete_treatment(treatment_id: str) -> None:
    conn = db()
    try:
        with write_transaction(conn):
            require_row(conn, "treatments", treatment_id, "treatment")
            if fetch_one(conn, "SELECT 1 FROM appointments WHERE treatment_id=? LIMIT 1", (treatment_id,)):
                raise InUse("treatment_has_appointments")
            conn.execute("DELETE FROM treatments WHERE id=?", (treatment_id,))
    finally:
        conn.close()
