"""Treatment rooms and the specializations they are equipped for."""

from __future__ import annotations

import sqlite3
import uuid
from typing import Any, Mapping

from clinic_scheduler.services.database import db, fetch_all, fetch_one, now_iso, require_row, write_transaction
from clinic_scheduler.services.errors import InUse
from clinic_scheduler.services.specializations import replace_links, specializations_for
from clinic_scheduler.services.validation import ensure_unique, id_list, text


def serialize_room(conn: sqlite3.Connection, row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": row["id"],
        "name": row["name"],
        "specializations": specializations_for(conn, "room_specializations", "room_id", row["id"]),
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def list_rooms() -> list[dict[str, Any]]:
    conn = db()
    try:
        return [serialize_room(conn, row) for row in fetch_all(conn, "SELECT * FROM rooms ORDER BY name")]
    finally:
        conn.close()


def get_room(room_id: str) -> dict[str, Any]:
    conn = db()
    try:
        return serialize_room(conn, require_row(conn, "rooms", room_id, "room"))
    finally:
        conn.close()


def create_room(payload: Mapping[str, Any]) -> dict[str, Any]:
    name = text(payload, "name")
    specialization_ids = id_list(payload, "specializations") or []
    room_id = str(uuid.uuid4())
    conn = db()
    try:
        with write_transaction(conn):
            ensure_unique(conn, "rooms", "name", name, nocase=True)
            stamp = now_iso()
            conn.execute(
                "INSERT INTO rooms(id, name, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (room_id, name, stamp, stamp),
            )
            replace_links(conn, "room_specializations", "room_id", room_id, specialization_ids)
            return serialize_room(conn, require_row(conn, "rooms", room_id, "room"))
    finally:
        conn.close()


def update_room(room_id: str, payload: Mapping[str, Any]) -> dict[str, Any]:
    conn = db()
    try:
        with write_transaction(conn):
            existing = require_row(conn, "rooms", room_id, "room")
            name = text(payload, "name") if "name" in payload else existing["name"]
            specialization_ids = id_list(payload, "specializations")
            ensure_unique(conn, "rooms", "name", name, exclude_id=room_id, nocase=True)
            conn.execute("UPDATE rooms SET name=?, updated_at=? WHERE id=?", (name, now_iso(), room_id))
            if specialization_ids is not None:
                replace_links(conn, "room_specializations", "room_id", room_id, specialization_ids)
            return serialize_room(conn, require_row(conn, "rooms", room_id, "room"))
    finally:
        conn.close()


def delete_room(room_id: str) -> None:
    conn = db()
    try:
        with write_transaction(conn):
            require_row(conn, "rooms", room_id, "room")
            if fetch_one(conn, "SELECT 1 FROM appointments WHERE room_id=? LIMIT 1", (room_id,)):
                raise InUse("room_has_appointments")
            conn.execute("DELETE FROM rooms WHERE id=?", (room_id,))
    finally:
        conn.close()


def rooms_by_treatment(treatment_id: str) -> list[dict[str, Any]]:
    """Rooms equipped for the treatment's specialization."""

    conn = db()
    try:
        treatment = require_row(conn, "treatments", treatment_id, "treatment")
        rows = fetch_all(
            conn,
            """
            SELECT r.* FROM rooms r
              JOIN room_specializations rs ON rs.room_id = r.id
             WHERE rs.specialization_id = ?
             ORDER BY r.name
            """,
            (treatment["specialization_id"],),
        )
        return [serialize_room(conn, row) for row in rows]
    finally:
        conn.close()
