"""Specializations and their links to doctors and rooms."""

from __future__ import annotations

import sqlite3
import uuid
from typing import Any, Mapping

from clinic_scheduler.services.database import db, fetch_all, fetch_one, now_iso, require_row, write_transaction
from clinic_scheduler.services.errors import InUse, NotFound
from clinic_scheduler.services.validation import ensure_unique, text


def serialize_specialization(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": row["id"],
        "name": row["name"],
        "description": row["description"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def specializations_for(conn: sqlite3.Connection, link_table: str, owner_column: str, owner_id: str) -> list[dict[str, str]]:
    rows = fetch_all(
        conn,
        f"""
        SELECT s.id, s.name FROM specializations s
          JOIN {link_table} l ON l.specialization_id = s.id
         WHERE l.{owner_column} = ?
         ORDER BY s.name
        """,
        (owner_id,),
    )
    return [{"id": row["id"], "name": row["name"]} for row in rows]


def replace_links(
    conn: sqlite3.Connection,
    link_table: str,
    owner_column: str,
    owner_id: str,
    specialization_ids: list[str],
) -> None:
    """Point ``owner_id`` at exactly ``specialization_ids``; every id must exist."""

    for spec_id in specialization_ids:
        require_row(conn, "specializations", spec_id, "specialization")
    conn.execute(f"DELETE FROM {link_table} WHERE {owner_column}=?", (owner_id,))
    conn.executemany(
        f"INSERT INTO {link_table}({owner_column}, specialization_id) VALUES (?, ?)",
        [(owner_id, spec_id) for spec_id in specialization_ids],
    )


def list_specializations() -> list[dict[str, Any]]:
    conn = db()
    try:
        rows = fetch_all(conn, "SELECT * FROM specializations ORDER BY name")
        return [serialize_specialization(row) for row in rows]
    finally:
        conn.close()


def get_specialization(spec_id: str) -> dict[str, Any]:
    conn = db()
    try:
        return serialize_specialization(require_row(conn, "specializations", spec_id, "specialization"))
    finally:
        conn.close()


def create_specialization(payload: Mapping[str, Any]) -> dict[str, Any]:
    name = text(payload, "name")
    description = text(payload, "description", required=False, max_len=2000)
    spec_id = str(uuid.uuid4())
    conn = db()
    try:
        with write_transaction(conn):
            ensure_unique(conn, "specializations", "name", name, nocase=True)
            stamp = now_iso()
            conn.execute(
                "INSERT INTO specializations(id, name, description, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                (spec_id, name, description, stamp, stamp),
            )
            row = require_row(conn, "specializations", spec_id, "specialization")
        return serialize_specialization(row)
    finally:
        conn.close()


def update_specialization(spec_id: str, payload: Mapping[str, Any]) -> dict[str, Any]:
    conn = db()
    try:
        with write_transaction(conn):
            existing = require_row(conn, "specializations", spec_id, "specialization")
            name = text(payload, "name") if "name" in payload else existing["name"]
            description = (
                text(payload, "description", required=False, max_len=2000)
                if "description" in payload
                else existing["description"]
            )
            ensure_unique(conn, "specializations", "name", name, exclude_id=spec_id, nocase=True)
            conn.execute(
                "UPDATE specializations SET name=?, description=?, updated_at=? WHERE id=?",
                (name, description, now_iso(), spec_id),
            )
            row = require_row(conn, "specializations", spec_id, "specialization")
        return serialize_specialization(row)
    finally:
        conn.close()


def delete_specialization(spec_id: str) -> None:
    """Delete a specialization; refused while a treatment still belongs to it."""

    conn = db()
    try:
        with write_transaction(conn):
            require_row(conn, "specializations", spec_id, "specialization")
            if fetch_one(conn, "SELECT 1 FROM treatments WHERE specialization_id=? LIMIT 1", (spec_id,)):
                raise InUse("specialization_in_use")
            conn.execute("DELETE FROM specializations WHERE id=?", (spec_id,))
    finally:
        conn.close()


def _owner_specializations(owner_table: str, link_table: str, owner_column: str, owner_id: str, entity: str) -> list[dict[str, str]]:
    conn = db()
    try:
        if fetch_one(conn, f"SELECT 1 FROM {owner_table} WHERE id=?", (owner_id,)) is None:
            raise NotFound(entity, owner_id)
        return specializations_for(conn, link_table, owner_column, owner_id)
    finally:
        conn.close()


def doctor_specializations(doctor_id: str) -> list[dict[str, str]]:
    return _owner_specializations("doctors", "doctor_specializations", "doctor_id", doctor_id, "doctor")


def room_specializations(room_id: str) -> list[dict[str, str]]:
    return _owner_specializations("rooms", "room_specializations", "room_id", room_id, "room")
