"""Day-scoped overlap detection across doctor, room and patient bookings."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from clinic_scheduler.services.database import fetch_all
from clinic_scheduler.services.intervals import ISO_FMT, overlaps, serialize


class ConflictParty(str, Enum):
    DOCTOR = "doctor"
    ROOM = "room"
    PATIENT = "patient"


@dataclass(frozen=True)
class Conflict:
    party: ConflictParty
    appointment_id: str
    label: str
    starts_at: datetime
    ends_at: datetime

    def to_dict(self) -> dict[str, str]:
        return {
            "type": self.party.value,
            "appointment_id": self.appointment_id,
            "label": self.label,
            "starts_at": serialize(self.starts_at),
            "ends_at": serialize(self.ends_at),
        }


_CANDIDATES_SQL = """
    SELECT a.id, a.doctor_id, a.room_id, a.patient_id, a.starts_at, a.ends_at,
           COALESCE(d.first_name || ' ' || d.last_name, '') AS doctor_name,
           COALESCE(r.name, '') AS room_name,
           COALESCE(p.first_name || ' ' || p.last_name, '') AS patient_name
      FROM appointments a
      LEFT JOIN doctors d ON d.id = a.doctor_id
      LEFT JOIN rooms r ON r.id = a.room_id
      LEFT JOIN patients p ON p.id = a.patient_id
     WHERE substr(a.starts_at, 1, 10) = ?
       AND a.status != 'canceled'
"""


def _candidates(
    conn: sqlite3.Connection,
    day: date,
    *,
    doctor_id: str | None,
    room_id: str | None,
    patient_id: str | None,
    exclude_appointment_id: str | None = None,
) -> list[sqlite3.Row]:
    parties: list[str] = []
    params: list[object] = [day.isoformat()]
    for column, value in (("doctor_id", doctor_id), ("room_id", room_id), ("patient_id", patient_id)):
        if value:
            parties.append(f"a.{column} = ?")
            params.append(value)
    if not parties:
        return []
    sql = _CANDIDATES_SQL + f" AND ({' OR '.join(parties)})"
    if exclude_appointment_id:
        sql += " AND a.id != ?"
        params.append(exclude_appointment_id)
    sql += " ORDER BY a.starts_at, a.id"
    return fetch_all(conn, sql, params)


def _bounds(row: sqlite3.Row) -> tuple[datetime, datetime]:
    return datetime.strptime(row["starts_at"], ISO_FMT), datetime.strptime(row["ends_at"], ISO_FMT)


def find_conflicts(
    conn: sqlite3.Connection,
    *,
    doctor_id: str,
    room_id: str | None,
    patient_id: str | None,
    starts_at: datetime,
    ends_at: datetime,
    exclude_appointment_id: str | None = None,
) -> list[Conflict]:
    """Return one record per (overlapping appointment, shared party).

    Only appointments starting on the calendar day of ``starts_at`` are
    considered; canceled ones never conflict. ``room_id`` and ``patient_id``
    are optional and skipped when falsy.
    """

    rows = _candidates(
        conn,
        starts_at.date(),
        doctor_id=doctor_id,
        room_id=room_id,
        patient_id=patient_id,
        exclude_appointment_id=exclude_appointment_id,
    )
    conflicts: list[Conflict] = []
    for row in rows:
        other_start, other_end = _bounds(row)
        if not overlaps(starts_at, ends_at, other_start, other_end):
            continue
        if doctor_id and row["doctor_id"] == doctor_id:
            conflicts.append(Conflict(ConflictParty.DOCTOR, row["id"], row["doctor_name"], other_start, other_end))
        if room_id and row["room_id"] == room_id:
            conflicts.append(Conflict(ConflictParty.ROOM, row["id"], row["room_name"], other_start, other_end))
        if patient_id and row["patient_id"] == patient_id:
            conflicts.append(Conflict(ConflictParty.PATIENT, row["id"], row["patient_name"], other_start, other_end))
    return conflicts


def has_conflicts(
    conn: sqlite3.Connection,
    doctor_id: str,
    room_id: str | None,
    starts_at: datetime,
    ends_at: datetime,
    exclude_appointment_id: str | None = None,
) -> bool:
    """Doctor/room-only boolean view of :func:`find_conflicts`."""

    found = find_conflicts(
        conn,
        doctor_id=doctor_id,
        room_id=room_id,
        patient_id=None,
        starts_at=starts_at,
        ends_at=ends_at,
        exclude_appointment_id=exclude_appointment_id,
    )
    return any(item.party in (ConflictParty.DOCTOR, ConflictParty.ROOM) for item in found)


def booked_intervals(
    conn: sqlite3.Connection,
    day: date,
    *,
    doctor_id: str,
    room_id: str | None = None,
    patient_id: str | None = None,
) -> list[tuple[datetime, datetime]]:
    """Busy ranges on ``day`` for the doctor and, when given, the room and patient."""

    rows = _candidates(conn, day, doctor_id=doctor_id, room_id=room_id, patient_id=patient_id)
    return [_bounds(row) for row in rows]
