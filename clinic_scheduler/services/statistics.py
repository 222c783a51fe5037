"""Dashboard figures for the current calendar month."""

from __future__ import annotations

import calendar
from datetime import date
from typing import Any

from clinic_scheduler.services.database import db, fetch_all, fetch_one

DEFAULT_TREATMENT_DURATION = 45
TOP_TREATMENTS = 5


def month_bounds(today: date) -> tuple[str, str, int]:
    days = calendar.monthrange(today.year, today.month)[1]
    first = today.replace(day=1)
    # Exclusive upper bound: first day of the next month.
    nxt = date(today.year + (today.month // 12), today.month % 12 + 1, 1)
    return first.isoformat(), nxt.isoformat(), days


def dashboard(today: date | None = None) -> dict[str, Any]:
    today = today or date.today()
    start, end, days = month_bounds(today)
    conn = db()
    try:
        monthly = fetch_one(
            conn,
            """
            SELECT COUNT(*) AS appointments, COUNT(DISTINCT patient_id) AS patients
              FROM appointments
             WHERE starts_at >= ? AND starts_at < ?
            """,
            (start, end),
        )
        total_doctors = fetch_one(conn, "SELECT COUNT(*) AS n FROM doctors")["n"]
        total_patients = fetch_one(conn, "SELECT COUNT(*) AS n FROM patients")["n"]
        popular = fetch_all(
            conn,
            """
            SELECT t.id, t.name, COUNT(*) AS count
              FROM appointments a
              JOIN treatments t ON t.id = a.treatment_id
             WHERE a.starts_at >= ? AND a.starts_at < ?
             GROUP BY t.id, t.name
             ORDER BY count DESC, t.name
             LIMIT ?
            """,
            (start, end, TOP_TREATMENTS),
        )
        avg_duration = fetch_one(conn, "SELECT AVG(duration_minutes) AS avg FROM treatments")["avg"]
    finally:
        conn.close()

    appointments = int(monthly["appointments"] or 0)
    return {
        "month": start[:7],
        "monthly_appointments": appointments,
        "monthly_patients": int(monthly["patients"] or 0),
        "total_doctors": int(total_doctors),
        "total_patients": int(total_patients),
        "avg_appointments_per_day": round(appointments / days, 1),
        "popular_treatments": [{"id": row["id"], "name": row["name"], "count": row["count"]} for row in popular],
        "avg_treatment_duration": float(avg_duration) if avg_duration is not None else DEFAULT_TREATMENT_DURATION,
    }
