"""Half-open time range arithmetic shared by conflict checks and slot search."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Iterable

from clinic_scheduler.services.errors import ValidationFailed

ISO_FMT = "%Y-%m-%dT%H:%M:%S"


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Return True when ``[a_start, a_end)`` and ``[b_start, b_end)`` intersect.

    Ranges that only touch (one ends exactly when the other starts) do not
    overlap.
    """

    return a_start < b_end and a_end > b_start


def overlaps_any(start: datetime, end: datetime, intervals: Iterable[tuple[datetime, datetime]]) -> bool:
    return any(overlaps(start, end, b_start, b_end) for b_start, b_end in intervals)


def minute_of_day(value: datetime) -> int:
    return value.hour * 60 + value.minute


def normalize(value: datetime) -> datetime:
    """Wall-clock minute precision; any UTC offset is dropped, not converted."""

    return value.replace(second=0, microsecond=0, tzinfo=None)


def serialize(value: datetime) -> str:
    return normalize(value).strftime(ISO_FMT)


def parse_timestamp(value: Any, field_name: str = "starts_at", *, exact: bool = False) -> datetime:
    """Parse an ISO timestamp to naive minute precision.

    With ``exact`` a non-zero seconds part is rejected instead of truncated,
    so a booking is never stored shorter than it was requested.
    """

    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value or "").strip()
        if not text:
            raise ValidationFailed(f"{field_name}_required", field_name)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValidationFailed(f"{field_name}_invalid", field_name) from exc
    if exact and (parsed.second or parsed.microsecond):
        raise ValidationFailed(f"{field_name}_minute_precision", field_name)
    return normalize(parsed)


def plus_minutes(value: datetime, minutes: int) -> datetime:
    return value + timedelta(minutes=minutes)
