"""Doctor working schedules: weekday defaults plus date-specific exceptions.

A schedule is stored on the doctor row as two JSON documents
(``working_days_json`` and ``working_exceptions_json``) and resolved here into
an effective working window for a calendar date. Exceptions always take
precedence over the weekday default; partial or malformed data resolves to
"unavailable" instead of raising.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime, time
from types import MappingProxyType
from typing import Any, Mapping

from clinic_scheduler.services.errors import ValidationFailed
from clinic_scheduler.services.intervals import minute_of_day, serialize

# Index matches ``date.weekday()``.
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
TIME_FMT = "%H:%M"
DEFAULT_START = "09:00"
DEFAULT_END = "17:00"


class ScheduleError(ValidationFailed):
    """Raised when a working schedule document is invalid."""


def parse_clock(value: Any, field_name: str = "hours") -> time:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    try:
        return datetime.strptime(str(value).strip(), TIME_FMT).time()
    except ValueError as exc:
        raise ScheduleError("invalid_time_of_day", field_name) from exc


def parse_calendar_date(value: Any, field_name: str = "date") -> date:
    """Accept ``YYYY-MM-DD`` or a full ISO timestamp, keeping only the calendar date."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value or "").strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError as exc:
        raise ScheduleError("invalid_date", field_name) from exc


@dataclass(frozen=True)
class WorkingHours:
    start: time
    end: time

    def __post_init__(self) -> None:
        if not self.start < self.end:
            raise ScheduleError("working_hours_order", "hours")

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.strftime(TIME_FMT), "end": self.end.strftime(TIME_FMT)}


@dataclass(frozen=True)
class WorkingDay:
    is_working: bool
    hours: WorkingHours | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"is_working": self.is_working}
        if self.hours is not None:
            payload["hours"] = self.hours.to_dict()
        return payload


@dataclass(frozen=True)
class ScheduleException:
    day: date
    is_working: bool
    hours: WorkingHours | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"date": self.day.isoformat(), "is_working": self.is_working}
        if self.hours is not None:
            payload["hours"] = self.hours.to_dict()
        return payload


@dataclass(frozen=True)
class Window:
    """A working window anchored to one calendar date."""

    start: datetime
    end: datetime

    def contains(self, start: datetime, end: datetime) -> bool:
        """Check ``[start, end)`` against the window by hour:minute on the window's date."""

        if start.date() != self.start.date() or end.date() != start.date():
            return False
        return minute_of_day(self.start) <= minute_of_day(start) and minute_of_day(end) <= minute_of_day(self.end)

    def to_dict(self) -> dict[str, str]:
        return {"start": serialize(self.start), "end": serialize(self.end)}


@dataclass(frozen=True)
class WorkingSchedule:
    by_weekday: Mapping[str, WorkingDay]
    exceptions: tuple[ScheduleException, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        keys = set(self.by_weekday)
        if keys != set(WEEKDAYS):
            missing = sorted(set(WEEKDAYS) - keys)
            raise ScheduleError(f"weekday_keys_invalid:{','.join(missing) or 'extra'}", "working_days")
        seen: set[date] = set()
        for exc in self.exceptions:
            if exc.day in seen:
                raise ScheduleError(f"duplicate_exception_date:{exc.day.isoformat()}", "working_days_exceptions")
            seen.add(exc.day)
        object.__setattr__(self, "by_weekday", MappingProxyType(dict(self.by_weekday)))
        object.__setattr__(self, "exceptions", tuple(self.exceptions))

    def exception_for(self, day: date) -> ScheduleException | None:
        for exc in self.exceptions:
            if exc.day == day:
                return exc
        return None

    def working_days_document(self) -> dict[str, dict[str, Any]]:
        return {name: self.by_weekday[name].to_dict() for name in WEEKDAYS}

    def exceptions_document(self) -> list[dict[str, Any]]:
        return [exc.to_dict() for exc in self.exceptions]


def weekday_name(day: date) -> str:
    return WEEKDAYS[day.weekday()]


def _anchor(day: date, hours: WorkingHours) -> Window:
    return Window(datetime.combine(day, hours.start), datetime.combine(day, hours.end))


def effective_window(schedule: WorkingSchedule, day: date) -> Window | None:
    """Return the working window for ``day`` or None when the doctor is unavailable."""

    if isinstance(day, datetime):
        day = day.date()
    exc = schedule.exception_for(day)
    if exc is not None:
        if not exc.is_working:
            return None
        if exc.hours is not None:
            return _anchor(day, exc.hours)
        # Working with no custom hours: use the weekday default.
    default = schedule.by_weekday[weekday_name(day)]
    if not default.is_working or default.hours is None:
        return None
    return _anchor(day, default.hours)


def default_schedule() -> WorkingSchedule:
    office = WorkingHours(parse_clock(DEFAULT_START), parse_clock(DEFAULT_END))
    days = {name: WorkingDay(True, office) for name in WEEKDAYS[:5]}
    days.update({name: WorkingDay(False) for name in WEEKDAYS[5:]})
    return WorkingSchedule(days)


def _parse_hours(raw: Any, *, strict: bool) -> WorkingHours | None:
    if not raw:
        return None
    if not isinstance(raw, Mapping):
        if strict:
            raise ScheduleError("invalid_hours", "hours")
        return None
    try:
        return WorkingHours(parse_clock(raw.get("start"), "hours.start"), parse_clock(raw.get("end"), "hours.end"))
    except ScheduleError:
        if strict:
            raise
        return None


def _parse_flag(entry: Mapping[str, Any], *, strict: bool, field_name: str) -> bool:
    value = entry.get("is_working")
    if isinstance(value, bool):
        return value
    if strict:
        raise ScheduleError("is_working_required", field_name)
    # Legacy rows may hold the flag as text; anything unrecognised is off.
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def parse_working_days(
    raw: Any,
    *,
    strict: bool = True,
    base: Mapping[str, WorkingDay] | None = None,
) -> dict[str, WorkingDay]:
    """Parse a weekday document, merging onto ``base`` when given.

    With ``strict`` the document must be well formed and working days must
    carry hours; without it (stored data) bad entries degrade to unavailable.
    """

    days: dict[str, WorkingDay] = dict(base) if base else {name: WorkingDay(False) for name in WEEKDAYS}
    if raw is None:
        return days
    if not isinstance(raw, Mapping):
        if strict:
            raise ScheduleError("working_days_must_be_object", "working_days")
        return days
    for key, entry in raw.items():
        name = str(key).strip().lower()
        if name not in WEEKDAYS:
            if strict:
                raise ScheduleError(f"unknown_weekday:{key}", "working_days")
            continue
        if not isinstance(entry, Mapping):
            if strict:
                raise ScheduleError("working_day_must_be_object", f"working_days.{name}")
            days[name] = WorkingDay(False)
            continue
        is_working = _parse_flag(entry, strict=strict, field_name=f"working_days.{name}")
        hours = _parse_hours(entry.get("hours"), strict=strict) if is_working else None
        if strict and is_working and hours is None:
            raise ScheduleError("working_hours_required", f"working_days.{name}")
        days[name] = WorkingDay(is_working, hours)
    return days


def parse_exceptions(raw: Any, *, strict: bool = True) -> tuple[ScheduleException, ...]:
    """Parse the exception list; duplicates are rejected (strict) or dropped."""

    if raw is None:
        return ()
    if not isinstance(raw, list):
        if strict:
            raise ScheduleError("exceptions_must_be_list", "working_days_exceptions")
        return ()
    parsed: list[ScheduleException] = []
    seen: set[date] = set()
    for entry in raw:
        if not isinstance(entry, Mapping):
            if strict:
                raise ScheduleError("exception_must_be_object", "working_days_exceptions")
            continue
        try:
            day = parse_calendar_date(entry.get("date"), "working_days_exceptions.date")
        except ScheduleError:
            if strict:
                raise
            continue
        if day in seen:
            if strict:
                raise ScheduleError(f"duplicate_exception_date:{day.isoformat()}", "working_days_exceptions")
            continue
        seen.add(day)
        is_working = _parse_flag(entry, strict=strict, field_name="working_days_exceptions.is_working")
        hours = _parse_hours(entry.get("hours"), strict=strict) if is_working else None
        parsed.append(ScheduleException(day, is_working, hours))
    return tuple(parsed)


def schedule_from_documents(working_days: Any, exceptions: Any, *, strict: bool = True) -> WorkingSchedule:
    return WorkingSchedule(parse_working_days(working_days, strict=strict), parse_exceptions(exceptions, strict=strict))


def _loads(text: str | None, fallback: Any) -> Any:
    if not text:
        return fallback
    try:
        return json.loads(text)
    except ValueError:
        return fallback


def load_schedule(row: Mapping[str, Any]) -> WorkingSchedule:
    """Build the schedule stored on a doctor row, tolerating legacy data."""

    working_days = _loads(row["working_days_json"], None)
    if working_days is None:
        base = default_schedule()
        return WorkingSchedule(base.by_weekday, parse_exceptions(_loads(row["working_exceptions_json"], []), strict=False))
    return schedule_from_documents(working_days, _loads(row["working_exceptions_json"], []), strict=False)


def dump_schedule(schedule: WorkingSchedule) -> tuple[str, str]:
    return (
        json.dumps(schedule.working_days_document(), sort_keys=True),
        json.dumps(schedule.exceptions_document()),
    )
