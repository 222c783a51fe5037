import json
from datetime import date, datetime, time

import pytest

from clinic_scheduler.services.schedule import (
    WEEKDAYS,
    ScheduleError,
    WorkingDay,
    WorkingHours,
    WorkingSchedule,
    default_schedule,
    dump_schedule,
    effective_window,
    load_schedule,
    parse_exceptions,
    parse_working_days,
    schedule_from_documents,
)

MONDAY = date(2030, 1, 7)
NEXT_MONDAY = date(2030, 1, 14)
SATURDAY = date(2030, 1, 12)


def _office_week(**overrides):
    doc = {
        name: {"is_working": True, "hours": {"start": "09:00", "end": "17:00"}} for name in WEEKDAYS[:5]
    }
    doc.update({name: {"is_working": False} for name in WEEKDAYS[5:]})
    doc.update(overrides)
    return doc


def test_default_schedule_is_office_week():
    schedule = default_schedule()
    window = effective_window(schedule, MONDAY)
    assert window.start == datetime(2030, 1, 7, 9, 0)
    assert window.end == datetime(2030, 1, 7, 17, 0)
    assert effective_window(schedule, SATURDAY) is None


def test_exception_takes_precedence_over_weekday():
    schedule = schedule_from_documents(_office_week(), [{"date": MONDAY.isoformat(), "is_working": False}])
    assert effective_window(schedule, MONDAY) is None
    window = effective_window(schedule, NEXT_MONDAY)
    assert (window.start.time(), window.end.time()) == (time(9, 0), time(17, 0))


def test_exception_custom_hours_and_fall_through():
    schedule = schedule_from_documents(
        _office_week(),
        [
            {"date": "2030-01-07", "is_working": True, "hours": {"start": "12:00", "end": "14:00"}},
            {"date": "2030-01-14", "is_working": True},
            {"date": "2030-01-12T08:30:00", "is_working": True, "hours": {"start": "10:00", "end": "12:00"}},
        ],
    )
    custom = effective_window(schedule, MONDAY)
    assert (custom.start.time(), custom.end.time()) == (time(12, 0), time(14, 0))
    # Working exception without hours uses the weekday default.
    default = effective_window(schedule, NEXT_MONDAY)
    assert (default.start.time(), default.end.time()) == (time(9, 0), time(17, 0))
    saturday = effective_window(schedule, SATURDAY)
    assert saturday.start == datetime(2030, 1, 12, 10, 0)


def test_working_exception_on_day_off_without_hours_is_unavailable():
    schedule = schedule_from_documents(_office_week(), [{"date": SATURDAY.isoformat(), "is_working": True}])
    assert effective_window(schedule, SATURDAY) is None


def test_effective_window_accepts_datetime():
    window = effective_window(default_schedule(), datetime(2030, 1, 7, 23, 59))
    assert window.start.date() == MONDAY


def test_strict_parsing_rejects_bad_documents():
    with pytest.raises(ScheduleError):
        parse_working_days({"funday": {"is_working": False}})
    with pytest.raises(ScheduleError):
        parse_working_days({"monday": {"is_working": True}})
    with pytest.raises(ScheduleError):
        parse_working_days({"monday": {"is_working": True, "hours": {"start": "17:00", "end": "09:00"}}})
    with pytest.raises(ScheduleError):
        parse_working_days({"monday": {"is_working": True, "hours": {"start": "9am", "end": "17:00"}}})
    with pytest.raises(ScheduleError):
        parse_working_days(["monday"])
    with pytest.raises(ScheduleError) as dup:
        parse_exceptions(
            [{"date": "2030-01-07", "is_working": False}, {"date": "2030-01-07", "is_working": True}]
        )
    assert "duplicate_exception_date" in str(dup.value)
    with pytest.raises(ScheduleError):
        parse_exceptions([{"date": "not-a-date", "is_working": False}])


def test_lenient_parsing_degrades_to_unavailable():
    days = parse_working_days(
        {
            "monday": {"is_working": True, "hours": {"start": "bogus", "end": "17:00"}},
            "tuesday": "yes",
            "funday": {"is_working": True},
        },
        strict=False,
    )
    assert days["monday"].is_working and days["monday"].hours is None
    assert days["tuesday"] == WorkingDay(False)
    exceptions = parse_exceptions(
        [
            {"date": "2030-01-07", "is_working": False},
            {"date": "2030-01-07", "is_working": True},
            {"date": "garbage", "is_working": True},
            "junk",
        ],
        strict=False,
    )
    assert len(exceptions) == 1
    assert exceptions[0].is_working is False
    schedule = WorkingSchedule(days, exceptions)
    assert effective_window(schedule, date(2030, 1, 8)) is None


def test_lenient_parsing_reads_text_flags():
    hours = {"start": "09:00", "end": "17:00"}
    days = parse_working_days(
        {
            "monday": {"is_working": "false", "hours": hours},
            "tuesday": {"is_working": "TRUE", "hours": hours},
            "wednesday": {"is_working": 1, "hours": hours},
            "thursday": {"is_working": "yes", "hours": hours},
        },
        strict=False,
    )
    assert not days["monday"].is_working
    assert days["tuesday"].is_working
    assert not days["wednesday"].is_working
    assert not days["thursday"].is_working
    exceptions = parse_exceptions([{"date": "2030-01-08", "is_working": "false"}], strict=False)
    assert exceptions[0].is_working is False
    schedule = WorkingSchedule(days, exceptions)
    assert effective_window(schedule, MONDAY) is None
    assert effective_window(schedule, date(2030, 1, 8)) is None
    assert effective_window(schedule, date(2030, 1, 15)) is not None


def test_missing_weekday_keys_default_to_day_off():
    schedule = schedule_from_documents({"monday": {"is_working": True, "hours": {"start": "08:00", "end": "12:00"}}}, [])
    assert set(schedule.by_weekday) == set(WEEKDAYS)
    assert effective_window(schedule, date(2030, 1, 9)) is None


def test_schedule_requires_all_weekday_keys():
    with pytest.raises(ScheduleError):
        WorkingSchedule({"monday": WorkingDay(False)})


def test_working_hours_order_enforced():
    with pytest.raises(ScheduleError):
        WorkingHours(time(10, 0), time(10, 0))


def test_merge_onto_base_keeps_other_days():
    base = default_schedule().by_weekday
    days = parse_working_days({"friday": {"is_working": False}}, base=base)
    assert days["friday"] == WorkingDay(False)
    assert days["monday"] == base["monday"]


def test_load_and_dump_stored_rows():
    schedule = schedule_from_documents(_office_week(), [{"date": "2030-01-07", "is_working": False}])
    working_days_json, exceptions_json = dump_schedule(schedule)
    assert json.loads(exceptions_json) == [{"date": "2030-01-07", "is_working": False}]
    loaded = load_schedule({"working_days_json": working_days_json, "working_exceptions_json": exceptions_json})
    assert loaded == schedule


def test_load_schedule_legacy_row_uses_default_week():
    loaded = load_schedule({"working_days_json": None, "working_exceptions_json": "not json"})
    assert effective_window(loaded, MONDAY) is not None
    assert loaded.exceptions == ()


def test_window_contains_is_time_of_day_on_same_date():
    window = effective_window(default_schedule(), MONDAY)
    assert window.contains(datetime(2030, 1, 7, 9, 0), datetime(2030, 1, 7, 17, 0))
    assert not window.contains(datetime(2030, 1, 7, 8, 45), datetime(2030, 1, 7, 9, 15))
    assert not window.contains(datetime(2030, 1, 7, 16, 45), datetime(2030, 1, 7, 17, 15))
    # Crossing midnight never fits a single-day window.
    assert not window.contains(datetime(2030, 1, 7, 16, 0), datetime(2030, 1, 8, 0, 0))
    assert not window.contains(datetime(2030, 1, 8, 9, 0), datetime(2030, 1, 8, 10, 0))
