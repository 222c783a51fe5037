from datetime import datetime, timedelta, timezone

import pytest

from clinic_scheduler.services.errors import ValidationFailed
from clinic_scheduler.services.intervals import (
    minute_of_day,
    overlaps,
    overlaps_any,
    parse_timestamp,
    plus_minutes,
    serialize,
)


def _t(hhmm: str) -> datetime:
    hour, minute = hhmm.split(":")
    return datetime(2030, 1, 7, int(hour), int(minute))


@pytest.mark.parametrize(
    "a, b, expected",
    [
        (("09:00", "10:00"), ("09:30", "10:30"), True),
        (("09:00", "10:00"), ("09:15", "09:45"), True),
        (("09:00", "10:00"), ("10:00", "11:00"), False),
        (("09:00", "10:00"), ("08:00", "09:00"), False),
        (("09:00", "10:00"), ("11:00", "12:00"), False),
    ],
)
def test_overlaps_is_half_open_and_symmetric(a, b, expected):
    a_start, a_end = _t(a[0]), _t(a[1])
    b_start, b_end = _t(b[0]), _t(b[1])
    assert overlaps(a_start, a_end, b_start, b_end) is expected
    assert overlaps(b_start, b_end, a_start, a_end) is expected


def test_overlaps_any_checks_every_interval():
    busy = [(_t("09:00"), _t("09:30")), (_t("11:00"), _t("12:00"))]
    assert overlaps_any(_t("11:30"), _t("11:45"), busy)
    assert not overlaps_any(_t("09:30"), _t("11:00"), busy)
    assert not overlaps_any(_t("09:30"), _t("11:00"), [])


def test_parse_timestamp_truncates_to_minutes_and_drops_offset():
    parsed = parse_timestamp("2030-01-07T09:15:42+02:00")
    assert parsed == datetime(2030, 1, 7, 9, 15)
    assert parsed.tzinfo is None
    assert serialize(parsed) == "2030-01-07T09:15:00"
    aware = datetime(2030, 1, 7, 9, 15, 30, tzinfo=timezone(timedelta(hours=-5)))
    assert parse_timestamp(aware) == datetime(2030, 1, 7, 9, 15)


def test_parse_timestamp_rejects_missing_and_malformed():
    with pytest.raises(ValidationFailed) as missing:
        parse_timestamp("", "ends_at")
    assert str(missing.value) == "ends_at_required"
    assert missing.value.field == "ends_at"
    with pytest.raises(ValidationFailed) as bad:
        parse_timestamp("next tuesday")
    assert str(bad.value) == "starts_at_invalid"


def test_minute_helpers():
    assert minute_of_day(_t("13:45")) == 13 * 60 + 45
    assert plus_minutes(_t("23:50"), 20) == datetime(2030, 1, 8, 0, 10)
