from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from medibot.reminders.recurrence import (
    InvalidReminderSchedule,
    ReminderTime,
    next_occurrence,
    parse_reminder_times,
)


def test_parse_accepts_single_digit_hour_and_normalizes_label() -> None:
    rt = ReminderTime.parse("9:05")
    assert (rt.hour, rt.minute) == (9, 5)
    assert rt.label == "09:05"


@pytest.mark.parametrize("value", ["24:00", "12:60", "9:5", "noon", "", "12:00:00", None])
def test_parse_rejects_malformed_times(value) -> None:
    with pytest.raises(InvalidReminderSchedule):
        ReminderTime.parse(value)


def test_invalid_schedule_is_a_value_error() -> None:
    assert issubclass(InvalidReminderSchedule, ValueError)


def test_parse_reminder_times_dedupes_and_keeps_order() -> None:
    parsed = parse_reminder_times(["21:00", "09:00", "9:00", "21:00"])
    assert [rt.label for rt in parsed] == ["21:00", "09:00"]


def test_parse_reminder_times_rejects_empty_list() -> None:
    with pytest.raises(InvalidReminderSchedule):
        parse_reminder_times([])


def test_next_occurrence_later_today() -> None:
    now = datetime(2026, 3, 2, 8, 59, tzinfo=timezone.utc)
    assert next_occurrence(ReminderTime(9, 0), now) == datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def test_next_occurrence_rolls_to_tomorrow_when_time_has_passed() -> None:
    now = datetime(2026, 3, 2, 21, 30, tzinfo=timezone.utc)
    assert next_occurrence(ReminderTime(9, 0), now) == datetime(2026, 3, 3, 9, 0, tzinfo=timezone.utc)


def test_next_occurrence_at_exactly_now_is_tomorrow() -> None:
    now = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
    assert next_occurrence(ReminderTime(9, 0), now) == now + timedelta(days=1)


def test_next_occurrence_is_within_a_day() -> None:
    now = datetime(2026, 3, 2, 13, 17, 42, tzinfo=timezone.utc)
    for label in ["00:00", "13:17", "13:18", "23:59"]:
        fire_at = next_occurrence(ReminderTime.parse(label), now)
        assert now < fire_at <= now + timedelta(hours=24)


def test_next_occurrence_keeps_wall_clock_across_dst_start() -> None:
    tz = ZoneInfo("America/New_York")
    # Clocks spring forward on 2026-03-08
    now = datetime(2026, 3, 7, 10, 0, tzinfo=tz)
    fire_at = next_occurrence(ReminderTime(9, 0), now)
    assert (fire_at.date().isoformat(), fire_at.hour, fire_at.minute) == ("2026-03-08", 9, 0)
    assert fire_at.utcoffset() == timedelta(hours=-4)
