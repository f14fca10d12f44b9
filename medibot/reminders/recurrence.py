"""
Daily clock-time recurrence for medication reminders
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, time
import re


# Wake-ups recur at a fixed offset from the instant that fired
DAILY_INTERVAL = timedelta(hours=24)

_HHMM = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


class InvalidReminderSchedule(ValueError):
    """Raised when a medication cannot be scheduled (no id, no times, bad HH:MM)"""


@dataclass(frozen=True)
class ReminderTime:
    hour: int
    minute: int

    @classmethod
    def parse(cls, value: str) -> "ReminderTime":
        match = _HHMM.match(value.strip()) if isinstance(value, str) else None
        if not match:
            raise InvalidReminderSchedule(f"Invalid reminder time {value!r}; expected HH:MM")
        return cls(hour=int(match.group(1)), minute=int(match.group(2)))

    @property
    def label(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    def as_time(self) -> time:
        return time(self.hour, self.minute)


def parse_reminder_times(values) -> list:
    """Validate a list of HH:MM strings, dropping duplicates but keeping order"""
    if not values:
        raise InvalidReminderSchedule("At least one reminder time is required")
    parsed = []
    for value in values:
        rt = ReminderTime.parse(value)
        if rt not in parsed:
            parsed.append(rt)
    return parsed


def next_occurrence(reminder_time: ReminderTime, now: datetime) -> datetime:
    """
    Next instant at reminder_time in now's timezone: today if still strictly
    in the future, otherwise tomorrow. `now` must be timezone-aware.
    """
    candidate = now.replace(hour=reminder_time.hour, minute=reminder_time.minute, second=0, microsecond=0)
    if candidate <= now:
        # Rebuild from the calendar date so the wall-clock time holds across DST
        tomorrow = (candidate + timedelta(days=1)).date()
        candidate = datetime.combine(tomorrow, reminder_time.as_time(), tzinfo=now.tzinfo)
    return candidate
