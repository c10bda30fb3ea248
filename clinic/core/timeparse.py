"""
Time-of-day values for slots and appointments.

Slots are stored as 24-hour "HH:MM" strings while appointments carry a
display time such as "10:30 AM". Both go through ``SlotTime`` so that a
malformed value is rejected with ``InvalidTimeError`` instead of slipping
through to a query.
"""

import re
from datetime import date
from typing import NamedTuple

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

TIME_24H_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")
_TIME_12H_PATTERN = re.compile(
    r"^(\d{1,2}):([0-5][0-9])\s*([AaPp])\.?\s*[Mm]\.?$"
)


class InvalidTimeError(ValueError):
    pass


class SlotTime(NamedTuple):
    hour: int
    minute: int

    @property
    def minutes(self) -> int:
        return self.hour * 60 + self.minute

    @classmethod
    def from_minutes(cls, total: int) -> "SlotTime":
        if not 0 <= total < 24 * 60:
            raise InvalidTimeError(f"{total} minutes is outside a single day")
        return cls(total // 60, total % 60)

    def plus_minutes(self, delta: int) -> "SlotTime":
        return SlotTime.from_minutes(self.minutes + delta)

    def to_24h(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    def to_12h(self) -> str:
        period = "PM" if self.hour >= 12 else "AM"
        hour12 = self.hour % 12 or 12
        return f"{hour12}:{self.minute:02d} {period}"


def parse_24h(text: str) -> SlotTime:
    """Parse a strict 24-hour ``H:MM`` / ``HH:MM`` string."""
    if not isinstance(text, str):
        raise InvalidTimeError("Time must be a string")
    match = TIME_24H_PATTERN.match(text.strip())
    if match is None:
        raise InvalidTimeError(f"Invalid time {text!r}, expected 24-hour HH:MM")
    return SlotTime(int(match.group(1)), int(match.group(2)))


def parse_time(text: str) -> SlotTime:
    """
    Parse a time typed by a person or sent by the booking form.

    Accepts 24-hour values ("14:30") and 12-hour values with an AM/PM marker
    ("2:30 PM", "2:30pm", "02:30 p.m.").
    """
    if not isinstance(text, str) or not text.strip():
        raise InvalidTimeError("Time is required")
    cleaned = text.strip()

    match = _TIME_12H_PATTERN.match(cleaned)
    if match is not None:
        hour, minute = int(match.group(1)), int(match.group(2))
        if not 1 <= hour <= 12:
            raise InvalidTimeError(f"Invalid 12-hour time {text!r}")
        is_pm = match.group(3).upper() == "P"
        if is_pm and hour < 12:
            hour += 12
        elif not is_pm and hour == 12:
            hour = 0
        return SlotTime(hour, minute)

    return parse_24h(cleaned)


def day_name(value: date) -> str:
    return WEEKDAYS[value.weekday()]
