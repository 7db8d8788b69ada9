"""Tiny time helpers for minute-of-day math and display labels."""

import logging
import re
from datetime import date, datetime, time
from typing import Optional, Union


logger = logging.getLogger(__name__)

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

STANDARD_DAY_MINUTES = 480  # one 8-hour block
MAX_REASONABLE_DURATION_MINUTES = 2400  # 5 work days
FALLBACK_DURATION_MINUTES = 60

_HOURS_RE = re.compile(r"([\d.]+)\s*(hours?|hrs?|h\b)")
_MINUTES_RE = re.compile(r"([\d.]+)\s*(minutes?|mins?|m\b)")
_DAYS_RE = re.compile(r"([\d.]+)\s*(days?)")


def parse_hhmm(s: str) -> int:
    t = time.fromisoformat(s)  # 'HH:MM' -> time
    return t.hour * 60 + t.minute  # minutes since midnight


def format_hhmm(minutes: int) -> str:
    h, m = divmod(int(minutes), 60)
    return f"{h:02d}:{m:02d}"


def format_time_display(minutes: int) -> str:
    """12-hour label, e.g. 810 -> '1:30 PM'."""
    h, m = divmod(int(minutes), 60)
    ampm = "PM" if h % 24 >= 12 else "AM"
    hour = h % 12 or 12
    return f"{hour}:{m:02d} {ampm}"


def format_date_label(day: date) -> str:
    return f"{day.strftime('%a, %b')} {day.day}"  # 'Mon, Mar 2'


def minute_of_day(dt: datetime) -> int:
    return dt.hour * 60 + dt.minute


def same_day(a: Union[date, datetime], b: Union[date, datetime]) -> bool:
    a_day = a.date() if isinstance(a, datetime) else a
    b_day = b.date() if isinstance(b, datetime) else b
    return a_day == b_day


def weekday_name(day: Union[date, datetime]) -> str:
    return WEEKDAYS[day.weekday()]


def is_weekend(day: Union[date, datetime]) -> bool:
    return day.weekday() >= 5


def intervals_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    return a_start < b_end and b_start < a_end


def parse_duration_text(text: str) -> Optional[int]:
    """Whole minutes from '2 hours', '90 min' or '1.5 days'; None if unreadable or not positive."""
    text = str(text).strip().lower()
    minutes = None
    if text.isdigit():
        minutes = int(text)
    else:
        match = _HOURS_RE.search(text)
        if match:
            minutes = int(round(float(match.group(1)) * 60))
        else:
            match = _MINUTES_RE.search(text)
            if match:
                minutes = int(round(float(match.group(1))))
            else:
                match = _DAYS_RE.search(text)
                if match:
                    minutes = int(round(float(match.group(1)) * STANDARD_DAY_MINUTES))
    if minutes is None or minutes <= 0:
        return None
    if minutes > MAX_REASONABLE_DURATION_MINUTES:
        logger.warning(f"Unusually high duration: {minutes} min (max {MAX_REASONABLE_DURATION_MINUTES})")
    return minutes


def parse_duration_to_minutes(duration: Optional[Union[int, float, str]]) -> int:
    """Parse '2 hours', '90 min', '1.5 days' or a number into whole minutes.

    Days count as one 8-hour block each. Anything unreadable or not positive
    falls back to an hour so scoring can carry on.
    """
    if duration is None or duration == "":
        return FALLBACK_DURATION_MINUTES
    if isinstance(duration, (int, float)):
        minutes = int(round(duration))
        if minutes > MAX_REASONABLE_DURATION_MINUTES:
            logger.warning(f"Unusually high duration: {minutes} min (max {MAX_REASONABLE_DURATION_MINUTES})")
        return minutes if minutes > 0 else FALLBACK_DURATION_MINUTES

    minutes = parse_duration_text(duration)
    if minutes is None:
        logger.warning(f"Could not parse duration {duration!r}, using {FALLBACK_DURATION_MINUTES} min")
        return FALLBACK_DURATION_MINUTES
    return minutes
