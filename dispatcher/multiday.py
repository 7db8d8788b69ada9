"""
Helpers for jobs that run longer than one working day.
Splits a duration into consecutive working-day segments and checks them for clashes.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from math import ceil
from typing import Dict, Iterable, List, Optional

from .models import DayHours, DaySegment, Job, MultiDaySchedule, SchedulingPreferences, Technician
from .slots import bookings_for_date
from .util.time_utils import (
    STANDARD_DAY_MINUTES, format_hhmm, format_time_display, intervals_overlap, weekday_name
)


logger = logging.getLogger(__name__)

MAX_SEGMENT_DAYS = 30


@dataclass
class DayConflict:
    """Existing bookings that collide with one segment."""
    day: date
    day_number: int
    jobs: List[Job] = field(default_factory=list)


@dataclass
class MultiDayAnalysis:
    has_conflicts: bool
    conflicts: List[DayConflict]
    proposed_schedule: MultiDaySchedule
    affected_days: List[date]
    summary: str


def calculate_days_needed(duration_minutes: Optional[int], hours_per_day: float = 8) -> int:
    if not duration_minutes or duration_minutes <= 0:
        return 1
    return ceil(duration_minutes / (hours_per_day * 60))


def is_multi_day_job(duration_minutes: Optional[int], max_day_minutes: int = STANDARD_DAY_MINUTES) -> bool:
    return bool(duration_minutes) and duration_minutes > max_day_minutes


def generate_day_segments(
    start_date: date,
    total_minutes: int,
    working_hours: Optional[Dict[str, DayHours]] = None,
    minutes_per_day: int = STANDARD_DAY_MINUTES
) -> List[DaySegment]:
    """
    Lay ``total_minutes`` over consecutive working days from ``start_date``.

    Disabled weekdays are skipped; unconfigured weekdays use 08:00-17:00. Each
    day books at most ``minutes_per_day`` so the segment count matches
    calculate_days_needed whenever the working window is a full day.
    """
    working_hours = working_hours or {}
    segments = []
    remaining = total_minutes
    current = start_date
    day_number = 1
    scanned = 0

    while remaining > 0:
        # bounded so an all-disabled week cannot spin forever
        scanned += 1
        if scanned > MAX_SEGMENT_DAYS * 2:
            logger.warning(f"No working days found within {scanned - 1} days of {start_date}")
            break

        hours = working_hours.get(weekday_name(current)) or DayHours()
        if not hours.enabled:
            current += timedelta(days=1)
            continue

        capacity = min(hours.minutes, minutes_per_day)
        day_minutes = min(remaining, capacity)
        segments.append(DaySegment(
            day=current,
            day_number=day_number,
            start_time=hours.start,
            end_time=format_hhmm(hours.start_minute + day_minutes),
            duration_minutes=day_minutes,
            is_complete=remaining <= capacity
        ))

        remaining -= day_minutes
        day_number += 1
        current += timedelta(days=1)

        if day_number > MAX_SEGMENT_DAYS:
            logger.warning(f"Multi-day job exceeds {MAX_SEGMENT_DAYS} days, truncating")
            break

    return segments


def working_week(
    tech: Optional[Technician] = None,
    preferences: Optional[SchedulingPreferences] = None
) -> Dict[str, DayHours]:
    """The technician's configured week, else the business week."""
    if tech is not None and tech.working_hours:
        return tech.working_hours
    if preferences is not None:
        return preferences.working_hours
    return {}


def create_multi_day_schedule(
    start_date: date,
    total_minutes: int,
    working_hours: Optional[Dict[str, DayHours]] = None
) -> MultiDaySchedule:
    segments = generate_day_segments(start_date, total_minutes, working_hours)
    return MultiDaySchedule(
        is_multi_day=len(segments) > 1,
        total_days=len(segments),
        total_duration_minutes=total_minutes,
        start_date=segments[0].day if segments else None,
        end_date=segments[-1].day if segments else None,
        segments=segments
    )


def segment_for_date(day: date, schedule: Optional[MultiDaySchedule]) -> Optional[DaySegment]:
    if schedule is None:
        return None
    for segment in schedule.segments:
        if segment.day == day:
            return segment
    return None


def check_multi_day_conflicts(
    segments: List[DaySegment],
    jobs: Iterable[Job],
    tech_id: Optional[str] = None,
    preferences: Optional[SchedulingPreferences] = None
) -> List[DayConflict]:
    """Bookings overlapping any segment, optionally limited to one technician."""
    candidates = [
        j for j in jobs
        if tech_id is None or j.assigned_technician_id == tech_id
    ]
    conflicts = []
    for segment in segments:
        clashing = [
            b.job for b in bookings_for_date(candidates, segment.day, preferences)
            if intervals_overlap(segment.start_minute, segment.end_minute, b.start_minute, b.end_minute)
        ]
        if clashing:
            conflicts.append(DayConflict(day=segment.day, day_number=segment.day_number, jobs=clashing))
    return conflicts


def analyze_multi_day_conflicts(
    start_date: date,
    total_minutes: int,
    working_hours: Optional[Dict[str, DayHours]],
    jobs: Iterable[Job],
    tech_id: Optional[str] = None,
    preferences: Optional[SchedulingPreferences] = None
) -> MultiDayAnalysis:
    schedule = create_multi_day_schedule(start_date, total_minutes, working_hours)
    conflicts = check_multi_day_conflicts(schedule.segments, jobs, tech_id, preferences)

    if conflicts:
        days = ", ".join(f"Day {c.day_number}" for c in conflicts)
        summary = f"Conflicts on {len(conflicts)} day{'s' if len(conflicts) > 1 else ''}: {days}"
    else:
        summary = "No conflicts detected"

    return MultiDayAnalysis(
        has_conflicts=bool(conflicts),
        conflicts=conflicts,
        proposed_schedule=schedule,
        affected_days=[c.day for c in conflicts],
        summary=summary
    )


def format_segment_display(segment: Optional[DaySegment], total_days: int) -> str:
    """'Day 1 of 3: 8:00 AM - 4:00 PM'"""
    if segment is None:
        return ""
    return (
        f"Day {segment.day_number} of {total_days}: "
        f"{format_time_display(segment.start_minute)} - {format_time_display(segment.end_minute)}"
    )
