"""
Conflict detection for proposed bookings and technician assignments.
Handles buffer-aware time overlap, crew/vehicle capacity, and per-technician limits.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from .models import Job, SchedulingPreferences, Technician
from .multiday import check_multi_day_conflicts
from .slots import Booking, bookings_for_date
from .util.time_utils import format_time_display, intervals_overlap, minute_of_day, weekday_name


logger = logging.getLogger(__name__)

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"

DEFAULT_PROPOSAL_MINUTES = 120
END_OF_DAY_MINUTE = 24 * 60


@dataclass
class Conflict:
    """A clash between a proposal and existing bookings."""
    conflict_type: str
    severity: str
    message: str
    jobs: List[Job] = field(default_factory=list)
    overlap_minutes: int = 0
    can_override: bool = False

    @property
    def is_hard(self) -> bool:
        return self.severity == SEVERITY_ERROR


def has_hard_conflict(conflicts: Iterable[Conflict]) -> bool:
    return any(c.is_hard for c in conflicts)


def _proposal_minutes(proposed_start: datetime, proposed_end: Optional[datetime]) -> Tuple[int, int]:
    """Minutes-of-day for the proposal, clipped to the start's calendar day."""
    if proposed_end is None:
        proposed_end = proposed_start + timedelta(minutes=DEFAULT_PROPOSAL_MINUTES)
    start = minute_of_day(proposed_start)
    if proposed_end.date() != proposed_start.date():
        return start, END_OF_DAY_MINUTE
    return start, minute_of_day(proposed_end)


def _other_bookings(jobs, day, preferences, exclude_job_id):
    return [
        b for b in bookings_for_date(jobs, day, preferences)
        if exclude_job_id is None or b.job.id != exclude_job_id
    ]


def _conflict_message(booking: Booking) -> str:
    return f'Conflicts with "{booking.job.label}" at {format_time_display(booking.start_minute)}'


def check_for_conflicts(
    proposed_start: datetime,
    proposed_end: Optional[datetime],
    jobs: Iterable[Job],
    preferences: SchedulingPreferences,
    exclude_job_id: Optional[str] = None
) -> List[Conflict]:
    """
    Report same-day bookings whose buffered interval touches the proposal.

    Each booking is widened by ``buffer_minutes`` on both sides. Business-level
    overlap is advisory; capacity is judged by check_resource_conflicts.
    """
    if proposed_start is None:
        return []

    start, end = _proposal_minutes(proposed_start, proposed_end)
    buffer = preferences.buffer_minutes
    conflicts = []

    for booking in _other_bookings(jobs, proposed_start.date(), preferences, exclude_job_id):
        overlap_start = max(start, booking.start_minute - buffer)
        overlap_end = min(end, booking.end_minute + buffer)
        if overlap_start < overlap_end:
            conflicts.append(Conflict(
                conflict_type="time_overlap",
                severity=SEVERITY_WARNING,
                message=_conflict_message(booking),
                jobs=[booking.job],
                overlap_minutes=overlap_end - overlap_start
            ))

    return conflicts


def check_resource_conflicts(
    proposed_start: datetime,
    proposed_end: Optional[datetime],
    jobs: Iterable[Job],
    preferences: SchedulingPreferences,
    exclude_job_id: Optional[str] = None
) -> List[Conflict]:
    """
    Check whether a crew/vehicle is free for the proposal.

    Only literal double-booking counts here, so buffers are ignored.
    """
    if proposed_start is None:
        return []

    start, end = _proposal_minutes(proposed_start, proposed_end)
    in_use = [
        b for b in _other_bookings(jobs, proposed_start.date(), preferences, exclude_job_id)
        if intervals_overlap(start, end, b.start_minute, b.end_minute)
    ]
    capacity = max(1, preferences.vehicle_count)

    if len(in_use) < capacity:
        return []

    overlap = max(min(end, b.end_minute) - max(start, b.start_minute) for b in in_use)
    return [Conflict(
        conflict_type="resource_capacity",
        severity=SEVERITY_ERROR,
        message=f"All {capacity} crews/vehicles are booked",
        jobs=[b.job for b in in_use],
        overlap_minutes=overlap
    )]


def technician_bookings(
    tech: Technician,
    jobs: Iterable[Job],
    day: date,
    preferences: Optional[SchedulingPreferences] = None,
    exclude_job_id: Optional[str] = None
) -> List[Booking]:
    own = [j for j in jobs if j.assigned_technician_id == tech.id and j.id != exclude_job_id]
    return bookings_for_date(own, day, preferences)


def check_tech_conflicts(
    tech: Technician,
    job: Job,
    jobs: Iterable[Job],
    day: date,
    preferences: SchedulingPreferences
) -> List[Conflict]:
    """Validate putting ``job`` on ``tech``'s calendar for ``day``."""
    conflicts = []
    name = tech.display_name

    working, _ = tech.availability(day)
    if not working:
        conflicts.append(Conflict(
            conflict_type="day_off",
            severity=SEVERITY_ERROR,
            message=f"{name} is scheduled off on {weekday_name(day)}s",
            can_override=True
        ))

    own = technician_bookings(tech, jobs, day, preferences, exclude_job_id=job.id)
    if len(own) >= tech.max_jobs_per_day:
        conflicts.append(Conflict(
            conflict_type="max_jobs",
            severity=SEVERITY_ERROR,
            message=f"{name} already has {tech.max_jobs_per_day} jobs scheduled",
            jobs=[b.job for b in own]
        ))

    # the job's own footprint on this day (segment for multi-day jobs)
    placed = bookings_for_date([job], day, preferences)
    job_minutes = placed[0].duration_minutes if placed else job.duration_minutes(preferences)

    booked_minutes = sum(b.duration_minutes for b in own)
    total_hours = (booked_minutes + job_minutes) / 60
    if total_hours > tech.max_hours_per_day:
        conflicts.append(Conflict(
            conflict_type="max_hours",
            severity=SEVERITY_WARNING,
            message=f"Would exceed {tech.max_hours_per_day:g}hr daily limit ({total_hours:.1f}hrs total)"
        ))

    if placed and not placed[0].is_pending_offer:
        start, end = placed[0].start_minute, placed[0].end_minute
        buffer = preferences.buffer_minutes

        hours = tech.hours_for(day)
        if hours is not None and (start < hours.start_minute or end > hours.end_minute):
            conflicts.append(Conflict(
                conflict_type="outside_hours",
                severity=SEVERITY_WARNING,
                message=f"Outside {name}'s working hours ({hours.start}-{hours.end})"
            ))

        for booking in own:
            clear = end + buffer <= booking.start_minute or start >= booking.end_minute + buffer
            if clear:
                continue
            overlap = min(end, booking.end_minute + buffer) - max(start, booking.start_minute - buffer)
            conflicts.append(Conflict(
                conflict_type="time_conflict",
                severity=SEVERITY_ERROR,
                message=f"Time slot conflicts with \"{booking.job.label}\" at {format_time_display(booking.start_minute)}",
                jobs=[booking.job],
                overlap_minutes=max(overlap, 0)
            ))

    return conflicts


class ConflictChecker:
    """Validates assignments against the latest job snapshot."""

    def __init__(self, preferences: SchedulingPreferences):
        """Initialize with business preferences."""
        self.preferences = preferences

    def validate_assignment(
        self,
        tech: Technician,
        job: Job,
        jobs: List[Job],
        day: Optional[date] = None
    ) -> List[Conflict]:
        """
        Validate if a job can be committed to a technician.

        Args:
            tech: Technician receiving the job
            job: The job, carrying its proposed start if it has one
            jobs: Latest snapshot of all jobs
            day: Day to validate (defaults to the job's start date)

        Returns:
            List of conflicts (empty if valid)
        """
        if day is None:
            if job.scheduled_start is None:
                return []
            day = job.scheduled_start.date()

        conflicts = check_tech_conflicts(tech, job, jobs, day, self.preferences)

        if job.multi_day_schedule and job.multi_day_schedule.is_multi_day:
            others = [j for j in jobs if j.id != job.id]
            for day_conflict in check_multi_day_conflicts(
                job.multi_day_schedule.segments, others, tech_id=tech.id, preferences=self.preferences
            ):
                conflicts.append(Conflict(
                    conflict_type="multi_day",
                    severity=SEVERITY_ERROR,
                    message=f"Day {day_conflict.day_number} ({day_conflict.day}) overlaps {len(day_conflict.jobs)} job(s)",
                    jobs=day_conflict.jobs
                ))

        return conflicts

    def validate_proposal(
        self,
        proposed_start: datetime,
        proposed_end: Optional[datetime],
        jobs: List[Job],
        exclude_job_id: Optional[str] = None
    ) -> List[Conflict]:
        """Time-overlap warnings plus the crew capacity check."""
        conflicts = check_for_conflicts(
            proposed_start, proposed_end, jobs, self.preferences, exclude_job_id=exclude_job_id
        )
        conflicts.extend(check_resource_conflicts(
            proposed_start, proposed_end, jobs, self.preferences, exclude_job_id=exclude_job_id
        ))
        return conflicts
