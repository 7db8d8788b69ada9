"""
Open-window search for a single day.
Builds the day's booking timeline and walks it for gaps that fit a job.
"""

import logging
from dataclasses import dataclass
from datetime import date
from math import floor
from typing import Iterable, List, Optional

from .models import DayHours, Job, JobStatus, SchedulingPreferences
from .util.time_utils import minute_of_day


logger = logging.getLogger(__name__)

SLOT_GAP = "gap"
SLOT_EMPTY_DAY = "empty_day"
SLOT_END_OF_DAY = "end_of_day"


@dataclass
class Booking:
    """A job occupying part of a day, in minutes from midnight."""
    job: Job
    start_minute: int
    end_minute: int
    is_pending_offer: bool = False

    @property
    def duration_minutes(self) -> int:
        return self.end_minute - self.start_minute


@dataclass
class Slot:
    """An open interval long enough to fit the requested job."""
    start_minute: int
    end_minute: int
    duration_minutes: int
    kind: str


@dataclass
class Workload:
    """Job count and booked minutes for one day against its cap."""
    job_count: int
    total_minutes: int
    max_jobs: int
    percent_full: int
    is_full: bool
    is_light: bool
    is_moderate: bool


def _segment_booking(job: Job, day: date) -> Optional[Booking]:
    for segment in job.multi_day_schedule.segments:
        if segment.day == day:
            return Booking(job=job, start_minute=segment.start_minute, end_minute=segment.end_minute)
    return None


def _offer_booking(job: Job, day: date, preferences: Optional[SchedulingPreferences]) -> Optional[Booking]:
    for offer in job.offered_slots:
        if offer.status != "offered" or offer.start.date() != day:
            continue
        start = minute_of_day(offer.start)
        if offer.end is not None and offer.end.date() == day:
            end = minute_of_day(offer.end)
        else:
            end = start + job.duration_minutes(preferences)
        return Booking(job=job, start_minute=start, end_minute=end, is_pending_offer=True)
    return None


def bookings_for_date(
    jobs: Iterable[Job],
    day: date,
    preferences: Optional[SchedulingPreferences] = None
) -> List[Booking]:
    """
    Collect everything that occupies time on ``day``, sorted by start.

    Covers confirmed starts, days spanned by multi-day segments, and jobs with
    a pending offered slot on that day (they hold the time until the customer
    answers).
    """
    bookings = []
    for job in jobs:
        if not job.is_active:
            continue

        if job.multi_day_schedule and job.multi_day_schedule.segments:
            booking = _segment_booking(job, day)
            if booking:
                bookings.append(booking)
            continue

        if job.scheduled_start is not None:
            if job.scheduled_start.date() == day:
                start = minute_of_day(job.scheduled_start)
                bookings.append(Booking(
                    job=job,
                    start_minute=start,
                    end_minute=start + job.duration_minutes(preferences)
                ))
            continue

        if job.status == JobStatus.SLOTS_OFFERED:
            booking = _offer_booking(job, day, preferences)
            if booking:
                bookings.append(booking)

    bookings.sort(key=lambda b: (b.start_minute, b.end_minute))
    return bookings


def calculate_day_workload(
    jobs: Iterable[Job],
    day: date,
    preferences: SchedulingPreferences,
    max_jobs: Optional[int] = None
) -> Workload:
    """Workload for ``day`` against ``max_jobs`` (the business cap by default)."""
    bookings = bookings_for_date(jobs, day, preferences)
    cap = max_jobs or preferences.max_jobs_per_day
    count = len(bookings)
    return Workload(
        job_count=count,
        total_minutes=sum(b.duration_minutes for b in bookings),
        max_jobs=cap,
        percent_full=floor(count / cap * 100 + 0.5),  # half rounds up
        is_full=count >= cap,
        is_light=count <= 1,
        is_moderate=1 < count < cap - 1
    )


def find_available_slots(
    day: date,
    jobs: Iterable[Job],
    preferences: SchedulingPreferences,
    required_minutes: int,
    working_hours: Optional[DayHours] = None,
    bookings: Optional[List[Booking]] = None
) -> List[Slot]:
    """
    Return the open windows on ``day`` that fit ``required_minutes``.

    Args:
        day: Calendar day to search
        jobs: Job snapshot; only bookings on ``day`` matter
        preferences: Business defaults (buffer, working hours)
        required_minutes: Minimum slot length
        working_hours: Technician hours overriding the business hours;
            a disabled entry means the day is off
        bookings: Precomputed bookings for the day

    Returns:
        Slots in chronological order; empty on an off day
    """
    hours = working_hours if working_hours is not None else preferences.hours_for(day)
    if hours is None or not hours.enabled:
        logger.debug(f"{day} is not a working day")
        return []

    day_start = hours.start_minute
    day_end = hours.end_minute
    buffer = preferences.buffer_minutes

    if bookings is None:
        bookings = bookings_for_date(jobs, day, preferences)

    slots = []
    cursor = day_start
    for booking in bookings:
        gap_end = min(booking.start_minute - buffer, day_end)
        if gap_end - cursor >= required_minutes:
            slots.append(Slot(
                start_minute=cursor,
                end_minute=gap_end,
                duration_minutes=gap_end - cursor,
                kind=SLOT_GAP
            ))
        cursor = max(cursor, booking.end_minute + buffer)

    if day_end - cursor >= required_minutes:
        slots.append(Slot(
            start_minute=cursor,
            end_minute=day_end,
            duration_minutes=day_end - cursor,
            kind=SLOT_END_OF_DAY if bookings else SLOT_EMPTY_DAY
        ))

    return slots
