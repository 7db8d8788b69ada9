"""
Technician scoring and greedy job allocation.
Ranks technicians for a job and bulk-assigns unassigned jobs in input order.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from .conflicts import ConflictChecker, has_hard_conflict
from .models import Job, SchedulingPreferences, Technician
from .multiday import create_multi_day_schedule, is_multi_day_job, working_week
from .slots import Booking, bookings_for_date
from .util.haversine import distance_between, travel_minutes
from .util.time_utils import STANDARD_DAY_MINUTES, intervals_overlap, weekday_name


logger = logging.getLogger(__name__)

AVAILABILITY_WEIGHT = 40
DEFAULT_AVAILABILITY_FACTOR = 0.8  # weekday not configured
CAPACITY_WEIGHT = 30
PROXIMITY_WEIGHT = 25
WORKLOAD_BALANCE_WEIGHT = 20
NEAR_OTHER_JOB_BONUS = 15
TRAVEL_DISTANCE_PENALTY = -2  # per mile beyond max_travel_miles
OFF_DAY_PENALTY = -50
FULL_DAY_PENALTY = -50
OVER_HOURS_PENALTY = -30
OUTSIDE_HOURS_PENALTY = -40
TIME_CONFLICT_PENALTY = -500
TRAVEL_INFEASIBLE_PENALTY = -300

MIN_BUFFER_MINUTES = 10
NEAR_JOB_MILES = 10
CLOSE_TO_HOME_MILES = 10
RECOMMENDED_SCORE = 80


@dataclass
class TechScore:
    """How well one technician fits one job on one day."""
    tech: Technician
    score: int
    reasons: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    has_time_conflict: bool = False
    has_travel_conflict: bool = False

    @property
    def is_blocked(self) -> bool:
        return self.has_time_conflict

    @property
    def is_recommended(self) -> bool:
        return (
            self.score >= RECOMMENDED_SCORE
            and not self.warnings
            and not self.has_time_conflict
            and not self.has_travel_conflict
        )


@dataclass
class AssignmentSuggestion:
    job: Job
    suggestions: List[TechScore]

    @property
    def top_pick(self) -> Optional[TechScore]:
        return self.suggestions[0] if self.suggestions else None

    @property
    def has_good_match(self) -> bool:
        return any(s.is_recommended for s in self.suggestions)


@dataclass
class Assignment:
    """A job placed on a technician; ``job`` already carries the technician id."""
    job: Job
    tech: Technician
    score: int
    reasons: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class FailedAssignment:
    job: Job
    reason: str


@dataclass
class AutoAssignResult:
    successful: List[Assignment]
    failed: List[FailedAssignment]
    summary: Dict[str, Any]


@dataclass
class _DayLoad:
    job: Job
    minutes: int
    booking: Optional[Booking] = None


def _day_minutes(job: Job, day: date, preferences: Optional[SchedulingPreferences]) -> Tuple[int, Optional[Booking]]:
    """Minutes ``job`` takes on ``day``; unscheduled multi-day jobs count one working day."""
    placed = bookings_for_date([job], day, preferences)
    if placed:
        return placed[0].duration_minutes, placed[0]
    return min(job.duration_minutes(preferences), STANDARD_DAY_MINUTES), None


def _tech_day_load(
    tech: Technician,
    jobs_for_day: List[Job],
    day: date,
    preferences: Optional[SchedulingPreferences],
    exclude_job_id: Optional[str] = None
) -> List[_DayLoad]:
    """
    Jobs counting against ``tech`` on ``day``.

    Jobs booked on the day count with their booked minutes; assigned jobs with
    no start yet count as belonging to the day they were handed in for.
    """
    load = []
    for job in jobs_for_day:
        if job.assigned_technician_id != tech.id or job.id == exclude_job_id or not job.is_active:
            continue
        minutes, booking = _day_minutes(job, day, preferences)
        if booking is None and (job.scheduled_start is not None or job.multi_day_schedule):
            continue  # booked on some other day
        load.append(_DayLoad(job=job, minutes=minutes, booking=booking))
    return load


def _travel_gap_ok(first: Booking, second: Booking) -> Tuple[bool, int]:
    a = first.job.service_coordinates
    b = second.job.service_coordinates
    if a is None or b is None:
        return True, 0
    needed = travel_minutes(distance_between(a, b))
    gap = second.start_minute - first.end_minute
    return gap >= needed + MIN_BUFFER_MINUTES, needed


def score_tech_for_job(
    tech: Technician,
    job: Job,
    jobs_for_day: List[Job],
    day: date,
    preferences: Optional[SchedulingPreferences] = None
) -> TechScore:
    """
    Score ``tech`` for ``job`` on ``day``. Higher is better.

    Time overlaps with the technician's own bookings are blocking; everything
    else only moves the score.
    """
    score = 0.0
    reasons = []
    warnings = []
    day_name = weekday_name(day)

    # availability
    working, why = tech.availability(day)
    if why == "scheduled_on":
        score += AVAILABILITY_WEIGHT
        reasons.append(f"Works {day_name}s")
    elif not working:
        score += OFF_DAY_PENALTY
        warnings.append(f"Normally off on {day_name}s")
    else:
        score += AVAILABILITY_WEIGHT * DEFAULT_AVAILABILITY_FACTOR
        reasons.append(f"Available {day_name}s")

    # job capacity
    load = _tech_day_load(tech, jobs_for_day, day, preferences, exclude_job_id=job.id)
    count = len(load)
    max_jobs = tech.max_jobs_per_day
    if count < max_jobs:
        free = max_jobs - count
        score += CAPACITY_WEIGHT * (free / max_jobs)
        reasons.append(f"{free} slots available")
    else:
        score += FULL_DAY_PENALTY
        warnings.append("At max jobs for day")

    # hours budget
    booked_hours = sum(item.minutes for item in load) / 60
    job_minutes, placed = _day_minutes(job, day, preferences)
    if booked_hours + job_minutes / 60 <= tech.max_hours_per_day:
        reasons.append(f"{tech.max_hours_per_day - booked_hours:.1f}hrs available")
    else:
        score += OVER_HOURS_PENALTY
        warnings.append("Would exceed daily hours")

    score += WORKLOAD_BALANCE_WEIGHT * (1 - count / max_jobs)

    # proximity
    coords = job.service_coordinates
    if coords is not None and tech.home_base is not None:
        dist = distance_between(tech.home_base, coords)
        if dist <= tech.max_travel_miles:
            score += PROXIMITY_WEIGHT
            if dist <= CLOSE_TO_HOME_MILES:
                reasons.append("Close to home base")
        else:
            score += TRAVEL_DISTANCE_PENALTY * (dist - tech.max_travel_miles)
            warnings.append(f"{dist:.0f}mi from home base")

    if coords is not None and any(
        item.job.service_coordinates is not None
        and distance_between(item.job.service_coordinates, coords) <= NEAR_JOB_MILES
        for item in load
    ):
        score += NEAR_OTHER_JOB_BONUS
        reasons.append("Near other jobs today")

    has_time_conflict = False
    has_travel_conflict = False

    if placed is not None and not placed.is_pending_offer:
        hours = tech.hours_for(day)
        if hours is not None and (placed.start_minute < hours.start_minute or placed.end_minute > hours.end_minute):
            score += OUTSIDE_HOURS_PENALTY
            warnings.append(f"Outside working hours ({hours.start}-{hours.end})")

        worst_travel = 0
        for item in load:
            other = item.booking
            if other is None:
                continue
            if intervals_overlap(placed.start_minute, placed.end_minute, other.start_minute, other.end_minute):
                has_time_conflict = True
                score += TIME_CONFLICT_PENALTY
                warnings.append(f"Time conflict with {other.job.label}")
                break

            first, second = (other, placed) if other.start_minute <= placed.start_minute else (placed, other)
            feasible, needed = _travel_gap_ok(first, second)
            if not feasible:
                has_travel_conflict = True
                score += TRAVEL_INFEASIBLE_PENALTY
                warnings.append(f"Insufficient travel time: {needed} min needed to reach {second.job.label}")
            worst_travel = max(worst_travel, needed)

        if worst_travel > 45:
            score -= 40
            warnings.append(f"Long travel time ({worst_travel}+ min) between jobs")
        elif worst_travel > 30:
            score -= 20
            warnings.append(f"Moderate travel time (~{worst_travel} min) between jobs")
        elif worst_travel > 15:
            score -= 5

    return TechScore(
        tech=tech,
        score=round(score),
        reasons=reasons,
        warnings=warnings,
        has_time_conflict=has_time_conflict,
        has_travel_conflict=has_travel_conflict
    )


def suggest_assignments(
    job: Job,
    techs: List[Technician],
    jobs_for_day: List[Job],
    day: date,
    preferences: Optional[SchedulingPreferences] = None
) -> AssignmentSuggestion:
    """Technicians for ``job`` ranked best-first; ties keep roster order."""
    scores = [score_tech_for_job(tech, job, jobs_for_day, day, preferences) for tech in techs]
    scores.sort(key=lambda s: -s.score)
    return AssignmentSuggestion(job=job, suggestions=scores)


def attach_multi_day_schedule(job: Job, tech: Technician, preferences: Optional[SchedulingPreferences] = None) -> Job:
    """Copy of ``job`` with a day-by-day block when it has a start and spans several days."""
    if job.scheduled_start is None or job.multi_day_schedule is not None:
        return job
    duration = job.duration_minutes(preferences)
    if not is_multi_day_job(duration):
        return job
    schedule = create_multi_day_schedule(job.scheduled_start.date(), duration, working_week(tech, preferences))
    return job.model_copy(update={"multi_day_schedule": schedule})


def _failure_reason(tech_count: int, blocked: int, full: int, conflicted: int) -> str:
    if tech_count == 0:
        return "No technicians available"
    if blocked == tech_count:
        return "All techs have scheduling conflicts at this time"
    if full == tech_count:
        return "All techs are at capacity for the day"
    return f"No suitable tech available ({full} at capacity, {blocked + conflicted} with conflicts)"


def auto_assign_all(
    unassigned_jobs: List[Job],
    techs: List[Technician],
    assigned_jobs: List[Job],
    day: date,
    preferences: Optional[SchedulingPreferences] = None
) -> AutoAssignResult:
    """
    Greedily assign each job to its best-ranked technician with room left.

    Jobs are taken in the order given and each assignment consumes capacity
    before the next job is ranked, so reordering the input can change the
    outcome. There is no backtracking.

    Args:
        unassigned_jobs: Jobs to place, in priority order
        techs: Technician roster
        assigned_jobs: Jobs already on technicians' calendars
        day: Dispatch day
        preferences: Business defaults (buffer, default duration)

    Returns:
        AutoAssignResult with successful and failed placements
    """
    preferences = preferences or SchedulingPreferences()
    checker = ConflictChecker(preferences)
    current = list(assigned_jobs)
    successful = []
    failed = []
    start_time = datetime.now()

    logger.info(f"Starting auto-assign with {len(techs)} techs, {len(unassigned_jobs)} jobs for {day}")

    for job in unassigned_jobs:
        ranked = suggest_assignments(job, techs, current, day, preferences).suggestions
        blocked = full = conflicted = 0
        chosen = None

        for tech_score in ranked:
            tech = tech_score.tech
            if tech_score.is_blocked:
                blocked += 1
                continue

            candidate = attach_multi_day_schedule(job, tech, preferences)
            load = _tech_day_load(tech, current, day, preferences, exclude_job_id=job.id)
            job_minutes, _ = _day_minutes(candidate, day, preferences)
            booked = sum(item.minutes for item in load)
            if len(load) >= tech.max_jobs_per_day or booked + job_minutes > tech.max_hours_per_day * 60:
                full += 1
                continue

            conflicts = checker.validate_assignment(tech, candidate, current, day)
            if has_hard_conflict(conflicts):
                conflicted += 1
                logger.debug(f"{tech.display_name} rejected for {job.label}: "
                             f"{'; '.join(c.message for c in conflicts if c.is_hard)}")
                continue

            chosen = (tech_score, candidate)
            break

        if chosen is None:
            reason = _failure_reason(len(techs), blocked, full, conflicted)
            failed.append(FailedAssignment(job=job, reason=reason))
            logger.debug(f"Could not assign {job.label}: {reason}")
            continue

        tech_score, candidate = chosen
        placed = candidate.model_copy(update={"assigned_technician_id": tech_score.tech.id})
        current.append(placed)
        successful.append(Assignment(
            job=placed,
            tech=tech_score.tech,
            score=tech_score.score,
            reasons=tech_score.reasons,
            warnings=tech_score.warnings
        ))
        logger.debug(f"Assigned {job.label} to {tech_score.tech.display_name} (score {tech_score.score})")

    elapsed = (datetime.now() - start_time).total_seconds()
    logger.info(f"Auto-assign completed in {elapsed:.2f}s: "
                f"{len(successful)}/{len(unassigned_jobs)} jobs assigned")

    return AutoAssignResult(
        successful=successful,
        failed=failed,
        summary={
            "assigned": len(successful),
            "total": len(unassigned_jobs),
            "unassigned": len(failed),
        }
    )
