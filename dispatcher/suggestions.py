"""
Appointment-time suggestions.
Combines open slots, nearby bookings, day workload and customer preferences
into a ranked list of candidate start times with readable reasons.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

from .models import CustomerPreference, DayPreference, Job, SchedulingPreferences, TimeOfDay
from .multiday import calculate_days_needed
from .nearby import NearbyJob, find_nearby_jobs
from .slots import SLOT_EMPTY_DAY, Workload, calculate_day_workload, find_available_slots
from .util.haversine import distance_between
from .util.time_utils import (
    STANDARD_DAY_MINUTES, format_date_label, format_hhmm, format_time_display, is_weekend
)


logger = logging.getLogger(__name__)

BASE_SCORE = 50
EMPTY_DAY_BONUS = 5
LIGHT_DAY_BONUS = 10
VERY_CLOSE_BONUS = 25  # nearest booking under 5 mi
CLOSE_BONUS = 15       # nearest booking under 10 mi
SOON_BONUS = 10
MORNING_BONUS = 5

SOON_DAYS = 3
WARNING_HORIZON_DAYS = 7
NOON = 12 * 60
MAX_NEARBY_PER_SUGGESTION = 3
MAX_CLUSTER_JOBS = 3

# (start hour inclusive, end hour exclusive)
TIME_BUCKETS = {
    TimeOfDay.MORNING: (8, 12),
    TimeOfDay.AFTERNOON: (12, 17),
    TimeOfDay.EVENING: (17, 24),
}


@dataclass
class Suggestion:
    """A candidate appointment window."""
    day: date
    start_time: str
    end_time: str
    start_minute: int
    end_minute: int
    score: int
    reasons: List[str]
    workload: Workload
    nearby_jobs: List[NearbyJob] = field(default_factory=list)
    kind: str = ""
    is_recommended: bool = False

    @property
    def date_label(self) -> str:
        return format_date_label(self.day)

    @property
    def time_label(self) -> str:
        return f"{format_time_display(self.start_minute)} - {format_time_display(self.end_minute)}"


@dataclass
class SchedulingWarning:
    warning_type: str
    message: str
    day: Optional[date] = None
    estimated_days: Optional[int] = None
    total_minutes: Optional[int] = None


@dataclass
class Insight:
    """Informational, never blocks scheduling."""
    insight_type: str
    message: str
    jobs: List[Job] = field(default_factory=list)
    days: List[date] = field(default_factory=list)


@dataclass
class SuggestionResult:
    suggestions: List[Suggestion]
    recommended: Optional[Suggestion]
    warnings: List[SchedulingWarning]
    insights: List[Insight]
    meta: Dict[str, Any]


def matches_customer_preferences(
    day: date,
    start_minute: int,
    preference: Optional[CustomerPreference]
) -> Tuple[int, List[str]]:
    """
    Score a slot against the customer's timing preference.

    Returns:
        (match score, reasons); 50 with no reasons is neutral
    """
    if preference is None:
        return BASE_SCORE, []

    score = BASE_SCORE
    reasons = []
    hour = start_minute // 60

    if TimeOfDay.FLEXIBLE in preference.preferred_times:
        score += 10
        reasons.append("Customer is flexible on time")
    else:
        for bucket in preference.preferred_times:
            low, high = TIME_BUCKETS[bucket]
            if low <= hour < high:
                score += 20
                reasons.append(f"Customer prefers {bucket.value}")
                break

    weekend = is_weekend(day)
    if preference.preferred_days == DayPreference.ANY:
        score += 5
    elif preference.preferred_days == DayPreference.WEEKENDS and weekend:
        score += 15
        reasons.append("Customer prefers weekends")
    elif preference.preferred_days == DayPreference.WEEKDAYS and not weekend:
        score += 15
        reasons.append("Customer prefers weekdays")

    return score, reasons


def _score_slot(slot, day_offset, workload, nearby, day, customer_preference):
    score = BASE_SCORE
    reasons = []

    if slot.kind == SLOT_EMPTY_DAY:
        score += EMPTY_DAY_BONUS
        reasons.append("Open day")

    if workload.is_light:
        score += LIGHT_DAY_BONUS
        reasons.append("Light schedule day")

    if nearby:
        closest = nearby[0]
        if closest.distance_miles < 5:
            score += VERY_CLOSE_BONUS
            reasons.append(f"{closest.distance_miles:.1f} mi from {closest.job.label}")
        elif closest.distance_miles < 10:
            score += CLOSE_BONUS
            reasons.append(f"Near {closest.job.label} ({closest.distance_miles:.1f} mi)")

    match, match_reasons = matches_customer_preferences(day, slot.start_minute, customer_preference)
    if match > BASE_SCORE:
        score += match - BASE_SCORE
        reasons.extend(match_reasons)

    if day_offset <= SOON_DAYS:
        score += SOON_BONUS
        reasons.append("Available soon")

    if slot.start_minute < NOON:
        score += MORNING_BONUS
        reasons.append("Morning slot")

    return score, reasons


def _cluster_insight(job, jobs, radius_miles) -> Optional[Insight]:
    if job.service_coordinates is None:
        return None

    close = []
    for other in jobs:
        if other.id == job.id or not other.is_unscheduled or other.service_coordinates is None:
            continue
        dist = distance_between(job.service_coordinates, other.service_coordinates)
        if dist <= radius_miles:
            close.append((dist, other))

    if not close:
        return None

    close.sort(key=lambda pair: pair[0])
    names = [other.label for _, other in close[:MAX_CLUSTER_JOBS]]
    return Insight(
        insight_type="cluster",
        message=f"{len(close)} unscheduled job{'s' if len(close) > 1 else ''} within "
                f"{radius_miles:g} mi could be booked together: {', '.join(names)}",
        jobs=[other for _, other in close[:MAX_CLUSTER_JOBS]]
    )


def _imbalance_insight(jobs, preferences, today) -> Optional[Insight]:
    light, full = [], []
    for offset in range(1, WARNING_HORIZON_DAYS + 1):
        day = today + timedelta(days=offset)
        if preferences.hours_for(day) is None:
            continue
        workload = calculate_day_workload(jobs, day, preferences)
        if workload.is_full:
            full.append(day)
        elif workload.is_light:
            light.append(day)

    if not light or not full:
        return None
    return Insight(
        insight_type="workload_imbalance",
        message=f"{len(full)} full and {len(light)} light day(s) this week; consider rebalancing",
        days=full + light
    )


def generate_scheduling_suggestions(
    job: Job,
    jobs: List[Job],
    preferences: SchedulingPreferences,
    customer_preference: Optional[CustomerPreference] = None,
    days_to_analyze: int = 14,
    today: Optional[date] = None,
    max_suggestions: int = 10,
    nearby_radius_miles: float = 15,
    cluster_radius_miles: float = 10
) -> SuggestionResult:
    """
    Rank candidate start times over the next ``days_to_analyze`` days.

    Args:
        job: Job to place
        jobs: Snapshot of all jobs
        preferences: Business hours, buffer and daily cap
        customer_preference: Optional customer timing preference
        days_to_analyze: Days after ``today`` to search
        today: Reference day (defaults to the current date)
        max_suggestions: Batch size after ranking

    Returns:
        SuggestionResult; an empty suggestion list means nothing fits in the window
    """
    today = today or date.today()
    warnings = []

    duration = job.duration_minutes(preferences)
    slot_minutes = duration
    if duration > STANDARD_DAY_MINUTES:
        days = calculate_days_needed(duration)
        slot_minutes = STANDARD_DAY_MINUTES
        warnings.append(SchedulingWarning(
            warning_type="multi_day",
            message=f"This is a multi-day job (~{days} days). Suggestions show potential start dates.",
            estimated_days=days,
            total_minutes=duration
        ))

    others = [j for j in jobs if j.id != job.id]
    suggestions = []

    for offset in range(1, days_to_analyze + 1):
        day = today + timedelta(days=offset)
        if preferences.hours_for(day) is None:
            continue

        workload = calculate_day_workload(others, day, preferences)
        if workload.is_full:
            logger.debug(f"Skipping {day}: {workload.job_count}/{workload.max_jobs} jobs booked")
            if offset <= WARNING_HORIZON_DAYS:
                warnings.append(SchedulingWarning(
                    warning_type="full_day",
                    message=f"{day.strftime('%A')} ({format_date_label(day)}) is fully booked",
                    day=day
                ))
            continue

        slots = find_available_slots(day, others, preferences, slot_minutes)
        if not slots:
            continue

        nearby = find_nearby_jobs(job, others, day, radius_miles=nearby_radius_miles, preferences=preferences)
        for slot in slots:
            score, reasons = _score_slot(slot, offset, workload, nearby, day, customer_preference)
            end_minute = slot.start_minute + slot_minutes
            suggestions.append(Suggestion(
                day=day,
                start_time=format_hhmm(slot.start_minute),
                end_time=format_hhmm(end_minute),
                start_minute=slot.start_minute,
                end_minute=end_minute,
                score=score,
                reasons=reasons,
                workload=workload,
                nearby_jobs=nearby[:MAX_NEARBY_PER_SUGGESTION],
                kind=slot.kind
            ))

    total_found = len(suggestions)
    suggestions.sort(key=lambda s: -s.score)  # stable: earlier days win ties
    if suggestions:
        suggestions[0].is_recommended = True
    suggestions = suggestions[:max_suggestions]

    insights = []
    cluster = _cluster_insight(job, others, cluster_radius_miles)
    if cluster:
        insights.append(cluster)
    imbalance = _imbalance_insight(others, preferences, today)
    if imbalance:
        insights.append(imbalance)

    logger.debug(f"{total_found} candidate slots for {job.label} over {days_to_analyze} days")

    return SuggestionResult(
        suggestions=suggestions,
        recommended=suggestions[0] if suggestions else None,
        warnings=warnings,
        insights=insights,
        meta={
            "analyzed_days": days_to_analyze,
            "total_slots_found": total_found,
            "job_duration_minutes": slot_minutes,
            "has_customer_preferences": customer_preference is not None,
        }
    )


def get_quick_suggestions(
    job: Job,
    jobs: List[Job],
    preferences: SchedulingPreferences,
    customer_preference: Optional[CustomerPreference] = None,
    today: Optional[date] = None
) -> List[Suggestion]:
    """Top three suggestions over the coming week."""
    result = generate_scheduling_suggestions(
        job, jobs, preferences, customer_preference, days_to_analyze=7, today=today
    )
    return result.suggestions[:3]
