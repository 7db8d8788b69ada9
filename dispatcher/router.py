"""
Daily stop ordering for a technician.
Greedy nearest-neighbor over great-circle distance; a heuristic, not a TSP solver.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .models import Coordinates, Job
from .util.haversine import distance_between, travel_minutes


logger = logging.getLogger(__name__)


@dataclass
class RouteLeg:
    """Travel from one stop (or home base) to the next job."""
    to_job: Job
    from_job: Optional[Job]
    miles: Optional[float]
    travel_minutes: Optional[int]


@dataclass
class RoutePlan:
    ordered_jobs: List[Job]
    legs: List[RouteLeg] = field(default_factory=list)
    total_miles: float = 0.0
    total_travel_minutes: int = 0


@dataclass
class RouteComparison:
    original: RoutePlan
    optimized: RoutePlan
    miles_saved: float
    minutes_saved: int

    @property
    def improved(self) -> bool:
        return self.miles_saved > 0


def suggest_route_order(jobs: Sequence[Job], home_base: Optional[Coordinates] = None) -> List[Job]:
    """
    Order one day's jobs by repeatedly visiting the closest remaining stop.

    A job without coordinates is taken as soon as it is encountered, and while
    the current position is unknown the first remaining job is taken, so the
    loop always makes progress.
    """
    if len(jobs) <= 1:
        return list(jobs)

    remaining = list(jobs)
    ordered = []
    current = home_base

    while remaining:
        pick = 0
        best = float("inf")
        for i, job in enumerate(remaining):
            coords = job.service_coordinates
            if coords is None:
                pick = i
                break
            if current is None:
                pick = 0
                break
            dist = distance_between(current, coords)
            if dist < best:
                best = dist
                pick = i

        chosen = remaining.pop(pick)
        ordered.append(chosen)
        current = chosen.service_coordinates or current

    return ordered


def build_route_plan(jobs: Sequence[Job], home_base: Optional[Coordinates] = None) -> RoutePlan:
    """Measure the legs of ``jobs`` in the given order (no reordering)."""
    legs = []
    total_miles = 0.0
    total_minutes = 0
    previous_job = None
    current = home_base

    for job in jobs:
        coords = job.service_coordinates
        if current is not None and coords is not None:
            dist = distance_between(current, coords)
            minutes = travel_minutes(dist)
            total_miles += dist
            total_minutes += minutes
        else:
            dist = None
            minutes = None
        legs.append(RouteLeg(to_job=job, from_job=previous_job, miles=dist, travel_minutes=minutes))
        previous_job = job
        current = coords or current

    return RoutePlan(
        ordered_jobs=list(jobs),
        legs=legs,
        total_miles=total_miles,
        total_travel_minutes=total_minutes
    )


def compare_routes(
    original: Sequence[Job],
    optimized: Sequence[Job],
    home_base: Optional[Coordinates] = None
) -> RouteComparison:
    before = build_route_plan(original, home_base)
    after = build_route_plan(optimized, home_base)
    saved = before.total_miles - after.total_miles
    logger.debug(f"Route reorder saves {saved:.1f} mi over {len(original)} stops")
    return RouteComparison(
        original=before,
        optimized=after,
        miles_saved=saved,
        minutes_saved=before.total_travel_minutes - after.total_travel_minutes
    )
