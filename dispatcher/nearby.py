"""
Nearby-job lookup used as a proximity signal when scoring.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional

from .models import Job, SchedulingPreferences
from .slots import bookings_for_date
from .util.haversine import distance_between, travel_minutes


logger = logging.getLogger(__name__)

DEFAULT_RADIUS_MILES = 15


@dataclass
class NearbyJob:
    """A same-day booking close to the target job."""
    job: Job
    distance_miles: float
    travel_minutes: int


def find_nearby_jobs(
    target: Job,
    jobs: Iterable[Job],
    day: date,
    radius_miles: float = DEFAULT_RADIUS_MILES,
    preferences: Optional[SchedulingPreferences] = None
) -> List[NearbyJob]:
    """
    Bookings on ``day`` within ``radius_miles`` of ``target``, closest first.

    Jobs without coordinates are skipped, and a target without coordinates has
    no neighbours.
    """
    origin = target.service_coordinates
    if origin is None:
        return []

    nearby = []
    for booking in bookings_for_date(jobs, day, preferences):
        other = booking.job
        if other.id == target.id or other.service_coordinates is None:
            continue
        dist = distance_between(origin, other.service_coordinates)
        if dist < radius_miles:
            nearby.append(NearbyJob(
                job=other,
                distance_miles=dist,
                travel_minutes=travel_minutes(dist)
            ))

    nearby.sort(key=lambda n: n.distance_miles)
    return nearby
