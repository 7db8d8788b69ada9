"""
Core data models for the dispatch engine.
Jobs, technicians and preferences are pydantic snapshots handed in by the
persistence layer; the engine never mutates them in place.
"""

import logging
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from .errors import InvalidTransitionError
from .util.time_utils import WEEKDAYS, parse_duration_text, parse_hhmm, weekday_name


logger = logging.getLogger(__name__)

DEFAULT_DAY_START = "08:00"
DEFAULT_DAY_END = "17:00"
FALLBACK_JOB_DURATION = 120


class JobStatus(str, Enum):
    """Job lifecycle states."""
    PENDING_SCHEDULE = "pending_schedule"
    SLOTS_OFFERED = "slots_offered"
    SCHEDULED = "scheduled"
    EN_ROUTE = "en_route"
    ON_SITE = "on_site"
    IN_PROGRESS = "in_progress"
    RUNNING_LATE = "running_late"
    WAITING = "waiting"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.CANCELLED)

    @property
    def requires_start(self) -> bool:
        """Scheduled or any later state."""
        return self in SCHEDULED_OR_LATER

    def can_transition_to(self, target: "JobStatus") -> bool:
        if self.is_terminal:
            return False
        if target == JobStatus.CANCELLED:
            return True
        return target in _TRANSITIONS.get(self, ())


SCHEDULED_OR_LATER = frozenset({
    JobStatus.SCHEDULED, JobStatus.EN_ROUTE, JobStatus.ON_SITE, JobStatus.IN_PROGRESS,
    JobStatus.RUNNING_LATE, JobStatus.WAITING, JobStatus.COMPLETED,
})

_TRANSITIONS = {
    JobStatus.PENDING_SCHEDULE: (JobStatus.SLOTS_OFFERED, JobStatus.SCHEDULED),
    JobStatus.SLOTS_OFFERED: (JobStatus.SCHEDULED, JobStatus.PENDING_SCHEDULE),
    JobStatus.SCHEDULED: (JobStatus.EN_ROUTE,),
    JobStatus.EN_ROUTE: (JobStatus.ON_SITE,),
    JobStatus.ON_SITE: (JobStatus.IN_PROGRESS,),
    JobStatus.IN_PROGRESS: (JobStatus.COMPLETED, JobStatus.RUNNING_LATE, JobStatus.WAITING),
    JobStatus.RUNNING_LATE: (JobStatus.IN_PROGRESS,),
    JobStatus.WAITING: (JobStatus.IN_PROGRESS,),
}


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class TimeOfDay(str, Enum):
    """Customer time-of-day buckets."""
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    FLEXIBLE = "flexible"


class DayPreference(str, Enum):
    WEEKDAYS = "weekdays"
    WEEKENDS = "weekends"
    ANY = "any"


class Coordinates(BaseModel):
    """Geographic coordinates."""
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)


def _lenient_coordinates(value):
    """Malformed coordinates become None so distance scoring is skipped."""
    if value is None or isinstance(value, Coordinates):
        return value
    try:
        if isinstance(value, dict):
            lat = value.get("lat", value.get("latitude"))
            lon = value.get("lon", value.get("lng", value.get("longitude")))
        else:
            lat, lon = value
        return Coordinates(lat=float(lat), lon=float(lon))
    except (TypeError, ValueError) as e:
        logger.warning(f"Ignoring malformed coordinates {value!r}: {e}")
        return None


class DayHours(BaseModel):
    """Working window for one weekday."""
    enabled: bool = True
    start: str = Field(default=DEFAULT_DAY_START, pattern=r"^\d{2}:\d{2}$")  # HH:MM
    end: str = Field(default=DEFAULT_DAY_END, pattern=r"^\d{2}:\d{2}$")

    @field_validator("end")
    @classmethod
    def end_after_start(cls, v, info):
        """Ensure end time is after start time."""
        start = info.data.get("start")
        if start and parse_hhmm(v) <= parse_hhmm(start):
            raise ValueError("End time must be after start time")
        return v

    @property
    def start_minute(self) -> int:
        return parse_hhmm(self.start)

    @property
    def end_minute(self) -> int:
        return parse_hhmm(self.end)

    @property
    def minutes(self) -> int:
        return self.end_minute - self.start_minute


def default_business_hours() -> Dict[str, DayHours]:
    return {
        day: DayHours(enabled=day not in ("saturday", "sunday"))
        for day in WEEKDAYS
    }


def _normalize_week(value):
    if value is None:
        return {}
    return {str(k).lower(): v for k, v in dict(value).items()}


class OfferedSlot(BaseModel):
    """A candidate window sent to the customer and awaiting a reply."""
    start: datetime
    end: Optional[datetime] = None
    status: str = Field(default="offered", pattern="^(offered|accepted|declined|expired)$")


class DaySegment(BaseModel):
    """One day of a multi-day job."""
    day: date
    day_number: int = Field(ge=1)
    start_time: str
    end_time: str
    duration_minutes: int = Field(ge=0)
    is_complete: bool = False

    @property
    def start_minute(self) -> int:
        return parse_hhmm(self.start_time)

    @property
    def end_minute(self) -> int:
        return parse_hhmm(self.end_time)


class MultiDaySchedule(BaseModel):
    """Day-by-day calendar block for a job longer than one working day."""
    is_multi_day: bool
    total_days: int
    total_duration_minutes: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    segments: List[DaySegment] = Field(default_factory=list)


class Job(BaseModel):
    """A unit of billable field work."""
    id: str
    title: Optional[str] = None
    status: JobStatus = JobStatus.PENDING_SCHEDULE
    scheduled_start: Optional[datetime] = None
    estimated_duration_minutes: Optional[int] = Field(default=None, gt=0)
    service_coordinates: Optional[Coordinates] = None
    assigned_technician_id: Optional[str] = None
    priority: Priority = Priority.NORMAL
    offered_slots: List[OfferedSlot] = Field(default_factory=list)
    multi_day_schedule: Optional[MultiDaySchedule] = None

    @field_validator("id", "assigned_technician_id", mode="before")
    @classmethod
    def coerce_ids(cls, v):
        return None if v is None else str(v)

    @field_validator("estimated_duration_minutes", mode="before")
    @classmethod
    def parse_duration(cls, v):
        # unreadable or non-positive estimates fall back to the business default
        if v is None or v == "":
            return None
        if isinstance(v, str):
            return parse_duration_text(v)
        if isinstance(v, (int, float)):
            minutes = int(round(v))
            return minutes if minutes > 0 else None
        return v

    @field_validator("service_coordinates", mode="before")
    @classmethod
    def lenient_coordinates(cls, v):
        return _lenient_coordinates(v)

    @model_validator(mode="after")
    def scheduled_jobs_have_start(self):
        if self.status.requires_start and self.scheduled_start is None:
            raise ValueError(f"Job {self.id} is {self.status.value} but has no scheduled_start")
        if self.status == JobStatus.PENDING_SCHEDULE and (
            self.scheduled_start is not None or self.assigned_technician_id is not None
        ):
            raise ValueError(f"Job {self.id} is pending_schedule but already has a start or technician")
        return self

    @property
    def label(self) -> str:
        return self.title or f"Job {self.id}"

    @property
    def is_active(self) -> bool:
        return self.status != JobStatus.CANCELLED

    @property
    def is_unscheduled(self) -> bool:
        return self.scheduled_start is None and self.status in (
            JobStatus.PENDING_SCHEDULE, JobStatus.SLOTS_OFFERED
        )

    def duration_minutes(self, preferences: Optional["SchedulingPreferences"] = None) -> int:
        """Own estimate, else the business default, else two hours."""
        if self.estimated_duration_minutes:
            return self.estimated_duration_minutes
        if preferences is not None and preferences.default_job_duration_minutes:
            return preferences.default_job_duration_minutes
        return FALLBACK_JOB_DURATION

    def transition(self, target: JobStatus, scheduled_start: Optional[datetime] = None) -> "Job":
        """Return a copy moved to ``target``; raises on an illegal move."""
        if not self.status.can_transition_to(target):
            raise InvalidTransitionError(self.id, self.status.value, target.value)
        updates = {"status": target}
        if scheduled_start is not None:
            updates["scheduled_start"] = scheduled_start
        if target == JobStatus.PENDING_SCHEDULE:
            updates.update(scheduled_start=None, assigned_technician_id=None)
        moved = self.model_copy(update=updates)
        if target.requires_start and moved.scheduled_start is None:
            raise InvalidTransitionError(self.id, self.status.value, target.value)
        return moved


class Technician(BaseModel):
    """A field technician and their daily limits."""
    id: str
    name: str = ""
    working_hours: Dict[str, DayHours] = Field(default_factory=dict)
    max_jobs_per_day: int = Field(default=4, gt=0)
    max_hours_per_day: float = Field(default=8, gt=0)
    home_base: Optional[Coordinates] = None
    max_travel_miles: float = Field(default=30, gt=0)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v)

    @field_validator("working_hours", mode="before")
    @classmethod
    def lowercase_days(cls, v):
        return _normalize_week(v)

    @field_validator("home_base", mode="before")
    @classmethod
    def lenient_home_base(cls, v):
        return _lenient_coordinates(v)

    @property
    def display_name(self) -> str:
        return self.name or f"Technician {self.id}"

    def availability(self, day: date) -> Tuple[bool, str]:
        """(working, reason) where reason is scheduled_on, scheduled_off or default.

        A technician with nothing configured for the weekday counts as working.
        """
        hours = self.working_hours.get(weekday_name(day))
        if hours is None:
            return True, "default"
        if not hours.enabled:
            return False, "scheduled_off"
        return True, "scheduled_on"

    def hours_for(self, day: date) -> Optional[DayHours]:
        working, _ = self.availability(day)
        if not working:
            return None
        return self.working_hours.get(weekday_name(day)) or DayHours()


class SchedulingPreferences(BaseModel):
    """Business-wide scheduling defaults."""
    buffer_minutes: int = Field(default=30, ge=0)
    default_job_duration_minutes: int = Field(default=120, gt=0)
    working_hours: Dict[str, DayHours] = Field(default_factory=default_business_hours)
    home_base: Optional[Coordinates] = None
    max_jobs_per_day: int = Field(default=8, gt=0)
    vehicle_count: int = Field(default=1, ge=0)

    @field_validator("working_hours", mode="before")
    @classmethod
    def lowercase_days(cls, v):
        return _normalize_week(v)

    @field_validator("home_base", mode="before")
    @classmethod
    def lenient_home_base(cls, v):
        return _lenient_coordinates(v)

    def hours_for(self, day: date) -> Optional[DayHours]:
        """Business hours for the weekday; missing or disabled means closed."""
        hours = self.working_hours.get(weekday_name(day))
        if hours is None or not hours.enabled:
            return None
        return hours


class CustomerPreference(BaseModel):
    """Optional per-job customer timing preference."""
    preferred_times: List[TimeOfDay] = Field(default_factory=list)
    preferred_days: DayPreference = DayPreference.ANY

    @field_validator("preferred_times", mode="before")
    @classmethod
    def listify(cls, v):
        if v is None:
            return []
        if isinstance(v, (str, TimeOfDay)):
            return [v]
        return v
