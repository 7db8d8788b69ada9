"""
Main service layer for field dispatch.
Loads configuration, reads snapshots from the repository, runs the scheduling
engine and commits assignments after re-validating against fresh state.
"""

import logging
import threading
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

import yaml
from pydantic import ValidationError

from .allocator import (
    AssignmentSuggestion, AutoAssignResult, FailedAssignment,
    attach_multi_day_schedule, auto_assign_all, suggest_assignments
)
from .conflicts import SEVERITY_ERROR, Conflict, ConflictChecker
from .errors import (
    AssignmentConflictError, ConfigurationError, DispatchError, InvalidTransitionError,
    JobNotFoundError, TechnicianNotFoundError
)
from .models import CustomerPreference, Job, JobStatus, Technician
from .multiday import MultiDayAnalysis, analyze_multi_day_conflicts, working_week
from .repo import DatabaseRepository
from .router import RouteComparison, compare_routes, suggest_route_order
from .schemas import AppConfig, BulkAssignResult, Settings, SnapshotStatsResponse
from .slots import Slot, bookings_for_date, find_available_slots
from .suggestions import SuggestionResult, generate_scheduling_suggestions


logger = logging.getLogger(__name__)


class DispatchService:
    """Main service for scheduling and dispatch."""

    def __init__(self, config_path: Optional[str] = None, database_url: Optional[str] = None):
        """Initialize service with configuration."""
        self.settings = Settings()
        self.config = self._load_config(config_path or self.settings.config_path)

        # Setup logging
        self._setup_logging()

        self.repo = DatabaseRepository(self.config, database_url or self.settings.database_url)
        self.checker = ConflictChecker(self.config.scheduling)
        # one writer at a time between re-validation and save
        self._commit_lock = threading.Lock()

        # Initialize database
        self.repo.create_tables()

    def _load_config(self, config_path: str) -> AppConfig:
        """Load configuration from YAML file."""
        try:
            with open(config_path, 'r') as f:
                config_data = yaml.safe_load(f) or {}
            return AppConfig(**config_data)
        except Exception as e:
            logger.error(f"Failed to load configuration: {e}")
            raise

    def _setup_logging(self) -> None:
        """Setup logging configuration."""
        logging.basicConfig(
            level=getattr(logging, self.config.logging.level),
            format=self.config.logging.format
        )

    def apply_overrides(self, overrides: Dict[str, Any]) -> None:
        """
        Apply dot-path overrides onto loaded config (CLI > YAML).

        Unknown paths are skipped with a warning. The whole config is
        re-validated, so a bad value raises ConfigurationError and leaves
        the current config untouched.
        """
        if not overrides:
            return
        def set_dot(data, path, val):
            parts = path.split('.')
            cur = data
            for p in parts[:-1]:
                if not isinstance(cur, dict) or p not in cur:
                    raise KeyError(f"unknown setting '{p}'")
                cur = cur[p]
            if not isinstance(cur, dict) or parts[-1] not in cur:
                raise KeyError(f"unknown setting '{parts[-1]}'")
            cur[parts[-1]] = val
        data = self.config.model_dump()
        for k, v in overrides.items():
            try:
                set_dot(data, k, v)
            except KeyError as e:
                logger.warning(f"Override failed for {k}: {e}")
        try:
            config = AppConfig.model_validate(data)
        except ValidationError as e:
            error = e.errors()[0]
            location = '.'.join(str(p) for p in error['loc'])
            raise ConfigurationError(f"Invalid override for {location}: {error['msg']}")
        self.config = config
        self.checker = ConflictChecker(self.config.scheduling)

    @property
    def preferences(self):
        return self.config.scheduling

    def _require_job(self, job_id: str) -> Job:
        job = self.repo.get_job(str(job_id))
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def _require_tech(self, tech_id: str) -> Technician:
        tech = self.repo.get_technician(str(tech_id))
        if tech is None:
            raise TechnicianNotFoundError(tech_id)
        return tech

    def import_snapshot(
        self,
        jobs: Iterable[Dict[str, Any]],
        technicians: Iterable[Dict[str, Any]] = (),
        clear_existing: bool = False
    ) -> SnapshotStatsResponse:
        """
        Load job and technician snapshots from the booking system.

        Invalid rows are reported in ``errors`` and skipped; valid rows are
        upserted by id.
        """
        errors = []
        defaults = self.config.dispatch

        valid_techs = []
        for row in technicians:
            data = dict(row)
            data.setdefault("max_jobs_per_day", defaults.default_max_jobs_per_day)
            data.setdefault("max_hours_per_day", defaults.default_max_hours_per_day)
            try:
                valid_techs.append(Technician.model_validate(data))
            except ValidationError as e:
                errors.append(f"Technician {data.get('id', '?')}: {e.errors()[0]['msg']}")

        valid_jobs = []
        for row in jobs:
            try:
                valid_jobs.append(Job.model_validate(row))
            except ValidationError as e:
                errors.append(f"Job {dict(row).get('id', '?')}: {e.errors()[0]['msg']}")

        if clear_existing:
            deleted_count = self.repo.delete_jobs()
            logger.info(f"Cleared {deleted_count} existing jobs")

        self.repo.upsert_technicians(valid_techs)
        self.repo.upsert_jobs(valid_jobs)
        logger.info(f"Imported {len(valid_jobs)} jobs and {len(valid_techs)} technicians "
                    f"({len(errors)} rejected)")

        return SnapshotStatsResponse(
            jobs_imported=len(valid_jobs),
            technicians_imported=len(valid_techs),
            errors=errors
        )

    def find_slots(
        self,
        day: date,
        tech_id: Optional[str] = None,
        duration_minutes: Optional[int] = None
    ) -> List[Slot]:
        """Open windows on ``day`` for the business, or for one technician's calendar."""
        jobs = self.repo.get_jobs()
        duration = duration_minutes or self.preferences.default_job_duration_minutes

        if tech_id is None:
            return find_available_slots(day, jobs, self.preferences, duration)

        tech = self._require_tech(tech_id)
        hours = tech.hours_for(day)
        if hours is None:
            logger.debug(f"{tech.display_name} is off on {day}")
            return []
        own = [j for j in jobs if j.assigned_technician_id == tech.id]
        return find_available_slots(day, own, self.preferences, duration, working_hours=hours)

    def suggest_times(
        self,
        job_id: str,
        customer_preference: Optional[CustomerPreference] = None,
        days_to_analyze: Optional[int] = None,
        today: Optional[date] = None
    ) -> SuggestionResult:
        job = self._require_job(job_id)
        tuning = self.config.suggestions
        return generate_scheduling_suggestions(
            job,
            self.repo.get_jobs(),
            self.preferences,
            customer_preference=customer_preference,
            days_to_analyze=days_to_analyze or tuning.days_to_analyze,
            today=today,
            max_suggestions=tuning.max_suggestions,
            nearby_radius_miles=tuning.nearby_radius_miles,
            cluster_radius_miles=tuning.cluster_radius_miles
        )

    def check_conflicts(
        self,
        proposed_start: datetime,
        proposed_end: Optional[datetime] = None,
        exclude_job_id: Optional[str] = None
    ) -> List[Conflict]:
        """Time-overlap warnings and crew capacity errors for a proposed window."""
        return self.checker.validate_proposal(
            proposed_start, proposed_end, self.repo.get_jobs(), exclude_job_id=exclude_job_id
        )

    def suggest_assignments(self, job_id: str, day: Optional[date] = None) -> AssignmentSuggestion:
        job = self._require_job(job_id)
        if day is None:
            day = job.scheduled_start.date() if job.scheduled_start else date.today()
        return suggest_assignments(
            job, self.repo.get_technicians(), self.repo.get_jobs(), day, self.preferences
        )

    def auto_assign(
        self,
        day: date,
        job_ids: Optional[List[str]] = None,
        commit: bool = False
    ) -> AutoAssignResult:
        """
        Bulk-assign jobs for ``day``.

        Args:
            day: Dispatch day
            job_ids: Jobs to place, in order; defaults to every job booked on
                ``day`` without a technician, earliest first
            commit: Persist successful placements (each one re-validated)

        Returns:
            AutoAssignResult; with ``commit`` any placement rejected on
            re-validation moves to ``failed``
        """
        jobs = self.repo.get_jobs()
        if job_ids:
            unassigned = [self._require_job(job_id) for job_id in job_ids]
        else:
            unassigned = [
                b.job for b in bookings_for_date(jobs, day, self.preferences)
                if b.job.assigned_technician_id is None and not b.is_pending_offer
            ]
        assigned = [j for j in jobs if j.assigned_technician_id is not None]

        result = auto_assign_all(unassigned, self.repo.get_technicians(), assigned, day, self.preferences)
        if not commit:
            return result

        committed = []
        for assignment in result.successful:
            try:
                self.assign_job_to_tech(assignment.job.id, assignment.tech.id)
                committed.append(assignment)
            except DispatchError as e:
                logger.warning(f"Auto-assign commit rejected for job {assignment.job.id}: {e}")
                result.failed.append(FailedAssignment(job=assignment.job, reason=str(e)))
        result.successful = committed
        result.summary.update(assigned=len(committed), unassigned=len(result.failed))
        return result

    def route_for_technician(self, tech_id: str, day: date) -> RouteComparison:
        """Current stop order (by start time) against the nearest-neighbor order."""
        tech = self._require_tech(tech_id)
        own = [j for j in self.repo.get_jobs() if j.assigned_technician_id == tech.id]
        current = [b.job for b in bookings_for_date(own, day, self.preferences)]
        home = tech.home_base or self.preferences.home_base
        optimized = suggest_route_order(current, home)
        return compare_routes(current, optimized, home)

    def _validate_commit(self, job: Job, tech: Technician, jobs: List[Job], new_time: bool) -> List[Conflict]:
        conflicts = self.checker.validate_assignment(tech, job, jobs)
        if new_time:
            # a new start also needs a free crew/vehicle
            end = job.scheduled_start + timedelta(minutes=job.duration_minutes(self.preferences))
            conflicts.extend(
                c for c in self.checker.validate_proposal(job.scheduled_start, end, jobs, exclude_job_id=job.id)
                if c.is_hard
            )
        return conflicts

    def assign_job_to_tech(
        self,
        job_id: str,
        tech_id: str,
        scheduled_start: Optional[datetime] = None,
        override: bool = False
    ) -> Job:
        """
        Commit a job to a technician.

        Conflicts are checked against a fresh read of all jobs. Hard conflicts
        raise AssignmentConflictError unless ``override`` is set.
        """
        with self._commit_lock:
            return self._commit_assignment(job_id, tech_id, scheduled_start, override)

    def _commit_assignment(
        self,
        job_id: str,
        tech_id: str,
        scheduled_start: Optional[datetime],
        override: bool
    ) -> Job:
        job = self._require_job(job_id)
        tech = self._require_tech(tech_id)
        if job.status.is_terminal:
            raise InvalidTransitionError(job.id, job.status.value, "assigned")

        candidate = job
        if scheduled_start is not None:
            candidate = job.model_copy(update={"scheduled_start": scheduled_start, "multi_day_schedule": None})
        if candidate.scheduled_start is None:
            # a technician only goes on a job that has a time
            raise InvalidTransitionError(job.id, job.status.value, "scheduled")
        candidate = attach_multi_day_schedule(candidate, tech, self.preferences)

        jobs = self.repo.get_jobs()
        hard = [c for c in self._validate_commit(candidate, tech, jobs, new_time=scheduled_start is not None) if c.is_hard]
        if hard:
            if not override:
                raise AssignmentConflictError(job.id, hard)
            logger.warning(f"Overriding {len(hard)} conflict(s) assigning job {job.id} to "
                           f"{tech.display_name}: {'; '.join(c.message for c in hard)}")

        if candidate.scheduled_start is not None and candidate.status in (
            JobStatus.PENDING_SCHEDULE, JobStatus.SLOTS_OFFERED
        ):
            candidate = candidate.transition(JobStatus.SCHEDULED)

        placed = candidate.model_copy(update={"assigned_technician_id": tech.id})
        self.repo.save_job(placed)
        logger.info(f"Assigned job {job.id} to {tech.display_name}")
        return placed

    def unassign_job(self, job_id: str) -> Job:
        with self._commit_lock:
            job = self._require_job(job_id)
            if job.assigned_technician_id is None:
                return job
            cleared = self.repo.clear_assignment(job.id)
        logger.info(f"Unassigned job {job.id} from technician {job.assigned_technician_id}")
        return cleared

    def bulk_assign_jobs(
        self,
        assignments: Iterable[Tuple[str, str]],
        override: bool = False
    ) -> List[BulkAssignResult]:
        """Assign each (job_id, tech_id) pair independently and report per item."""
        results = []
        for job_id, tech_id in assignments:
            try:
                self.assign_job_to_tech(job_id, tech_id, override=override)
                results.append(BulkAssignResult(job_id=job_id, success=True))
            except DispatchError as e:
                results.append(BulkAssignResult(job_id=job_id, success=False, error=str(e)))
        logger.info(f"Bulk assign: {sum(r.success for r in results)}/{len(results)} succeeded")
        return results

    def schedule_multi_day(
        self,
        job_id: str,
        start_date: date,
        tech_id: Optional[str] = None,
        override: bool = False
    ) -> MultiDayAnalysis:
        """
        Lay a long job over working days from ``start_date`` and book it.

        The job moves to ``scheduled`` at the first segment's start, and onto
        ``tech_id``'s calendar when one is given (or already assigned).
        """
        job = self._require_job(job_id)
        if job.status.is_terminal:
            raise InvalidTransitionError(job.id, job.status.value, "scheduled")
        tech_id = tech_id or job.assigned_technician_id
        tech = self._require_tech(tech_id) if tech_id is not None else None
        working_hours = working_week(tech, self.preferences)

        with self._commit_lock:
            others = [j for j in self.repo.get_jobs() if j.id != job.id]
            analysis = analyze_multi_day_conflicts(
                start_date, job.duration_minutes(self.preferences), working_hours,
                others, tech_id=tech_id, preferences=self.preferences
            )
            if analysis.has_conflicts and not override:
                raise AssignmentConflictError(job.id, [
                    Conflict(
                        conflict_type="multi_day",
                        severity=SEVERITY_ERROR,
                        message=f"Day {c.day_number} ({c.day}) overlaps {len(c.jobs)} job(s)",
                        jobs=c.jobs
                    )
                    for c in analysis.conflicts
                ])

            schedule = analysis.proposed_schedule
            if not schedule.segments:
                raise DispatchError(f"No working days found for job {job.id} from {start_date}")
            first = schedule.segments[0]
            start = datetime.combine(first.day, datetime.min.time()) + timedelta(minutes=first.start_minute)

            booked = job.model_copy(update={"scheduled_start": start})
            if booked.status in (JobStatus.PENDING_SCHEDULE, JobStatus.SLOTS_OFFERED):
                booked = booked.transition(JobStatus.SCHEDULED)
            booked = booked.model_copy(update={"multi_day_schedule": schedule, "assigned_technician_id": tech_id})
            self.repo.save_job(booked)

        logger.info(f"Scheduled job {job.id} across {schedule.total_days} day(s) from {start}")
        return analysis

    def get_config(self) -> Dict[str, Any]:
        """Get current configuration."""
        return self.config.model_dump()

    def health_check(self) -> Dict[str, Any]:
        """Perform health check on all components."""
        connected = self.repo.health_check()
        return {
            "status": "healthy" if connected else "degraded",
            "version": self.config.project.version,
            "database_connected": connected,
            "jobs": self.repo.count_jobs() if connected else 0,
            "timestamp": datetime.now().isoformat()
        }
