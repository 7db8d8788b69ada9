"""
Repository layer for the persistence boundary.
Stores job and technician snapshots and hands them back as domain models.
"""

import json
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Column, DateTime, func
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine, delete, select

from .errors import JobNotFoundError
from .models import Job, JobStatus, Technician
from .schemas import AppConfig


logger = logging.getLogger(__name__)


# Database Models (SQLModel)
class JobRecord(SQLModel, table=True):
    """Persisted job snapshot; nested values are JSON text."""
    id: str = Field(primary_key=True)
    title: Optional[str] = Field(default=None)
    status: str = Field(default=JobStatus.PENDING_SCHEDULE.value, index=True)
    # naive local time
    scheduled_start: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=False), index=True))
    estimated_duration_minutes: Optional[int] = Field(default=None)
    lat: Optional[float] = Field(default=None)
    lon: Optional[float] = Field(default=None)
    assigned_technician_id: Optional[str] = Field(default=None, index=True)
    priority: str = Field(default="normal")
    offered_slots: str = Field(default="[]")
    multi_day_schedule: Optional[str] = Field(default=None)
    updated_at: datetime = Field(default_factory=datetime.now, sa_column=Column(DateTime(timezone=False)))


class TechnicianRecord(SQLModel, table=True):
    """Persisted technician profile."""
    id: str = Field(primary_key=True)
    name: str = Field(default="")
    working_hours: str = Field(default="{}")
    max_jobs_per_day: int = Field(default=4)
    max_hours_per_day: float = Field(default=8)
    home_lat: Optional[float] = Field(default=None)
    home_lon: Optional[float] = Field(default=None)
    max_travel_miles: float = Field(default=30)


def _job_to_record(job: Job) -> JobRecord:
    coords = job.service_coordinates
    return JobRecord(
        id=job.id,
        title=job.title,
        status=job.status.value,
        scheduled_start=job.scheduled_start,
        estimated_duration_minutes=job.estimated_duration_minutes,
        lat=coords.lat if coords else None,
        lon=coords.lon if coords else None,
        assigned_technician_id=job.assigned_technician_id,
        priority=job.priority.value,
        offered_slots=json.dumps([s.model_dump(mode="json") for s in job.offered_slots]),
        multi_day_schedule=(
            job.multi_day_schedule.model_dump_json() if job.multi_day_schedule else None
        ),
        updated_at=datetime.now()
    )


def _record_to_job(record: JobRecord) -> Job:
    return Job(
        id=record.id,
        title=record.title,
        status=record.status,
        scheduled_start=record.scheduled_start,
        estimated_duration_minutes=record.estimated_duration_minutes,
        service_coordinates=(
            {"lat": record.lat, "lon": record.lon} if record.lat is not None and record.lon is not None else None
        ),
        assigned_technician_id=record.assigned_technician_id,
        priority=record.priority,
        offered_slots=json.loads(record.offered_slots or "[]"),
        multi_day_schedule=(
            json.loads(record.multi_day_schedule) if record.multi_day_schedule else None
        )
    )


def _tech_to_record(tech: Technician) -> TechnicianRecord:
    home = tech.home_base
    return TechnicianRecord(
        id=tech.id,
        name=tech.name,
        working_hours=json.dumps({day: hours.model_dump() for day, hours in tech.working_hours.items()}),
        max_jobs_per_day=tech.max_jobs_per_day,
        max_hours_per_day=tech.max_hours_per_day,
        home_lat=home.lat if home else None,
        home_lon=home.lon if home else None,
        max_travel_miles=tech.max_travel_miles
    )


def _record_to_tech(record: TechnicianRecord) -> Technician:
    return Technician(
        id=record.id,
        name=record.name,
        working_hours=json.loads(record.working_hours or "{}"),
        max_jobs_per_day=record.max_jobs_per_day,
        max_hours_per_day=record.max_hours_per_day,
        home_base=(
            {"lat": record.home_lat, "lon": record.home_lon}
            if record.home_lat is not None and record.home_lon is not None else None
        ),
        max_travel_miles=record.max_travel_miles
    )


class DatabaseRepository:
    """Database repository for job and technician snapshots."""

    def __init__(self, config: AppConfig, database_url: Optional[str] = None):
        """Initialize database connection."""
        self.config = config
        url = database_url or config.database.url
        kwargs = {"echo": config.database.echo}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool  # one shared in-memory database
        self.engine = create_engine(url, **kwargs)

    def create_tables(self) -> None:
        """Create all database tables."""
        SQLModel.metadata.create_all(self.engine)

    def get_session(self) -> Session:
        """Get database session."""
        return Session(self.engine)

    # Job operations
    def upsert_jobs(self, jobs: List[Job]) -> int:
        """Insert or replace job snapshots by id."""
        with self.get_session() as session:
            for job in jobs:
                session.merge(_job_to_record(job))
            session.commit()
        return len(jobs)

    def delete_jobs(self) -> int:
        """Remove every stored job."""
        with self.get_session() as session:
            deleted_count = session.exec(delete(JobRecord)).rowcount
            session.commit()
            return deleted_count

    def get_jobs(self, status: Optional[JobStatus] = None) -> List[Job]:
        """Get all jobs, optionally filtered by status."""
        with self.get_session() as session:
            query = select(JobRecord).order_by(JobRecord.id)
            if status is not None:
                query = query.where(JobRecord.status == status.value)
            return [_record_to_job(r) for r in session.exec(query).all()]

    def get_job(self, job_id: str) -> Optional[Job]:
        with self.get_session() as session:
            record = session.get(JobRecord, job_id)
            return _record_to_job(record) if record else None

    def count_jobs(self) -> int:
        with self.get_session() as session:
            return session.exec(select(func.count()).select_from(JobRecord)).one()

    def save_job(self, job: Job) -> Job:
        """Write a full job snapshot (status, start, technician)."""
        with self.get_session() as session:
            session.merge(_job_to_record(job))
            session.commit()
        return job

    def clear_assignment(self, job_id: str) -> Job:
        """Remove the technician; the job keeps its time and any multi-day block."""
        with self.get_session() as session:
            record = session.get(JobRecord, job_id)
            if record is None:
                raise JobNotFoundError(job_id)
            record.assigned_technician_id = None
            record.updated_at = datetime.now()
            session.add(record)
            session.commit()
            session.refresh(record)
            return _record_to_job(record)

    # Technician operations
    def upsert_technicians(self, techs: List[Technician]) -> int:
        with self.get_session() as session:
            for tech in techs:
                session.merge(_tech_to_record(tech))
            session.commit()
        return len(techs)

    def get_technicians(self) -> List[Technician]:
        """Get all technicians."""
        with self.get_session() as session:
            records = session.exec(select(TechnicianRecord).order_by(TechnicianRecord.id)).all()
            return [_record_to_tech(r) for r in records]

    def get_technician(self, tech_id: str) -> Optional[Technician]:
        with self.get_session() as session:
            record = session.get(TechnicianRecord, tech_id)
            return _record_to_tech(record) if record else None

    def health_check(self) -> bool:
        """Check if database is accessible."""
        try:
            with self.get_session() as session:
                session.exec(select(1))
                return True
        except Exception as e:
            logger.warning(f"Database health check failed: {e}")
            return False
