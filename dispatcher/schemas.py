"""
Pydantic schemas for configuration, settings, and API validation.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import CustomerPreference, SchedulingPreferences


class ProjectConfig(BaseModel):
    """Top-level project configuration."""
    name: str = Field(default="Field Dispatch")
    version: str = Field(default="0.1.0")


class SuggestionConfig(BaseModel):
    """Appointment suggestion tuning."""
    days_to_analyze: int = Field(default=14, ge=1, le=60)
    max_suggestions: int = Field(default=10, ge=1)
    nearby_radius_miles: float = Field(default=15, gt=0)
    cluster_radius_miles: float = Field(default=10, gt=0)


class DispatchConfig(BaseModel):
    """Defaults applied to technicians imported without limits."""
    default_max_jobs_per_day: int = Field(default=4, gt=0)
    default_max_hours_per_day: float = Field(default=8, gt=0)


class DatabaseConfig(BaseModel):
    """Database configuration."""
    url: str = Field(default="sqlite:///./field_dispatch.db")
    echo: bool = Field(default=False)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR)$"
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


class AppConfig(BaseModel):
    """Complete application configuration loaded from params.yaml."""
    project: ProjectConfig = Field(default_factory=ProjectConfig)
    scheduling: SchedulingPreferences = Field(default_factory=SchedulingPreferences)
    suggestions: SuggestionConfig = Field(default_factory=SuggestionConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class Settings(BaseSettings):
    """Environment-based settings (DISPATCH_ prefix or .env)."""
    model_config = SettingsConfigDict(
        env_prefix="DISPATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    config_path: str = Field(default="config/params.yaml")
    database_url: Optional[str] = Field(default=None)


# API Request/Response Schemas
class SnapshotRequest(BaseModel):
    """Jobs and technicians handed over by the booking system."""
    jobs: List[Dict[str, Any]] = Field(default_factory=list)
    technicians: List[Dict[str, Any]] = Field(default_factory=list)
    clear_existing: bool = Field(default=False)


class SnapshotStatsResponse(BaseModel):
    jobs_imported: int
    technicians_imported: int
    errors: List[str] = Field(default_factory=list)


class SlotsRequest(BaseModel):
    day: date
    tech_id: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)


class SuggestionRequest(BaseModel):
    job_id: str
    customer_preference: Optional[CustomerPreference] = None
    days_to_analyze: Optional[int] = Field(default=None, ge=1, le=60)


class ConflictCheckRequest(BaseModel):
    """A proposed time for a job, or a free-standing window."""
    proposed_start: datetime
    proposed_end: Optional[datetime] = None
    exclude_job_id: Optional[str] = None


class AssignmentSuggestRequest(BaseModel):
    job_id: str
    day: Optional[date] = None


class AutoAssignRequest(BaseModel):
    day: date
    job_ids: Optional[List[str]] = None  # default: every unassigned job for the day
    commit: bool = Field(default=False)


class AssignRequest(BaseModel):
    tech_id: str
    scheduled_start: Optional[datetime] = None
    override: bool = Field(default=False)


class BulkAssignItem(BaseModel):
    job_id: str
    tech_id: str


class BulkAssignRequest(BaseModel):
    assignments: List[BulkAssignItem]
    override: bool = Field(default=False)


class BulkAssignResult(BaseModel):
    job_id: str
    success: bool
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """API health check response."""
    status: str
    version: str
    database_connected: bool
    jobs: int
    timestamp: str


class ConfigOverrides(BaseModel):
    """Dot-path overrides such as ``{"scheduling.buffer_minutes": 15}``."""
    overrides: Dict[str, Any] = Field(default_factory=dict)
