"""
Shared fixtures: a small service day on Monday 2025-03-03.
"""

import pytest
import yaml

from dispatcher.service import DispatchService


WEEKDAY_HOURS = {
    day: {"start": "08:00", "end": "17:00"}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
}


def create_test_config():
    """Create test configuration."""
    return {
        "project": {"name": "Test", "version": "0.1.0"},
        "scheduling": {
            "buffer_minutes": 30,
            "default_job_duration_minutes": 120,
            "max_jobs_per_day": 8,
            "vehicle_count": 3,
        },
        "dispatch": {"default_max_jobs_per_day": 3, "default_max_hours_per_day": 8},
        "logging": {"level": "INFO", "format": "%(message)s"},
    }


@pytest.fixture
def snapshot():
    return {
        "technicians": [
            {
                "id": "t1",
                "name": "Dana",
                "working_hours": WEEKDAY_HOURS,
                "home_base": {"lat": 40.0, "lon": -75.0},
                "max_jobs_per_day": 4,
            },
            {"id": "t2", "name": "Eli", "working_hours": WEEKDAY_HOURS},
        ],
        "jobs": [
            {
                "id": "j1", "title": "Water heater", "status": "scheduled",
                "scheduled_start": "2025-03-03T10:00:00", "estimated_duration_minutes": 120,
                "service_coordinates": {"lat": 40.01, "lon": -75.0}, "assigned_technician_id": "t1",
            },
            {
                "id": "j2", "title": "Leaky faucet", "status": "scheduled",
                "scheduled_start": "2025-03-03T11:00:00", "estimated_duration_minutes": 60,
            },
            {"id": "j3", "title": "Estimate", "estimated_duration_minutes": 60},
            {
                "id": "j4", "title": "Done already", "status": "completed",
                "scheduled_start": "2025-03-07T09:00:00",
            },
            {"id": "j5", "title": "Repipe", "estimated_duration_minutes": "2 days"},
            {"id": "bad", "status": "scheduled"},
        ],
    }


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "params.yaml"
    path.write_text(yaml.safe_dump(create_test_config()))
    return path


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'dispatch.db'}"


@pytest.fixture
def service(config_file, database_url, snapshot):
    svc = DispatchService(str(config_file), database_url)
    svc.import_snapshot(snapshot["jobs"], snapshot["technicians"])
    return svc
