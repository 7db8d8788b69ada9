"""
Tests for conflict detection.
"""

from datetime import date, datetime

from dispatcher.conflicts import (
    SEVERITY_ERROR, SEVERITY_WARNING, ConflictChecker, check_for_conflicts,
    check_resource_conflicts, check_tech_conflicts, has_hard_conflict
)
from dispatcher.models import Job, JobStatus, SchedulingPreferences, Technician


MONDAY = date(2025, 3, 3)


def at(hour, minute=0, day=3):
    return datetime(2025, 3, day, hour, minute)


def create_test_preferences(**overrides):
    data = {"buffer_minutes": 30, "vehicle_count": 1}
    data.update(overrides)
    return SchedulingPreferences(**data)


def booked(job_id, start, duration=60, tech_id=None):
    return Job(
        id=job_id,
        title=f"Job {job_id.upper()}",
        status=JobStatus.SCHEDULED,
        scheduled_start=start,
        estimated_duration_minutes=duration,
        assigned_technician_id=tech_id
    )


def create_test_tech(**overrides):
    data = {
        "id": "t1",
        "name": "Dana",
        "working_hours": {"monday": {"start": "08:00", "end": "17:00"}, "saturday": {"enabled": False}},
        "max_jobs_per_day": 4,
        "max_hours_per_day": 8,
    }
    data.update(overrides)
    return Technician(**data)


def test_buffered_overlap_is_a_warning():
    prefs = create_test_preferences()
    jobs = [booked("a", at(10))]  # 10:00-11:00, buffered to 11:30

    conflicts = check_for_conflicts(at(11, 15), at(12, 15), jobs, prefs)
    assert len(conflicts) == 1
    assert conflicts[0].conflict_type == "time_overlap"
    assert conflicts[0].severity == SEVERITY_WARNING
    assert conflicts[0].overlap_minutes == 15
    assert "10:00 AM" in conflicts[0].message

    assert check_for_conflicts(at(11, 30), at(12, 30), jobs, prefs) == []


def test_missing_end_assumes_two_hours():
    prefs = create_test_preferences(buffer_minutes=0)
    jobs = [booked("a", at(11, 30))]
    assert len(check_for_conflicts(at(10), None, jobs, prefs)) == 1


def test_excluded_job_is_ignored():
    prefs = create_test_preferences()
    jobs = [booked("a", at(10))]
    assert check_for_conflicts(at(10), at(11), jobs, prefs, exclude_job_id="a") == []


def test_resource_capacity_ignores_buffer():
    prefs = create_test_preferences()
    jobs = [booked("a", at(10))]

    conflicts = check_resource_conflicts(at(10, 30), at(11, 30), jobs, prefs)
    assert len(conflicts) == 1
    assert conflicts[0].severity == SEVERITY_ERROR
    assert conflicts[0].overlap_minutes == 30

    # inside the buffer but not double-booked
    assert check_resource_conflicts(at(11, 15), at(12, 15), jobs, prefs) == []


def test_second_vehicle_absorbs_overlap():
    prefs = create_test_preferences(vehicle_count=2)
    jobs = [booked("a", at(10))]
    assert check_resource_conflicts(at(10, 30), at(11, 30), jobs, prefs) == []

    jobs.append(booked("b", at(10, 15)))
    assert has_hard_conflict(check_resource_conflicts(at(10, 30), at(11, 30), jobs, prefs))


def test_day_off_can_be_overridden():
    prefs = create_test_preferences()
    tech = create_test_tech()
    job = booked("new", at(10, day=8))

    conflicts = check_tech_conflicts(tech, job, [], date(2025, 3, 8), prefs)
    day_off = [c for c in conflicts if c.conflict_type == "day_off"]
    assert len(day_off) == 1
    assert day_off[0].is_hard
    assert day_off[0].can_override


def test_technician_time_conflict_uses_buffer():
    prefs = create_test_preferences()
    tech = create_test_tech()
    jobs = [booked("a", at(10), tech_id="t1")]

    close = booked("new", at(11, 10))
    conflicts = check_tech_conflicts(tech, close, jobs, MONDAY, prefs)
    assert [c.conflict_type for c in conflicts] == ["time_conflict"]
    assert 'Job A' in conflicts[0].message

    clear = booked("new", at(11, 30))
    assert check_tech_conflicts(tech, clear, jobs, MONDAY, prefs) == []


def test_other_technicians_jobs_do_not_conflict():
    prefs = create_test_preferences()
    tech = create_test_tech()
    jobs = [booked("a", at(10), tech_id="t2")]
    assert check_tech_conflicts(tech, booked("new", at(10)), jobs, MONDAY, prefs) == []


def test_technician_limits():
    prefs = create_test_preferences()
    tech = create_test_tech(max_jobs_per_day=1, max_hours_per_day=2)
    jobs = [booked("a", at(8), duration=90, tech_id="t1")]

    conflicts = check_tech_conflicts(tech, booked("new", at(14)), jobs, MONDAY, prefs)
    types = {c.conflict_type: c.severity for c in conflicts}
    assert types["max_jobs"] == SEVERITY_ERROR
    assert types["max_hours"] == SEVERITY_WARNING
    assert "2hr daily limit" in next(c.message for c in conflicts if c.conflict_type == "max_hours")


def test_outside_hours_is_a_warning():
    prefs = create_test_preferences()
    tech = create_test_tech()
    conflicts = check_tech_conflicts(tech, booked("late", at(16, 30)), [], MONDAY, prefs)
    assert [c.conflict_type for c in conflicts] == ["outside_hours"]
    assert not has_hard_conflict(conflicts)


def test_checker_skips_jobs_without_a_day():
    checker = ConflictChecker(create_test_preferences())
    job = Job(id="loose")
    assert checker.validate_assignment(create_test_tech(), job, []) == []


def test_checker_flags_multi_day_overlap():
    prefs = create_test_preferences()
    checker = ConflictChecker(prefs)
    tech = create_test_tech(working_hours={})
    long_job = Job(
        id="long",
        status=JobStatus.SCHEDULED,
        scheduled_start=at(8),
        estimated_duration_minutes=960,
        multi_day_schedule={
            "is_multi_day": True,
            "total_days": 2,
            "total_duration_minutes": 960,
            "segments": [
                {"day": "2025-03-03", "day_number": 1, "start_time": "08:00", "end_time": "16:00", "duration_minutes": 480},
                {"day": "2025-03-04", "day_number": 2, "start_time": "08:00", "end_time": "16:00", "duration_minutes": 480},
            ]
        }
    )
    tuesday_job = booked("tue", at(9, day=4), tech_id="t1")

    conflicts = checker.validate_assignment(tech, long_job, [tuesday_job])
    assert "multi_day" in [c.conflict_type for c in conflicts]
    assert has_hard_conflict(conflicts)


def test_proposal_combines_overlap_and_capacity():
    checker = ConflictChecker(create_test_preferences())
    conflicts = checker.validate_proposal(at(10, 30), at(11, 30), [booked("a", at(10))])
    assert sorted(c.conflict_type for c in conflicts) == ["resource_capacity", "time_overlap"]
