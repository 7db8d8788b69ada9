"""
Tests for multi-day job helpers.
"""

from datetime import date, datetime

from dispatcher.models import DayHours, Job, JobStatus, default_business_hours
from dispatcher.multiday import (
    analyze_multi_day_conflicts, calculate_days_needed, create_multi_day_schedule,
    format_segment_display, generate_day_segments, is_multi_day_job, segment_for_date
)


FRIDAY = date(2025, 3, 7)
MONDAY = date(2025, 3, 10)


def test_days_needed():
    assert calculate_days_needed(480) == 1
    assert calculate_days_needed(481) == 2
    assert calculate_days_needed(960) == 2
    assert calculate_days_needed(0) == 1
    assert calculate_days_needed(None) == 1


def test_multi_day_threshold():
    assert not is_multi_day_job(480)
    assert is_multi_day_job(481)
    assert not is_multi_day_job(None)


def test_segments_skip_closed_days():
    segments = generate_day_segments(FRIDAY, 960, default_business_hours())

    assert [s.day for s in segments] == [FRIDAY, MONDAY]
    assert [s.day_number for s in segments] == [1, 2]
    assert segments[0].start_time == "08:00"
    assert segments[0].end_time == "16:00"
    assert [s.is_complete for s in segments] == [False, True]


def test_last_segment_holds_the_remainder():
    segments = generate_day_segments(date(2025, 3, 3), 1000, default_business_hours())
    assert [s.duration_minutes for s in segments] == [480, 480, 40]
    assert sum(s.duration_minutes for s in segments) == 1000
    assert segments[-1].end_time == "08:40"


def test_segment_count_matches_days_needed():
    for minutes in (481, 960, 1500, 2400):
        segments = generate_day_segments(date(2025, 3, 3), minutes, default_business_hours())
        assert len(segments) == calculate_days_needed(minutes)


def test_all_days_disabled_gives_up():
    closed = {day: DayHours(enabled=False) for day in default_business_hours()}
    assert generate_day_segments(date(2025, 3, 3), 960, closed) == []


def test_schedule_and_lookup():
    schedule = create_multi_day_schedule(FRIDAY, 960, default_business_hours())
    assert schedule.is_multi_day
    assert schedule.total_days == 2
    assert (schedule.start_date, schedule.end_date) == (FRIDAY, MONDAY)
    assert segment_for_date(MONDAY, schedule).day_number == 2
    assert segment_for_date(date(2025, 3, 8), schedule) is None


def test_segment_display():
    schedule = create_multi_day_schedule(FRIDAY, 960, default_business_hours())
    assert format_segment_display(schedule.segments[0], schedule.total_days) == "Day 1 of 2: 8:00 AM - 4:00 PM"
    assert format_segment_display(None, 2) == ""


def test_analysis_reports_clashing_days():
    existing = Job(
        id="monday",
        status=JobStatus.SCHEDULED,
        scheduled_start=datetime(2025, 3, 10, 10, 0),
        estimated_duration_minutes=60,
        assigned_technician_id="t1"
    )

    analysis = analyze_multi_day_conflicts(FRIDAY, 960, default_business_hours(), [existing], tech_id="t1")
    assert analysis.has_conflicts
    assert analysis.affected_days == [MONDAY]
    assert analysis.summary == "Conflicts on 1 day: Day 2"

    clear = analyze_multi_day_conflicts(FRIDAY, 960, default_business_hours(), [existing], tech_id="t2")
    assert not clear.has_conflicts
    assert clear.summary == "No conflicts detected"
