"""
Tests for open-window search and day workload.
"""

from datetime import date, datetime

from dispatcher.models import DayHours, Job, JobStatus, SchedulingPreferences
from dispatcher.slots import (
    SLOT_EMPTY_DAY, SLOT_END_OF_DAY, SLOT_GAP,
    bookings_for_date, calculate_day_workload, find_available_slots
)


MONDAY = date(2025, 3, 3)
SATURDAY = date(2025, 3, 8)


def create_test_preferences(**overrides):
    """Business open 08:00-17:00 on weekdays with a 30 minute buffer."""
    data = {"buffer_minutes": 30, "default_job_duration_minutes": 120}
    data.update(overrides)
    return SchedulingPreferences(**data)


def booked(job_id, hour, minute=0, duration=60, day=MONDAY, **extra):
    return Job(
        id=job_id,
        status=JobStatus.SCHEDULED,
        scheduled_start=datetime(day.year, day.month, day.day, hour, minute),
        estimated_duration_minutes=duration,
        **extra
    )


def test_empty_day_is_one_slot():
    prefs = create_test_preferences()
    slots = find_available_slots(MONDAY, [], prefs, 120)

    assert len(slots) == 1
    assert slots[0].start_minute == 480
    assert slots[0].end_minute == 1020
    assert slots[0].kind == SLOT_EMPTY_DAY


def test_buffer_trims_gap_before_booking():
    prefs = create_test_preferences()
    jobs = [booked("j1", 10)]  # 10:00-11:00

    slots = find_available_slots(MONDAY, jobs, prefs, 120)
    # 08:00-09:30 is only 90 minutes
    assert len(slots) == 1
    assert (slots[0].start_minute, slots[0].end_minute) == (690, 1020)
    assert slots[0].kind == SLOT_END_OF_DAY

    slots = find_available_slots(MONDAY, jobs, prefs, 60)
    assert [(s.start_minute, s.end_minute, s.kind) for s in slots] == [
        (480, 570, SLOT_GAP),
        (690, 1020, SLOT_END_OF_DAY),
    ]


def test_slots_never_touch_buffered_bookings():
    prefs = create_test_preferences()
    jobs = [booked("a", 9), booked("b", 11, 30, duration=90), booked("c", 15)]
    bookings = bookings_for_date(jobs, MONDAY, prefs)

    for slot in find_available_slots(MONDAY, jobs, prefs, 30):
        assert slot.duration_minutes >= 30
        for b in bookings:
            assert slot.end_minute <= b.start_minute - 30 or slot.start_minute >= b.end_minute + 30


def test_longer_job_never_finds_more_open_time():
    prefs = create_test_preferences()
    jobs = [booked("a", 9), booked("b", 13)]

    short = find_available_slots(MONDAY, jobs, prefs, 30)
    long = find_available_slots(MONDAY, jobs, prefs, 180)
    assert sum(s.duration_minutes for s in long) <= sum(s.duration_minutes for s in short)


def test_closed_day_has_no_slots():
    prefs = create_test_preferences()
    assert find_available_slots(SATURDAY, [], prefs, 60) == []

    off = DayHours(enabled=False)
    assert find_available_slots(MONDAY, [], prefs, 60, working_hours=off) == []


def test_technician_hours_replace_business_hours():
    prefs = create_test_preferences()
    hours = DayHours(start="10:00", end="14:00")
    slots = find_available_slots(SATURDAY, [], prefs, 60, working_hours=hours)
    assert [(s.start_minute, s.end_minute) for s in slots] == [(600, 840)]


def test_pending_offer_holds_time():
    prefs = create_test_preferences()
    offered = Job(
        id="offer",
        status=JobStatus.SLOTS_OFFERED,
        estimated_duration_minutes=120,
        offered_slots=[{"start": datetime(2025, 3, 3, 13, 0)}]
    )
    declined = Job(
        id="declined",
        status=JobStatus.SLOTS_OFFERED,
        offered_slots=[{"start": datetime(2025, 3, 3, 9, 0), "status": "declined"}]
    )

    bookings = bookings_for_date([offered, declined], MONDAY, prefs)
    assert len(bookings) == 1
    assert bookings[0].is_pending_offer
    assert (bookings[0].start_minute, bookings[0].end_minute) == (780, 900)


def test_cancelled_jobs_free_their_time():
    prefs = create_test_preferences()
    cancelled = Job(
        id="gone",
        status=JobStatus.CANCELLED,
        scheduled_start=datetime(2025, 3, 3, 10, 0),
    )
    assert bookings_for_date([cancelled], MONDAY, prefs) == []


def test_multi_day_segment_books_each_day():
    prefs = create_test_preferences()
    job = Job(
        id="long",
        status=JobStatus.SCHEDULED,
        scheduled_start=datetime(2025, 3, 3, 8, 0),
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

    tuesday = bookings_for_date([job], date(2025, 3, 4), prefs)
    assert len(tuesday) == 1
    assert tuesday[0].duration_minutes == 480
    assert bookings_for_date([job], date(2025, 3, 5), prefs) == []


def test_workload_against_cap():
    prefs = create_test_preferences(max_jobs_per_day=2)
    jobs = [booked("a", 9), booked("b", 13, duration=90)]

    workload = calculate_day_workload(jobs, MONDAY, prefs)
    assert workload.job_count == 2
    assert workload.total_minutes == 150
    assert workload.percent_full == 100
    assert workload.is_full
    assert not workload.is_light

    empty = calculate_day_workload([], MONDAY, prefs)
    assert empty.is_light and not empty.is_full


def test_new_booking_never_adds_open_time():
    prefs = create_test_preferences()
    before = find_available_slots(MONDAY, [booked("a", 9)], prefs, 60)
    after = find_available_slots(MONDAY, [booked("a", 9), booked("b", 14)], prefs, 60)
    assert sum(s.duration_minutes for s in after) < sum(s.duration_minutes for s in before)

    # a mid-day booking splits the empty day in two
    split = find_available_slots(MONDAY, [booked("mid", 12)], prefs, 60)
    assert len(split) == 2


def test_gap_exactly_as_long_as_the_job_is_offered():
    prefs = create_test_preferences()
    jobs = [booked("j1", 10)]  # 10:00-11:00, buffered 09:30-11:30

    slots = find_available_slots(MONDAY, jobs, prefs, 90)
    assert [(s.start_minute, s.end_minute, s.kind) for s in slots] == [
        (480, 570, SLOT_GAP),
        (690, 1020, SLOT_END_OF_DAY),
    ]
    assert slots[0].duration_minutes == 90


def test_workload_percent_rounds_half_up():
    prefs = create_test_preferences(max_jobs_per_day=8)
    workload = calculate_day_workload([booked("a", 9)], MONDAY, prefs)
    assert workload.percent_full == 13
