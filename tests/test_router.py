"""
Tests for daily stop ordering.
"""

from itertools import permutations

import pytest

from dispatcher.models import Coordinates, Job
from dispatcher.router import build_route_plan, compare_routes, suggest_route_order


HOME = Coordinates(lat=0.0, lon=0.0)


def stop(job_id, lat=None, lon=0.0):
    coords = {"lat": lat, "lon": lon} if lat is not None else None
    return Job(id=job_id, service_coordinates=coords)


def test_order_is_a_permutation():
    jobs = [stop("a", 0.3), stop("b", 0.1), stop("c"), stop("d", 0.2)]
    ordered = suggest_route_order(jobs, HOME)
    assert sorted(j.id for j in ordered) == ["a", "b", "c", "d"]
    assert len(ordered) == len(jobs)


def test_nearest_first():
    jobs = [stop("far", 0.5), stop("near", 0.1), stop("middle", 0.3)]
    assert [j.id for j in suggest_route_order(jobs, HOME)] == ["near", "middle", "far"]


def test_two_stops_are_optimal():
    jobs = [stop("a", 0.4, 0.2), stop("b", 0.1, -0.1)]
    ordered = suggest_route_order(jobs, HOME)
    best = min(build_route_plan(list(p), HOME).total_miles for p in permutations(jobs))
    assert build_route_plan(ordered, HOME).total_miles == pytest.approx(best)


def test_job_without_coordinates_is_taken_immediately():
    jobs = [stop("a", 0.1), stop("unknown"), stop("b", 0.2)]
    assert [j.id for j in suggest_route_order(jobs, HOME)] == ["unknown", "a", "b"]


def test_without_home_base_starts_with_first_job():
    jobs = [stop("far", 0.5), stop("near", 0.1), stop("next", 0.45)]
    assert [j.id for j in suggest_route_order(jobs)] == ["far", "next", "near"]


def test_single_job_and_empty_day():
    assert suggest_route_order([], HOME) == []
    only = [stop("a", 0.1)]
    assert suggest_route_order(only, HOME) == only


def test_plan_skips_unknown_legs():
    plan = build_route_plan([stop("a", 0.1), stop("unknown"), stop("b", 0.2)], HOME)
    assert plan.legs[1].miles is None
    # b is measured from a, the last known position
    assert plan.legs[2].miles == pytest.approx(plan.legs[0].miles, rel=1e-3)
    assert plan.total_miles == pytest.approx(plan.legs[0].miles + plan.legs[2].miles)


def test_compare_reports_savings():
    original = [stop("far", 0.5), stop("near", 0.1), stop("middle", 0.3)]
    comparison = compare_routes(original, suggest_route_order(original, HOME), HOME)
    assert comparison.improved
    assert comparison.miles_saved > 0
    assert comparison.minutes_saved >= 0
