"""
Tests for the geometry primitives.
"""

import math

import pytest

from wirekernel.schematic_model import Point
from wirekernel.geometry import (
    axis_aligned_intersection,
    axis_of,
    distance,
    distance_squared,
    is_orthogonal_polyline,
    manhattan_path,
    normalize_polyline,
    point_key,
    point_strictly_inside_axis_segment,
    point_to_segment_distance,
    points_equal,
    project_point_to_segment,
    rotate_point,
    round_coord,
    snap_to_grid,
)


def test_points_equal_uses_inclusive_eps():
    assert points_equal((0, 0), (0.5, -0.5), eps=0.5)
    assert not points_equal((0, 0), (0.51, 0), eps=0.5)
    assert points_equal((3, 4), (3, 4))


def test_distances():
    assert distance((0, 0), (3, 4)) == 5
    assert distance_squared((0, 0), (3, 4)) == 25


def test_projection_inside_segment():
    proj = point_to_segment_distance((5, 3), (0, 0), (10, 0))
    assert proj.on_segment
    assert proj.distance == 3
    assert proj.closest == Point(5, 0)
    assert proj.t == pytest.approx(0.5)


def test_projection_beyond_segment_is_clamped_and_not_on_segment():
    proj = point_to_segment_distance((14, 3), (0, 0), (10, 0))
    assert not proj.on_segment
    assert proj.closest == Point(10, 0)
    assert proj.distance == 5


def test_projection_on_zero_length_segment():
    proj = point_to_segment_distance((3, 4), (0, 0), (0, 0))
    assert not proj.on_segment
    assert proj.distance == 5
    assert not math.isnan(proj.distance)


def test_project_point_to_segment_returns_clamped_t():
    closest, t = project_point_to_segment((-5, 2), (0, 0), (10, 0))
    assert closest == Point(0, 0)
    assert t == 0.0


@pytest.mark.parametrize("a, b, expected", [
    ((0, 0), (10, 0), "x"),
    ((0, 0), (0, 10), "y"),
    ((0, 0), (10, 10), None),
    ((5, 5), (5, 5), None),
])
def test_axis_of(a, b, expected):
    assert axis_of(a, b) == expected


def test_normalize_polyline_removes_duplicates_only_by_default():
    pts = normalize_polyline([(0, 0), (0, 0), (5, 0), (10, 0)])
    assert pts == [Point(0, 0), Point(5, 0), Point(10, 0)]


def test_normalize_polyline_removes_axis_aligned_colinear_points_until_stable():
    pts = normalize_polyline(
        [(0, 0), (5, 0), (10, 0), (10, 0), (10, 5), (10, 10), (20, 10)],
        remove_colinear=True,
    )
    assert pts == [Point(0, 0), Point(10, 0), Point(10, 10), Point(20, 10)]


def test_normalize_polyline_keeps_diagonal_colinear_points():
    pts = normalize_polyline([(0, 0), (5, 5), (10, 10)], remove_colinear=True)
    assert pts == [Point(0, 0), Point(5, 5), Point(10, 10)]


def test_perpendicular_intersection():
    assert axis_aligned_intersection((0, 0), (20, 0), (10, -10), (10, 10)) == Point(10, 0)
    assert axis_aligned_intersection((0, 0), (20, 0), (30, -10), (30, 10)) is None


def test_colinear_segments_touching_at_one_point():
    assert axis_aligned_intersection((0, 0), (10, 0), (10, 0), (20, 0)) == Point(10, 0)


def test_colinear_overlap_is_not_a_single_point():
    assert axis_aligned_intersection((0, 0), (10, 0), (5, 0), (20, 0)) is None


def test_strictly_inside_excludes_endpoints():
    assert point_strictly_inside_axis_segment((5, 0), (0, 0), (10, 0))
    assert not point_strictly_inside_axis_segment((10, 0), (0, 0), (10, 0))
    assert not point_strictly_inside_axis_segment((5, 1), (0, 0), (10, 0))


def test_round_coord_is_half_up():
    assert round_coord(2.5) == 3
    assert round_coord(-2.5) == -2
    assert point_key((1.4, 1.6)) == (1, 2)


def test_snap_and_rotate():
    assert snap_to_grid((14, 16), 10) == Point(10, 20)
    assert rotate_point((10, 0), (0, 0), 90) == Point(0, 10)


def test_manhattan_path_modes():
    assert manhattan_path((0, 0), (10, 0)) == [Point(0, 0), Point(10, 0)]
    assert manhattan_path((0, 0), (10, 20), "HV") == [Point(0, 0), Point(10, 0), Point(10, 20)]
    assert manhattan_path((0, 0), (10, 20), "VH") == [Point(0, 0), Point(0, 20), Point(10, 20)]


def test_is_orthogonal_polyline():
    assert is_orthogonal_polyline([(0, 0), (10, 0), (10, 10)])
    assert not is_orthogonal_polyline([(0, 0), (10, 10)])
