"""
Geometry primitives for orthogonal wires.

Pure functions over points and polylines: epsilon comparisons, distances,
point-to-segment projection, polyline normalisation, axis-aligned segment
intersection, rounding keys, grid snapping and Manhattan path generation.
"""

from __future__ import annotations
from typing import List, NamedTuple, Optional, Sequence, Tuple
import math

from .schematic_model import Point, PointLike, as_point


EXACT_EPS = 1e-6


# ---------------------------------------------------------------------------
# Comparison and distance
# ---------------------------------------------------------------------------

def points_equal(a: PointLike, b: PointLike, eps: float = EXACT_EPS) -> bool:
    """True iff both coordinates differ by at most `eps` (Chebyshev test)."""
    return abs(a[0] - b[0]) <= eps and abs(a[1] - b[1]) <= eps


def distance_squared(a: PointLike, b: PointLike) -> float:
    dx = a[0] - b[0]
    dy = a[1] - b[1]
    return dx * dx + dy * dy


def distance(a: PointLike, b: PointLike) -> float:
    return math.sqrt(distance_squared(a, b))


class SegmentProjection(NamedTuple):
    """Result of projecting a point onto a segment."""
    distance: float
    on_segment: bool
    closest: Point
    t: float  # clamped parameter, 0 at a, 1 at b


def point_to_segment_distance(p: PointLike, a: PointLike, b: PointLike) -> SegmentProjection:
    """
    Calculate distance from a point to a line segment.

    The projection parameter t is clamped to [0, 1]. `on_segment` is True
    only when the unclamped t was already inside [0, 1], i.e. the
    perpendicular foot lands within the segment and not on an extension.

    A zero-length segment is treated as a point target: on_segment is
    False and the distance is measured to that point.

    Returns:
        SegmentProjection(distance, on_segment, closest, t)
    """
    ax, ay = a[0], a[1]
    dx = b[0] - ax
    dy = b[1] - ay
    len_sq = dx * dx + dy * dy

    if len_sq <= 1e-12:
        # Zero-length segment, just return distance to endpoint
        return SegmentProjection(distance(p, a), False, Point(ax, ay), 0.0)

    # Calculate t (parameter along line segment)
    raw_t = ((p[0] - ax) * dx + (p[1] - ay) * dy) / len_sq
    on_segment = 0.0 <= raw_t <= 1.0

    # Clamp t to [0, 1] to stay within segment
    t = max(0.0, min(1.0, raw_t))
    closest = Point(ax + t * dx, ay + t * dy)
    return SegmentProjection(distance(p, closest), on_segment, closest, t)


def project_point_to_segment(p: PointLike, a: PointLike, b: PointLike) -> Tuple[Point, float]:
    """Closest point on segment [a, b] to p, and the clamped parameter t."""
    proj = point_to_segment_distance(p, a, b)
    return proj.closest, proj.t


# ---------------------------------------------------------------------------
# Axes
# ---------------------------------------------------------------------------

def axis_of(a: PointLike, b: PointLike) -> Optional[str]:
    """
    Axis of segment [a, b]: 'x' for horizontal, 'y' for vertical,
    None for diagonal or zero-length segments.
    """
    if a[1] == b[1] and a[0] != b[0]:
        return "x"
    if a[0] == b[0] and a[1] != b[1]:
        return "y"
    return None


def is_orthogonal_polyline(points: Sequence[PointLike]) -> bool:
    """True iff every consecutive pair shares an x or a y coordinate."""
    for a, b in zip(points[:-1], points[1:]):
        if a[0] != b[0] and a[1] != b[1]:
            return False
    return True


# ---------------------------------------------------------------------------
# Polylines
# ---------------------------------------------------------------------------

def collapse_duplicate_points(points: Sequence[PointLike]) -> List[Point]:
    """Remove consecutive duplicate points."""
    out: List[Point] = []
    for p in points:
        pt = as_point(p)
        if not out or out[-1] != pt:
            out.append(pt)
    return out


def normalize_polyline(points: Sequence[PointLike], remove_colinear: bool = False) -> List[Point]:
    """
    Remove consecutive duplicate points and, optionally, axis-aligned
    collinear interior points.

    Removal can expose a new collinear triple, so passes repeat until
    nothing changes. Every pass that continues removes at least one point.
    """
    pts = collapse_duplicate_points(points)
    if not remove_colinear:
        return pts

    changed = True
    while changed and len(pts) >= 3:
        changed = False
        out = [pts[0]]
        for i in range(1, len(pts) - 1):
            a, b, c = out[-1], pts[i], pts[i + 1]
            same_x = a.x == b.x == c.x
            same_y = a.y == b.y == c.y
            if same_x or same_y:
                changed = True
                continue
            out.append(b)
        out.append(pts[-1])
        pts = collapse_duplicate_points(out)
    return pts


def point_strictly_inside_axis_segment(p: PointLike, a: PointLike, b: PointLike) -> bool:
    """
    True iff p lies on the axis-aligned segment [a, b] and is not either
    of its endpoints (open-interval test).
    """
    if a[1] == b[1] and a[0] != b[0]:
        return p[1] == a[1] and min(a[0], b[0]) < p[0] < max(a[0], b[0])
    if a[0] == b[0] and a[1] != b[1]:
        return p[0] == a[0] and min(a[1], b[1]) < p[1] < max(a[1], b[1])
    return False


def axis_aligned_intersection(
    a1: PointLike, a2: PointLike,
    b1: PointLike, b2: PointLike,
) -> Optional[Point]:
    """
    Intersection point of two axis-aligned segments.

    Perpendicular segments intersect in at most one point (closed ranges).
    Collinear segments only return a point when they touch at exactly one
    point; a shared run (overlap) is not a single point and returns None.
    Diagonal input returns None.
    """
    axis_a = axis_of(a1, a2)
    axis_b = axis_of(b1, b2)
    if axis_a is None or axis_b is None:
        return None

    if axis_a != axis_b:
        h1, h2, v1, v2 = (a1, a2, b1, b2) if axis_a == "x" else (b1, b2, a1, a2)
        hy = h1[1]
        vx = v1[0]
        if (min(h1[0], h2[0]) <= vx <= max(h1[0], h2[0])
                and min(v1[1], v2[1]) <= hy <= max(v1[1], v2[1])):
            return Point(vx, hy)
        return None

    # Parallel: must share the same carrier line
    k = 1 if axis_a == "x" else 0   # fixed coordinate index
    m = 0 if axis_a == "x" else 1   # running coordinate index
    if a1[k] != b1[k]:
        return None
    lo = max(min(a1[m], a2[m]), min(b1[m], b2[m]))
    hi = min(max(a1[m], a2[m]), max(b1[m], b2[m]))
    if lo == hi:
        return Point(lo, a1[k]) if axis_a == "x" else Point(a1[k], lo)
    return None


# ---------------------------------------------------------------------------
# Rounding, snapping, rotation
# ---------------------------------------------------------------------------

def round_coord(v: float) -> int:
    """Round half up (2.5 -> 3, -2.5 -> -2), the rounding used for grid keys."""
    return int(math.floor(v + 0.5))


def round_point(p: PointLike) -> Point:
    return Point(float(round_coord(p[0])), float(round_coord(p[1])))


def point_key(p: PointLike) -> Tuple[int, int]:
    """Hashable integer key for a point (rounded coordinates)."""
    return (round_coord(p[0]), round_coord(p[1]))


def snap_to_grid(p: PointLike, grid: float) -> Point:
    """Snap p to the nearest multiple of `grid` on both axes."""
    if grid <= 0:
        return as_point(p)
    return Point(round_coord(p[0] / grid) * grid, round_coord(p[1] / grid) * grid)


def rotate_point(p: PointLike, center: PointLike, degrees: float) -> Point:
    """
    Rotate p around `center` by `degrees` (counter-clockwise in math
    coordinates). Quarter turns are exact.
    """
    rot = degrees % 360
    quarter = {0: (1, 0), 90: (0, 1), 180: (-1, 0), 270: (0, -1)}
    if rot in quarter:
        co, s = quarter[rot]
    else:
        rad = math.radians(rot)
        co, s = math.cos(rad), math.sin(rad)
    dx = p[0] - center[0]
    dy = p[1] - center[1]
    return Point(center[0] + dx * co - dy * s, center[1] + dx * s + dy * co)


def manhattan_path(a: PointLike, p: PointLike, mode: str = "HV") -> List[Point]:
    """
    Orthogonal path from a to p.

    Already aligned points give a straight [a, p]. Otherwise an L-path with
    one bend: 'HV' travels horizontally first, 'VH' vertically first.
    """
    a = as_point(a)
    p = as_point(p)
    if a.x == p.x or a.y == p.y:
        return [a, p]
    if mode == "HV":
        return [a, Point(p.x, a.y), p]
    return [a, Point(a.x, p.y), p]
