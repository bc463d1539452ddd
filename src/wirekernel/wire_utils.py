"""
Utilities for working with wires.

Queries (nearest wire, endpoint lookup) and editor-level wire operations:
inline unification of collinear wires, breaking wires at component pins
and mending them again when a component is removed, and segment-level
cutting and isolation of polylines.
"""

from __future__ import annotations
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple
import itertools
import logging

from .schematic_model import Component, Junction, Pin, Point, PointLike, Wire, as_point, resolve_component_pins
from .connectivity import touches_conductor
from .geometry import (
    collapse_duplicate_points,
    distance_squared,
    point_key,
    point_to_segment_distance,
    points_equal,
)

logger = logging.getLogger(__name__)

IdFactory = Callable[[], str]
PinResolver = Callable[[Component], List[Pin]]

MAX_UNIFY_ITERATIONS = 200


def sequential_ids(prefix: str = "w", start: int = 1) -> IdFactory:
    """Return an id factory producing prefix1, prefix2, ..."""
    counter = itertools.count(start)
    return lambda: f"{prefix}{next(counter)}"


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def find_wire_endpoint_near(
    point: PointLike,
    wires: Sequence[Wire],
    tol: float = 0.9,
) -> Optional[Tuple[Wire, int]]:
    """
    Find a wire endpoint near the given point (within tolerance).

    Returns:
        (wire, end_index) for the first hit in wire order, where end_index is
        0 (start) or 1 (end), or None.
    """
    tol2 = tol * tol
    for wire in wires:
        if len(wire.points) < 2:
            continue
        if distance_squared(wire.points[0], point) <= tol2:
            return wire, 0
        if distance_squared(wire.points[-1], point) <= tol2:
            return wire, 1
    return None


def wires_ending_at(point: PointLike, wires: Iterable[Wire], eps: float = 1e-3) -> List[Wire]:
    """All wires with either endpoint at `point`."""
    return [
        w for w in wires
        if points_equal(w.points[0], point, eps) or points_equal(w.points[-1], point, eps)
    ]


def find_nearest_wire(
    wires: Sequence[Wire],
    point: PointLike,
    max_dist: float = 15.0,
) -> Tuple[Optional[Wire], int, Point]:
    """
    Find the wire closest to `point`.

    Returns:
        (wire, segment_index, closest_point) or (None, -1, point) if no wire
        is closer than max_dist.
    """
    best_wire = None
    best_index = -1
    best_dist = max_dist
    best_point = as_point(point)

    for wire in wires:
        for i, (a, b) in enumerate(wire.segments()):
            proj = point_to_segment_distance(point, a, b)
            if proj.distance < best_dist:
                best_dist = proj.distance
                best_wire = wire
                best_index = i
                best_point = proj.closest

    return best_wire, best_index, best_point


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------

def normalized_polyline_or_none(points: Optional[Sequence[PointLike]]) -> Optional[List[Point]]:
    """
    Collapse duplicates and drop every collinear interior point (any
    direction, cross-product test), so straight runs become one segment.

    Returns:
        The cleaned polyline, or None if fewer than two distinct points remain.
    """
    pts = collapse_duplicate_points(points or [])
    if len(pts) < 2:
        return None
    if len(pts) == 2:
        return pts

    out = [pts[0]]
    for i in range(1, len(pts) - 1):
        a = out[-1]
        b = pts[i]
        c = pts[i + 1]
        cross = (b.x - a.x) * (c.y - b.y) - (b.y - a.y) * (c.x - b.x)
        if cross == 0:
            continue
        out.append(b)
    out.append(pts[-1])
    out = collapse_duplicate_points(out)
    return out if len(out) >= 2 else None


# ---------------------------------------------------------------------------
# Inline unification
# ---------------------------------------------------------------------------

def _pin_keys(components: Iterable[Component], pin_resolver: PinResolver) -> Set[Tuple[int, int]]:
    keys = set()
    for comp in components:
        for pin in pin_resolver(comp):
            keys.add(point_key(pin.at))
    return keys


def _end_direction(wire: Wire, end_index: int) -> Tuple[float, float]:
    """Vector pointing from the endpoint into the wire."""
    if end_index == 0:
        a, b = wire.points[0], wire.points[1]
    else:
        a, b = wire.points[-1], wire.points[-2]
    return b.x - a.x, b.y - a.y


def _endpoints_by_key(wires: Sequence[Wire]) -> Dict[Tuple[int, int], List[Tuple[Wire, int]]]:
    grouped: Dict[Tuple[int, int], List[Tuple[Wire, int]]] = {}
    for wire in wires:
        if len(wire.points) < 2:
            continue
        for end_index in (0, 1):
            key = point_key(wire.endpoint(end_index))
            grouped.setdefault(key, []).append((wire, end_index))
    return grouped


def _state_signature(wires: Sequence[Wire]) -> str:
    return ";".join(
        f"{w.id}:" + "|".join(f"{k[0]},{k[1]}" for k in map(point_key, w.points))
        for w in wires
    )


def _join_is_tapped(
    point: Point,
    joining: Tuple[Wire, Wire],
    wires: Sequence[Wire],
    junctions: Sequence[Junction],
    tolerance: float,
) -> bool:
    """True if a junction or another wire's run sits on the join point."""
    tol2 = tolerance * tolerance
    if any(distance_squared(j.at, point) <= tol2 for j in junctions):
        return True
    return any(
        touches_conductor(point, other, tolerance)
        for other in wires
        if other is not joining[0] and other is not joining[1]
    )


def unify_inline_wires(
    wires: List[Wire],
    components: Sequence[Component] = (),
    pin_resolver: PinResolver = resolve_component_pins,
    id_factory: Optional[IdFactory] = None,
    junctions: Sequence[Junction] = (),
    tolerance: float = 0.5,
) -> List[Wire]:
    """
    Merge wires that continue each other in a straight line.

    Two wires merge at a point where exactly two wire endpoints meet, the
    point is not a component pin, both wires carry the same net id, and the
    two end directions are collinear and opposed (axis-aligned or diagonal).
    A point that a junction or another wire's run passes through is left
    alone, since merging there would turn a T into a bare crossing.
    The merged wire spans both original extremes, keeps the primary (earlier
    in the list) wire's colour and net id, and is re-normalised.

    Args:
        wires: wires to unify (not mutated)
        components: components whose pins block merging
        pin_resolver: absolute pin positions for a component
        id_factory: id for merged wires; None keeps the primary's id
        junctions: junctions whose positions block merging
        tolerance: how close a tapping wire or junction must be

    Returns:
        New wire list.
    """
    pin_keys = _pin_keys(components, pin_resolver)
    wires = list(wires)
    seen: Set[str] = set()

    for iteration in range(MAX_UNIFY_ITERATIONS):
        sig = _state_signature(wires)
        if sig in seen:
            logger.warning("unify_inline_wires: repeating state after %d passes, aborting", iteration)
            break
        seen.add(sig)

        merged_this_pass = False
        for key, ends in _endpoints_by_key(wires).items():
            if key in pin_keys:
                continue  # never merge across component pins
            if len(ends) != 2:
                continue  # only clean 1:1 joins
            (wa, ea), (wb, eb) = ends
            if wa is wb:
                continue
            if (wa.net_id or "default") != (wb.net_id or "default"):
                continue
            if _join_is_tapped(wa.endpoint(ea), (wa, wb), wires, junctions, tolerance):
                continue

            dax, day = _end_direction(wa, ea)
            dbx, dby = _end_direction(wb, eb)
            if dax * dby - day * dbx != 0:
                continue  # not collinear
            if dax * dbx + day * dby >= 0:
                continue  # folds back on itself

            ia, ib = wires.index(wa), wires.index(wb)
            (primary, pe), (secondary, se) = ((wa, ea), (wb, eb)) if ia <= ib else ((wb, eb), (wa, ea))

            # Orient primary to END at the join and secondary to START there
            left = list(primary.points) if pe == 1 else list(reversed(primary.points))
            right = list(secondary.points) if se == 0 else list(reversed(secondary.points))
            merged_pts = normalized_polyline_or_none(left + right[1:])
            if merged_pts is None:
                continue

            merged = Wire(
                id=id_factory() if id_factory else primary.id,
                points=merged_pts,
                color=primary.color or secondary.color,
                net_id=primary.net_id,
            )
            insert_at = min(ia, ib)
            wires = [w for w in wires if w is not primary and w is not secondary]
            wires.insert(insert_at, merged)
            logger.debug("Unified %s and %s into %s", primary.id, secondary.id, merged.id)
            merged_this_pass = True
            break  # restart the scan after a successful merge

        if not merged_this_pass:
            break

    return wires


# ---------------------------------------------------------------------------
# Breaking and mending at component pins
# ---------------------------------------------------------------------------

def break_wires_at_pins(
    pins: Sequence[PointLike],
    wires: List[Wire],
    id_factory: IdFactory,
    tolerance: float = 0.5,
) -> Tuple[List[Wire], bool]:
    """
    Split every wire whose segment interior passes through a pin, so the pin
    ends up on wire endpoints.

    Args:
        pins: absolute pin positions
        wires: wires to split (not mutated)
        id_factory: ids for the two halves of a split wire
        tolerance: how far off the segment the pin may be

    Returns:
        (new wire list, whether anything was split)
    """
    wires = list(wires)
    broke = False
    for raw_pin in pins:
        pin = as_point(raw_pin)
        changed = True
        while changed:
            changed = False
            for wi, wire in enumerate(wires):
                for si, (a, b) in enumerate(wire.segments()):
                    if points_equal(pin, a, 1e-2) or points_equal(pin, b, 1e-2):
                        continue
                    proj = point_to_segment_distance(pin, a, b)
                    if not proj.on_segment or proj.distance > tolerance:
                        continue
                    left = normalized_polyline_or_none(list(wire.points[:si + 1]) + [pin])
                    right = normalized_polyline_or_none([pin] + list(wire.points[si + 1:]))
                    pieces = [
                        Wire(id=id_factory(), points=pts, color=wire.color, net_id=wire.net_id)
                        for pts in (left, right) if pts is not None
                    ]
                    wires[wi:wi + 1] = pieces
                    logger.debug("Broke wire %s at pin (%s, %s)", wire.id, pin.x, pin.y)
                    broke = changed = True
                    break
                if changed:
                    break
    return wires, broke


def mend_wires_at_pins(
    pin_a: PointLike,
    pin_b: PointLike,
    wires: List[Wire],
    id_factory: IdFactory,
    tol: float = 0.9,
) -> List[Wire]:
    """
    Join the wire ending at pin_a with the wire starting at pin_b into one
    wire, dropping both pin vertices. Used when an embedded two-pin
    component is removed from a wire run.

    Returns the wire list unchanged when either pin has no wire endpoint.
    """
    hit_a = find_wire_endpoint_near(pin_a, wires, tol)
    hit_b = find_wire_endpoint_near(pin_b, [w for w in wires if hit_a is None or w is not hit_a[0]], tol)
    if hit_a is None or hit_b is None:
        return list(wires)

    wa, ea = hit_a
    wb, eb = hit_b
    a_pts = list(wa.points) if ea == 1 else list(reversed(wa.points))
    b_pts = list(wb.points) if eb == 0 else list(reversed(wb.points))
    joined = collapse_duplicate_points(a_pts[:-1] + b_pts[1:])

    remaining = [w for w in wires if w is not wa and w is not wb]
    if len(joined) < 2:
        return remaining
    remaining.append(Wire(
        id=id_factory(),
        points=joined,
        color=wa.color or wb.color,
        net_id=wa.net_id or wb.net_id,
    ))
    logger.debug("Mended %s and %s", wa.id, wb.id)
    return remaining


def delete_bridge_between_pins(pins: Sequence[PointLike], wires: Sequence[Wire], eps: float = 1e-3) -> List[Wire]:
    """
    Drop the short two-point wire running directly between the two pins
    of a component. Anything but exactly two pins leaves the list as is.
    """
    if len(pins) != 2:
        return list(wires)
    a, b = as_point(pins[0]), as_point(pins[1])

    def is_bridge(wire: Wire) -> bool:
        if len(wire.points) != 2:
            return False
        p0, p1 = wire.points
        return ((points_equal(p0, a, eps) and points_equal(p1, b, eps))
                or (points_equal(p0, b, eps) and points_equal(p1, a, eps)))

    return [w for w in wires if not is_bridge(w)]


# ---------------------------------------------------------------------------
# Segment-level edits
# ---------------------------------------------------------------------------

def split_polyline_by_removed_segments(points: Sequence[PointLike], remove: Iterable[int]) -> List[List[Point]]:
    """
    Cut the segments at the given indices out of a polyline.

    Returns:
        The normalised pieces left over, in polyline order.
    """
    pts = [as_point(p) for p in points]
    if len(pts) < 2:
        return []
    remove = set(remove)
    pieces: List[List[Point]] = []
    current = [pts[0]]
    for i in range(len(pts) - 1):
        if i in remove:
            cleaned = normalized_polyline_or_none(current)
            if cleaned is not None:
                pieces.append(cleaned)
            current = [pts[i + 1]]
        else:
            current.append(pts[i + 1])
    cleaned = normalized_polyline_or_none(current)
    if cleaned is not None:
        pieces.append(cleaned)
    return pieces


def split_polyline_by_kept_segments(points: Sequence[PointLike], keep: Iterable[int]) -> List[List[Point]]:
    """
    Keep only the segments at the given indices; each run of consecutive
    kept segments becomes one normalised piece.
    """
    pts = [as_point(p) for p in points]
    if len(pts) < 2:
        return []
    keep = set(keep)
    pieces: List[List[Point]] = []
    current: List[Point] = []
    for i in range(len(pts) - 1):
        if i in keep:
            if not current:
                current.append(pts[i])
            current.append(pts[i + 1])
            continue
        cleaned = normalized_polyline_or_none(current)
        if cleaned is not None:
            pieces.append(cleaned)
        current = []
    cleaned = normalized_polyline_or_none(current)
    if cleaned is not None:
        pieces.append(cleaned)
    return pieces


def isolate_wire_segment(
    wire: Wire,
    segment_index: int,
    wires: Sequence[Wire],
    id_factory: IdFactory,
) -> Tuple[List[Wire], Optional[Wire]]:
    """
    Split a wire into up to three wires so that one segment stands alone.

    The left piece, the isolated segment and the right piece replace the
    original at its position in the list and inherit its colour and net id.
    A wire that is already a single segment is returned as is.

    Returns:
        (new wire list, the isolated segment's wire) or (wires, None) when
        `segment_index` is out of range.
    """
    if not 0 <= segment_index < len(wire.points) - 1:
        return list(wires), None
    if len(wire.points) == 2:
        return list(wires), wire

    left = normalized_polyline_or_none(wire.points[:segment_index + 1])
    middle = normalized_polyline_or_none(wire.points[segment_index:segment_index + 2])
    right = normalized_polyline_or_none(wire.points[segment_index + 1:])

    pieces: List[Wire] = []
    isolated = None
    for pts in (left, middle, right):
        if pts is None:
            continue
        piece = Wire(id=id_factory(), points=pts, color=wire.color, net_id=wire.net_id)
        if pts is middle:
            isolated = piece
        pieces.append(piece)

    result = list(wires)
    at = next(i for i, w in enumerate(result) if w is wire)
    result[at:at + 1] = pieces
    logger.debug("Isolated segment %d of %s as %s", segment_index, wire.id, isolated.id if isolated else None)
    return result, isolated
