"""
Orthogonal routing kernel.

A stateful per-diagram object that owns wires, junctions and pins and
offers the direct wire-editing tools of the editor:

- interactive placement with a live orthogonal (or free) preview
- hit-testing with a fixed target priority
- endpoint move, segment drag, corner insert/remove
- segment deletion, wire and junction removal, manual junction placement

Every structural edit validates its arguments first, computes the new
polyline on a copy, assigns it, and then re-derives connectivity, so a
raised error leaves the state untouched and `connectivity` is never stale.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple
import itertools
import logging

from .schematic_model import Junction, Point, PointLike, RoutingState, Wire, as_point
from .geometry import (
    axis_of,
    collapse_duplicate_points,
    distance,
    manhattan_path,
    normalize_polyline,
    point_to_segment_distance,
    points_equal,
    project_point_to_segment,
    snap_to_grid,
)
from .connectivity import Connectivity, derive_connectivity
from .constraints import wire_point_entity_id
from .errors import UnknownEntityError, WireEditError
from .settings import KernelSettings, DEFAULT_SETTINGS
from .wire_utils import split_polyline_by_removed_segments

logger = logging.getLogger(__name__)

SnapDelegate = Callable[[Point, Optional[float]], Point]

IDLE = "idle"
PLACING = "placing"

ORTHOGONAL = "orthogonal"
FREE = "free"

# Hit-test kinds, most precise first
HIT_PRIORITY = {"pin": 0, "junction": 1, "endpoint": 2, "corner": 3, "segment": 4}


def grid_snapper(grid: float) -> SnapDelegate:
    """Snap delegate rounding to the nearest grid point."""
    def snap(pos: Point, radius: Optional[float] = None) -> Point:
        return snap_to_grid(pos, grid)
    return snap


@dataclass
class HitResult:
    kind: str  # "pin" | "junction" | "endpoint" | "corner" | "segment" | "none"
    distance: float = 0.0
    point: Optional[Point] = None
    wire_id: Optional[str] = None
    pin_id: Optional[str] = None
    junction_id: Optional[str] = None
    index: int = -1  # endpoint index (0/1), point index or segment index


@dataclass
class CornerInsertResult:
    inserted: bool
    points: List[Point]
    index: int = -1


@dataclass
class CornerRemoveResult:
    removed: bool
    points: List[Point]


@dataclass
class _Placement:
    phase: str = IDLE
    bend: str = "HV"
    committed: List[Point] = field(default_factory=list)
    preview: List[Point] = field(default_factory=list)
    axis_hint: Optional[str] = None   # first axis the cursor moved along
    locked_bend: Optional[str] = None  # bend fixed once both axes moved


class OrthogonalRoutingKernel:
    """
    Wire editing kernel.

    Args:
        state: routing snapshot to own (a new empty one if omitted)
        settings: tolerances for hit-testing and placement
        snap: optional snap delegate; without it positions are used as given
    """

    def __init__(
        self,
        state: Optional[RoutingState] = None,
        settings: KernelSettings = DEFAULT_SETTINGS,
        snap: Optional[SnapDelegate] = None,
    ):
        self.settings = settings
        self._state = state if state is not None else RoutingState(tolerance=settings.tolerance)
        self._snap = snap
        self._line_mode = ORTHOGONAL
        self._placement = _Placement()
        self._solver = None
        self._junction_ids = itertools.count(1)
        self._connectivity = derive_connectivity(self._state)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> RoutingState:
        return self._state

    def set_state(self, state: RoutingState) -> None:
        self._state = state
        self.cancel_placement()
        self._rebuild()

    @property
    def connectivity(self) -> Connectivity:
        """Connectivity derived after the most recent structural edit."""
        return self._connectivity

    @property
    def phase(self) -> str:
        return self._placement.phase

    def _rebuild(self) -> None:
        self._connectivity = derive_connectivity(self._state)

    def _wire(self, wire_id: str) -> Wire:
        wire = self._state.get_wire(wire_id)
        if wire is None:
            raise UnknownEntityError(f"Unknown wire '{wire_id}'")
        return wire

    def _segment(self, wire: Wire, segment_index: int) -> Tuple[Point, Point]:
        if not 0 <= segment_index < len(wire.points) - 1:
            raise WireEditError(f"Wire {wire.id} has no segment {segment_index}")
        return wire.points[segment_index], wire.points[segment_index + 1]

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure_snap(self, delegate: Optional[SnapDelegate]) -> None:
        self._snap = delegate

    def snap(self, pos: PointLike, radius: Optional[float] = None) -> Point:
        p = as_point(pos)
        if self._snap is None:
            return p
        return as_point(self._snap(p, radius))

    def set_line_drawing_mode(self, mode: str) -> None:
        if mode not in (ORTHOGONAL, FREE):
            raise ValueError(f"Unknown line drawing mode: {mode}")
        self._line_mode = mode

    @property
    def line_drawing_mode(self) -> str:
        return self._line_mode

    def attach_solver(self, solver) -> None:
        """
        Consult a ConstraintSolver before moving wire endpoints it knows
        about. Pass None to detach.
        """
        self._solver = solver

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    def begin_placement(self, start: PointLike, mode: str = "HV") -> None:
        if mode not in ("HV", "VH"):
            raise ValueError(f"Unknown bend mode: {mode}")
        s = self.snap(start)
        self._placement = _Placement(phase=PLACING, bend=mode, committed=[s], preview=[s])
        logger.debug("Placement started at (%s, %s) mode=%s", s.x, s.y, mode)

    def _require_placing(self) -> _Placement:
        if self._placement.phase != PLACING:
            raise WireEditError("No wire placement in progress")
        return self._placement

    def _current_bend(self, pl: _Placement) -> str:
        if pl.locked_bend:
            return pl.locked_bend
        if pl.axis_hint == "x":
            return "HV"
        if pl.axis_hint == "y":
            return "VH"
        return pl.bend

    def update_placement(self, cursor: PointLike) -> List[Point]:
        """
        Recompute the preview from the last committed point to the cursor.

        Returns:
            The full preview polyline (committed points plus the live tail).
        """
        pl = self._require_placing()
        cur = self.snap(cursor)

        if self._line_mode == FREE:
            pl.preview = pl.committed + [cur]
            return list(pl.preview)

        last = pl.committed[-1]
        dx = abs(cur.x - last.x)
        dy = abs(cur.y - last.y)
        min_move = self.settings.min_move_threshold

        if pl.axis_hint is None:
            if dx >= min_move and dx >= dy:
                pl.axis_hint = "x"
            elif dy >= min_move:
                pl.axis_hint = "y"

        if pl.locked_bend is None and dx >= min_move and dy >= min_move:
            pl.locked_bend = self._current_bend(pl)

        # Perpendicular travel past the turn threshold commits the bend
        turn = self.settings.turn_threshold
        if pl.axis_hint == "x" and dx >= min_move and dy >= turn and pl.locked_bend == "HV":
            self._commit_auto_corner(pl, Point(cur.x, last.y))
        elif pl.axis_hint == "y" and dy >= min_move and dx >= turn and pl.locked_bend == "VH":
            self._commit_auto_corner(pl, Point(last.x, cur.y))

        tail = manhattan_path(pl.committed[-1], cur, self._current_bend(pl))
        pl.preview = pl.committed + tail[1:]
        return list(pl.preview)

    def _commit_auto_corner(self, pl: _Placement, corner: Point) -> None:
        if corner != pl.committed[-1]:
            pl.committed.append(corner)
        pl.axis_hint = None
        pl.locked_bend = None
        logger.debug("Auto corner at (%s, %s)", corner.x, corner.y)

    def commit_corner(self) -> List[Point]:
        """Commit the live preview tail and let the next segment pick its own bend."""
        pl = self._require_placing()
        for p in pl.preview[len(pl.committed):]:
            if p != pl.committed[-1]:
                pl.committed.append(p)
        pl.preview = list(pl.committed)
        pl.axis_hint = None
        pl.locked_bend = None
        return list(pl.committed)

    def finish_placement(self, color: Optional[str] = None, net_id: Optional[str] = None) -> Wire:
        """
        Turn the preview into a wire, add it and re-derive connectivity.

        Raises:
            WireEditError: no placement in progress, or fewer than two
                distinct points (the placement stays active).
        """
        pl = self._require_placing()
        points = normalize_polyline(pl.preview or pl.committed, remove_colinear=True)
        if len(points) < 2:
            raise WireEditError("A wire needs at least two distinct points")

        wire = Wire(id=self._next_wire_id(), points=points, color=color, net_id=net_id)
        self._state.wires.append(wire)
        self._placement = _Placement()
        self._rebuild()
        logger.debug("Placed wire %s with %d points", wire.id, len(points))
        return wire

    def cancel_placement(self) -> None:
        self._placement = _Placement()

    def _next_wire_id(self) -> str:
        used = {w.id for w in self._state.wires}
        n = len(self._state.wires) + 1
        while f"w{n}" in used:
            n += 1
        return f"w{n}"

    # ------------------------------------------------------------------
    # Hit testing
    # ------------------------------------------------------------------

    def hit_test(self, point: PointLike, tolerance: Optional[float] = None) -> HitResult:
        """
        Best target within tolerance, ranked by distance and then by kind
        (pin < junction < endpoint < corner < segment).
        """
        p = as_point(point)
        tol = self.settings.hit_tolerance if tolerance is None else tolerance
        candidates: List[Tuple[float, int, int, HitResult]] = []

        def offer(hit: HitResult) -> None:
            if hit.distance <= tol:
                candidates.append((hit.distance, HIT_PRIORITY[hit.kind], len(candidates), hit))

        for pin in self._state.pins:
            offer(HitResult("pin", distance(p, pin.at), pin.at, pin_id=pin.id))
        for j in self._state.junctions:
            offer(HitResult("junction", distance(p, j.at), j.at, junction_id=j.id))
        for wire in self._state.wires:
            pts = wire.points
            offer(HitResult("endpoint", distance(p, pts[0]), pts[0], wire_id=wire.id, index=0))
            offer(HitResult("endpoint", distance(p, pts[-1]), pts[-1], wire_id=wire.id, index=1))
            for i in range(1, len(pts) - 1):
                offer(HitResult("corner", distance(p, pts[i]), pts[i], wire_id=wire.id, index=i))
            for i, (a, b) in enumerate(wire.segments()):
                proj = point_to_segment_distance(p, a, b)
                offer(HitResult("segment", proj.distance, proj.closest, wire_id=wire.id, index=i))

        if not candidates:
            return HitResult("none")
        candidates.sort(key=lambda c: c[:3])
        return candidates[0][3]

    # ------------------------------------------------------------------
    # Direct edits
    # ------------------------------------------------------------------

    def move_wire_endpoint(self, wire_id: str, endpoint_index: int, new_pos: PointLike) -> List[Point]:
        """
        Move a wire's start (0) or end (1).

        On a longer wire the neighbouring vertex follows so the end segment
        keeps its axis; a diagonal end segment is left as it is.
        """
        wire = self._wire(wire_id)
        if endpoint_index not in (0, 1):
            raise WireEditError(f"Endpoint index must be 0 or 1, got {endpoint_index}")
        p = self.snap(new_pos)

        pts = list(wire.points)
        i = 0 if endpoint_index == 0 else len(pts) - 1

        entity_id = wire_point_entity_id(wire_id, i)
        if self._solver is not None and self._solver.get_entity(entity_id) is not None:
            result = self._solver.solve(entity_id, p)
            if not result.allowed:
                reasons = "; ".join(v.reason for v in result.violations)
                raise WireEditError(f"Move of {wire_id} endpoint {endpoint_index} rejected: {reasons}")
            p = as_point(result.final_position)

        if len(pts) > 2:
            adj = 1 if endpoint_index == 0 else len(pts) - 2
            nb = pts[adj]
            axis = axis_of(pts[i], nb)
            if axis == "x":
                pts[adj] = Point(nb.x, p.y)
            elif axis == "y":
                pts[adj] = Point(p.x, nb.y)
        pts[i] = p

        pts = collapse_duplicate_points(pts)
        if len(pts) < 2:
            raise WireEditError(f"Moving endpoint would collapse wire {wire_id}")
        wire.points = pts
        self._rebuild()
        return list(pts)

    def drag_wire_segment(self, wire_id: str, segment_index: int, cursor: PointLike) -> List[Point]:
        """
        Shift an axis-aligned segment perpendicular to its axis so it passes
        through the cursor. Perpendicular neighbours stretch; a parallel
        neighbour gets a jog vertex so the polyline stays orthogonal.

        Raises:
            WireEditError: the segment is diagonal or does not exist
        """
        wire = self._wire(wire_id)
        a, b = self._segment(wire, segment_index)
        axis = axis_of(a, b)
        if axis is None:
            raise WireEditError(f"Segment {segment_index} of wire {wire_id} is not orthogonal")
        c = self.snap(cursor)

        if axis == "x":
            new_a, new_b = Point(a.x, c.y), Point(b.x, c.y)
        else:
            new_a, new_b = Point(c.x, a.y), Point(c.x, b.y)

        pts = list(wire.points)
        s = segment_index
        left = pts[:s + 1]
        right = pts[s + 1:]

        if s > 0 and axis_of(pts[s - 1], a) == axis:
            left.append(new_a)  # parallel neighbour, keep a as jog
        else:
            left[-1] = new_a
        if s + 2 < len(pts) and axis_of(b, pts[s + 2]) == axis:
            right.insert(0, new_b)
        else:
            right[0] = new_b

        pts = collapse_duplicate_points(left + right)
        wire.points = pts
        self._rebuild()
        return list(pts)

    def insert_corner(self, wire_id: str, segment_index: int, cursor: PointLike) -> CornerInsertResult:
        """
        Split an axis-aligned segment at the cursor's projection (clamped to
        the segment). A projection onto an existing vertex inserts nothing.
        """
        wire = self._wire(wire_id)
        a, b = self._segment(wire, segment_index)
        if axis_of(a, b) is None:
            raise WireEditError(f"Segment {segment_index} of wire {wire_id} is not orthogonal")

        closest, _ = project_point_to_segment(self.snap(cursor), a, b)
        eps = self.settings.exact_eps
        if points_equal(closest, a, eps) or points_equal(closest, b, eps):
            return CornerInsertResult(False, list(wire.points))

        pts = list(wire.points)
        pts.insert(segment_index + 1, closest)
        wire.points = pts
        self._rebuild()
        return CornerInsertResult(True, list(pts), segment_index + 1)

    def remove_corner(self, wire_id: str, point_index: int) -> CornerRemoveResult:
        """
        Remove an interior vertex when its neighbours share an x or a y
        coordinate; otherwise report removed=False.
        """
        wire = self._wire(wire_id)
        pts = list(wire.points)
        if not 0 <= point_index < len(pts):
            raise WireEditError(f"Wire {wire_id} has no point {point_index}")
        if point_index in (0, len(pts) - 1):
            return CornerRemoveResult(False, pts)

        prev, nxt = pts[point_index - 1], pts[point_index + 1]
        if prev.x != nxt.x and prev.y != nxt.y:
            return CornerRemoveResult(False, pts)

        new_pts = collapse_duplicate_points(pts[:point_index] + pts[point_index + 1:])
        if len(new_pts) < 2:
            return CornerRemoveResult(False, pts)
        wire.points = new_pts
        self._rebuild()
        return CornerRemoveResult(True, list(new_pts))

    def remove_wire(self, wire_id: str) -> Wire:
        wire = self._wire(wire_id)
        self._state.wires.remove(wire)
        self._rebuild()
        return wire

    def delete_wire_segment(self, wire_id: str, segment_index: int) -> List[Wire]:
        """
        Cut one segment out of a wire. The first remaining piece keeps the
        wire's id, a second piece becomes a new wire, and a wire with
        nothing left is removed.

        Returns:
            The wires that replace the original, in polyline order.
        """
        wire = self._wire(wire_id)
        self._segment(wire, segment_index)
        pieces = split_polyline_by_removed_segments(wire.points, [segment_index])

        at = self._state.wires.index(wire)
        del self._state.wires[at]
        replacements: List[Wire] = []
        for n, pts in enumerate(pieces):
            wid = wire.id if n == 0 else self._next_wire_id()
            piece = Wire(id=wid, points=pts, color=wire.color, net_id=wire.net_id)
            self._state.wires.insert(at + n, piece)
            replacements.append(piece)
        self._rebuild()
        logger.debug("Deleted segment %d of %s, %d piece(s) left", segment_index, wire_id, len(replacements))
        return replacements

    def add_junction(self, at: PointLike, net_id: Optional[str] = None) -> Junction:
        """Place a manual junction (snapped)."""
        p = self.snap(at)
        used = {j.id for j in self._state.junctions}
        jid = f"j{next(self._junction_ids)}"
        while jid in used:
            jid = f"j{next(self._junction_ids)}"
        junction = Junction(id=jid, at=p, manual=True, net_id=net_id)
        self._state.junctions.append(junction)
        self._rebuild()
        return junction

    def remove_junction(self, junction_id: str) -> Junction:
        for junction in self._state.junctions:
            if junction.id == junction_id:
                self._state.junctions.remove(junction)
                self._rebuild()
                return junction
        raise UnknownEntityError(f"Unknown junction '{junction_id}'")
