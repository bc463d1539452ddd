"""
Tests for the orthogonal routing kernel: placement, hit-testing and the
direct wire edits.
"""

import pytest

from wirekernel.schematic_model import Junction, Pin, Point, RoutingState, Wire
from wirekernel.connectivity import WireEndpointMember
from wirekernel.constraint_solver import (
    ConstraintSolver,
    build_junction_constraints,
    junction_entity,
    wire_point_entities,
)
from wirekernel.errors import KernelError, UnknownEntityError, WireEditError
from wirekernel.geometry import is_orthogonal_polyline
from wirekernel.routing_kernel import (
    FREE,
    IDLE,
    PLACING,
    OrthogonalRoutingKernel,
    grid_snapper,
)


def make_kernel(*wires, pins=(), junctions=()):
    state = RoutingState(
        wires=[Wire(id=wid, points=pts) for wid, pts in wires],
        pins=list(pins),
        junctions=list(junctions),
    )
    return OrthogonalRoutingKernel(state)


# --- placement ---------------------------------------------------------------

def test_placement_commits_corner_after_turn():
    k = make_kernel()
    k.begin_placement((0, 0), "HV")
    assert k.phase == PLACING
    assert k.update_placement((30, 0)) == [Point(0, 0), Point(30, 0)]
    preview = k.update_placement((30, 30))
    assert preview == [Point(0, 0), Point(30, 0), Point(30, 30)]

    wire = k.finish_placement(color="#ff0000")
    assert wire.id == "w1"
    assert wire.color == "#ff0000"
    assert wire.points == [Point(0, 0), Point(30, 0), Point(30, 30)]
    assert k.phase == IDLE
    assert k.state.wires == [wire]


def test_placement_preview_is_always_orthogonal():
    k = make_kernel()
    k.begin_placement((0, 0), "VH")
    for cursor in [(2, 1), (6, 3), (13, 17), (40, 8), (-10, 25)]:
        assert is_orthogonal_polyline(k.update_placement(cursor))


def test_free_mode_allows_diagonal():
    k = make_kernel()
    k.set_line_drawing_mode(FREE)
    k.begin_placement((0, 0))
    assert k.update_placement((10, 7)) == [Point(0, 0), Point(10, 7)]
    wire = k.finish_placement()
    assert wire.points == [Point(0, 0), Point(10, 7)]


def test_bad_line_mode_rejected():
    k = make_kernel()
    with pytest.raises(ValueError):
        k.set_line_drawing_mode("bezier")


def test_finish_with_single_point_keeps_placing():
    k = make_kernel()
    k.begin_placement((5, 5))
    with pytest.raises(WireEditError):
        k.finish_placement()
    assert k.phase == PLACING
    assert k.state.wires == []


def test_cancel_and_update_without_placement():
    k = make_kernel()
    k.begin_placement((0, 0))
    k.cancel_placement()
    assert k.phase == IDLE
    with pytest.raises(WireEditError):
        k.update_placement((10, 0))


def test_placement_uses_snap_delegate():
    k = OrthogonalRoutingKernel(snap=grid_snapper(10))
    k.begin_placement((1, 2))
    k.update_placement((28, 3))
    wire = k.finish_placement()
    assert wire.points == [Point(0, 0), Point(30, 0)]


def test_wire_ids_skip_existing():
    k = make_kernel(("w2", [(100, 100), (110, 100)]))
    k.begin_placement((0, 0))
    k.update_placement((20, 0))
    assert k.finish_placement().id == "w3"


# --- hit testing -------------------------------------------------------------

def test_hit_test_priority_and_distance():
    k = make_kernel(
        ("w1", [(0, 0), (10, 0), (10, 10)]),
        pins=[Pin("p1", (10, 10))],
    )
    assert k.hit_test((10, 10)).kind == "pin"

    corner = k.hit_test((10, 0))
    assert (corner.kind, corner.wire_id, corner.index) == ("corner", "w1", 1)

    seg = k.hit_test((5, 2))
    assert seg.kind == "segment"
    assert seg.index == 0
    assert seg.point == Point(5, 0)
    assert seg.distance == 2

    start = k.hit_test((-0.5, 0))
    assert (start.kind, start.index) == ("endpoint", 0)

    assert k.hit_test((50, 50)).kind == "none"


def test_hit_test_junction_beats_endpoint_at_equal_distance():
    k = make_kernel(
        ("w1", [(0, 0), (10, 0)]),
        junctions=[Junction("j1", (10, 0), manual=True)],
    )
    hit = k.hit_test((10, 1))
    assert hit.kind == "junction"
    assert hit.junction_id == "j1"


# --- direct edits ------------------------------------------------------------

def test_moving_endpoint_onto_other_wire_connects():
    k = make_kernel(
        ("w1", [(0, 0), (10, 0)]),
        ("w2", [(10, 5), (10, 10)]),
    )
    assert not k.connectivity.are_connected(WireEndpointMember("w1", 1), WireEndpointMember("w2", 0))
    k.move_wire_endpoint("w2", 0, (10, 0))
    assert k.connectivity.are_connected(WireEndpointMember("w1", 1), WireEndpointMember("w2", 0))


def test_moving_endpoint_drags_neighbour_along_axis():
    k = make_kernel(("w1", [(0, 0), (10, 0), (10, 10)]))
    pts = k.move_wire_endpoint("w1", 0, (0, 5))
    assert pts == [Point(0, 5), Point(10, 5), Point(10, 10)]
    assert is_orthogonal_polyline(pts)


def test_move_endpoint_bad_index():
    k = make_kernel(("w1", [(0, 0), (10, 0)]))
    with pytest.raises(WireEditError):
        k.move_wire_endpoint("w1", 2, (5, 5))


def test_drag_segment_keeps_polyline_orthogonal():
    k = make_kernel(("w1", [(0, 0), (10, 0), (10, 10)]))
    pts = k.drag_wire_segment("w1", 0, (5, 5))
    assert pts == [Point(0, 5), Point(10, 5), Point(10, 10)]


def test_drag_segment_with_parallel_neighbour_adds_jog():
    k = make_kernel(("w1", [(0, 0), (10, 0), (20, 0)]))
    pts = k.drag_wire_segment("w1", 1, (15, 5))
    assert pts == [Point(0, 0), Point(10, 0), Point(10, 5), Point(20, 5)]
    assert is_orthogonal_polyline(pts)


def test_drag_diagonal_segment_raises_and_leaves_state():
    k = make_kernel(("w1", [(0, 0), (10, 10)]))
    with pytest.raises(WireEditError):
        k.drag_wire_segment("w1", 0, (5, 0))
    assert k.state.get_wire("w1").points == [Point(0, 0), Point(10, 10)]


def test_drag_missing_segment_raises():
    k = make_kernel(("w1", [(0, 0), (10, 0)]))
    with pytest.raises(WireEditError):
        k.drag_wire_segment("w1", 3, (5, 5))


def test_insert_then_remove_corner_restores_wire():
    original = [Point(0, 0), Point(20, 0), Point(20, 10)]
    k = make_kernel(("w1", original))

    ins = k.insert_corner("w1", 0, (7, 3))
    assert ins.inserted
    assert ins.index == 1
    assert ins.points[1] == Point(7, 0)

    rem = k.remove_corner("w1", 1)
    assert rem.removed
    assert rem.points == original


def test_insert_corner_on_vertex_is_noop():
    k = make_kernel(("w1", [(0, 0), (20, 0)]))
    result = k.insert_corner("w1", 0, (-5, 0))
    assert not result.inserted
    assert k.state.get_wire("w1").points == [Point(0, 0), Point(20, 0)]


def test_remove_real_bend_is_refused():
    k = make_kernel(("w1", [(0, 0), (20, 0), (20, 10)]))
    assert not k.remove_corner("w1", 1).removed
    assert not k.remove_corner("w1", 0).removed
    with pytest.raises(WireEditError):
        k.remove_corner("w1", 5)


def test_unknown_ids_raise():
    k = make_kernel(("w1", [(0, 0), (10, 0)]))
    with pytest.raises(UnknownEntityError):
        k.move_wire_endpoint("nope", 0, (1, 1))
    with pytest.raises(KeyError):
        k.remove_wire("nope")
    with pytest.raises(KernelError):
        k.remove_junction("nope")


def test_junction_add_and_remove_changes_connectivity():
    k = make_kernel(
        ("w1", [(0, 0), (20, 0)]),
        ("w2", [(10, -10), (10, 10)]),
    )
    assert k.connectivity.net_of_wire("w1") != k.connectivity.net_of_wire("w2")

    j = k.add_junction((10, 0))
    assert j.id == "j1" and j.manual
    assert k.connectivity.net_of_wire("w1") == k.connectivity.net_of_wire("w2")

    k.remove_junction("j1")
    assert k.connectivity.net_of_wire("w1") != k.connectivity.net_of_wire("w2")


def test_remove_wire():
    k = make_kernel(("w1", [(0, 0), (10, 0)]), ("w2", [(10, 0), (20, 0)]))
    removed = k.remove_wire("w1")
    assert removed.id == "w1"
    assert [w.id for w in k.state.wires] == ["w2"]
    assert k.connectivity.net_of_wire("w1") is None


def test_delete_middle_segment_splits_wire():
    k = make_kernel(
        ("w1", [(0, 0), (10, 0), (10, 10), (20, 10)]),
        ("w2", [(100, 100), (110, 100)]),
    )
    pieces = k.delete_wire_segment("w1", 1)
    assert [w.id for w in pieces] == ["w1", "w3"]
    assert [w.id for w in k.state.wires] == ["w1", "w3", "w2"]
    assert k.state.get_wire("w1").points == [Point(0, 0), Point(10, 0)]
    assert k.state.get_wire("w3").points == [Point(10, 10), Point(20, 10)]
    assert k.connectivity.net_of_wire("w1") != k.connectivity.net_of_wire("w3")


def test_delete_only_segment_removes_wire():
    k = make_kernel(("w1", [(0, 0), (10, 0)]))
    assert k.delete_wire_segment("w1", 0) == []
    assert k.state.wires == []
    with pytest.raises(UnknownEntityError):
        k.delete_wire_segment("w1", 0)


def test_delete_missing_segment_raises():
    k = make_kernel(("w1", [(0, 0), (10, 0)]))
    with pytest.raises(WireEditError):
        k.delete_wire_segment("w1", 1)
    assert k.state.get_wire("w1").points == [Point(0, 0), Point(10, 0)]


def test_solver_blocks_move_off_manual_junction():
    junction = Junction("j1", (10, 0), manual=True)
    k = make_kernel(("w1", [(0, 0), (10, 0)]), junctions=[junction])
    wire = k.state.get_wire("w1")

    solver = ConstraintSolver()
    for entity in wire_point_entities(wire):
        solver.add_entity(entity)
    solver.add_entity(junction_entity(junction))
    solver.add_constraints(build_junction_constraints(junction, [wire]))
    k.attach_solver(solver)

    with pytest.raises(WireEditError, match="fixed position"):
        k.move_wire_endpoint("w1", 1, (10, 10))
    assert wire.points == [Point(0, 0), Point(10, 0)]

    # The free end has no constraints
    assert k.move_wire_endpoint("w1", 0, (-10, 0)) == [Point(-10, 0), Point(10, 0)]
