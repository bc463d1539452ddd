"""
Tests for wire utilities: lookups, inline unification, break/mend at pins
and segment-level cutting.
"""

from wirekernel.schematic_model import Junction, Point, RoutingState, Wire, make_two_pin_component
from wirekernel.connectivity import WireEndpointMember, derive_connectivity
from wirekernel.wire_utils import (
    break_wires_at_pins,
    delete_bridge_between_pins,
    find_nearest_wire,
    find_wire_endpoint_near,
    isolate_wire_segment,
    mend_wires_at_pins,
    normalized_polyline_or_none,
    sequential_ids,
    split_polyline_by_kept_segments,
    split_polyline_by_removed_segments,
    unify_inline_wires,
    wires_ending_at,
)


def test_find_nearest_wire():
    wires = [Wire("w1", [(0, 0), (20, 0)]), Wire("w2", [(0, 10), (20, 10)])]
    wire, index, closest = find_nearest_wire(wires, (5, 3))
    assert wire.id == "w1"
    assert index == 0
    assert closest == Point(5, 0)

    wire, index, closest = find_nearest_wire(wires, (100, 100))
    assert wire is None and index == -1
    assert closest == Point(100, 100)


def test_find_wire_endpoint_near():
    wires = [Wire("w1", [(0, 0), (10, 0)]), Wire("w2", [(10, 0), (20, 0)])]
    wire, end = find_wire_endpoint_near((10.5, 0), wires)
    assert (wire.id, end) == ("w1", 1)
    assert find_wire_endpoint_near((15, 0), wires) is None
    assert [w.id for w in wires_ending_at((10, 0), wires)] == ["w1", "w2"]


def test_normalized_polyline_or_none():
    assert normalized_polyline_or_none([(0, 0), (0, 0)]) is None
    assert normalized_polyline_or_none(None) is None
    assert normalized_polyline_or_none([(0, 0), (5, 0), (10, 0), (10, 5)]) == [
        Point(0, 0), Point(10, 0), Point(10, 5)
    ]


def test_unify_merges_diagonal_run_and_keeps_net():
    wires = [
        Wire("w1", [(0, 0), (10, 10)], net_id="n1"),
        Wire("w2", [(10, 10), (20, 20)], net_id="n1"),
    ]
    result = unify_inline_wires(wires)
    assert len(result) == 1
    merged = result[0]
    assert merged.id == "w1"
    assert merged.points == [Point(0, 0), Point(20, 20)]
    assert merged.net_id == "n1"
    assert len(wires) == 2  # input list untouched


def test_unify_chain_with_reversed_wire():
    wires = [
        Wire("w1", [(0, 0), (10, 0)], color="#aaaaaa"),
        Wire("w2", [(20, 0), (10, 0)]),
        Wire("w3", [(20, 0), (30, 0)]),
    ]
    result = unify_inline_wires(wires, id_factory=sequential_ids("m"))
    assert len(result) == 1
    assert result[0].points in ([Point(0, 0), Point(30, 0)], [Point(30, 0), Point(0, 0)])
    assert result[0].color == "#aaaaaa"
    assert result[0].id.startswith("m")


def test_unify_respects_net_ids():
    wires = [
        Wire("w1", [(0, 0), (10, 0)], net_id="a"),
        Wire("w2", [(10, 0), (20, 0)], net_id="b"),
    ]
    assert len(unify_inline_wires(wires)) == 2

    # no net id on either side counts as the same default net
    same = [Wire("w1", [(0, 0), (10, 0)]), Wire("w2", [(10, 0), (20, 0)], net_id="default")]
    assert len(unify_inline_wires(same)) == 1


def test_unify_never_merges_across_a_pin():
    r1 = make_two_pin_component("R1", "resistor", 30, 0)  # pins at (10,0) and (50,0)
    wires = [Wire("w1", [(0, 0), (10, 0)]), Wire("w2", [(10, 0), (20, 0)])]
    assert len(unify_inline_wires(wires, [r1])) == 2


def test_unify_skips_corners_and_branches():
    corner = [Wire("w1", [(0, 0), (10, 0)]), Wire("w2", [(10, 0), (10, 10)])]
    assert len(unify_inline_wires(corner)) == 2

    branch = [
        Wire("w1", [(0, 0), (10, 0)]),
        Wire("w2", [(10, 0), (20, 0)]),
        Wire("w3", [(10, 0), (10, 10)]),
    ]
    assert len(unify_inline_wires(branch)) == 3


def test_break_wire_at_pin():
    wires = [Wire("w1", [(0, 0), (20, 0)], color="#123456", net_id="n")]
    result, broke = break_wires_at_pins([(10, 0)], wires, sequential_ids("b"))
    assert broke
    assert [w.id for w in result] == ["b1", "b2"]
    assert result[0].points == [Point(0, 0), Point(10, 0)]
    assert result[1].points == [Point(10, 0), Point(20, 0)]
    assert all(w.color == "#123456" and w.net_id == "n" for w in result)


def test_break_ignores_pin_on_endpoint_and_far_pins():
    wires = [Wire("w1", [(0, 0), (20, 0)])]
    result, broke = break_wires_at_pins([(20, 0), (10, 5)], wires, sequential_ids("b"))
    assert not broke
    assert result == wires


def test_mend_joins_wires_across_removed_component():
    wires = [
        Wire("w1", [(0, 0), (30, 0)], color="#00ff00"),
        Wire("w2", [(70, 0), (100, 0)]),
        Wire("w3", [(0, 50), (10, 50)]),
    ]
    result = mend_wires_at_pins((30, 0), (70, 0), wires, sequential_ids("j"))
    assert [w.id for w in result] == ["w3", "j1"]
    assert result[1].points == [Point(0, 0), Point(100, 0)]
    assert result[1].color == "#00ff00"


def test_mend_without_wire_on_both_pins_is_noop():
    wires = [Wire("w1", [(0, 0), (30, 0)])]
    assert mend_wires_at_pins((30, 0), (70, 0), wires, sequential_ids("j")) == wires


def test_unify_keeps_join_that_another_wire_taps():
    wires = [
        Wire("w1", [(0, 0), (10, 0)]),
        Wire("w2", [(10, 0), (20, 0)]),
        Wire("w3", [(10, -10), (10, 10)]),  # runs straight through the join
    ]
    tap = (WireEndpointMember("w1", 0), WireEndpointMember("w3", 0))
    assert derive_connectivity(RoutingState(wires=wires)).are_connected(*tap)

    result = unify_inline_wires(wires)
    assert [w.id for w in result] == ["w1", "w2", "w3"]
    assert derive_connectivity(RoutingState(wires=result)).are_connected(*tap)


def test_unify_keeps_join_under_a_junction():
    wires = [Wire("w1", [(0, 0), (10, 0)]), Wire("w2", [(10, 0), (20, 0)])]
    junctions = [Junction("j1", (10, 0), manual=True)]
    assert len(unify_inline_wires(wires, junctions=junctions)) == 2
    assert len(unify_inline_wires(wires)) == 1


def test_delete_bridge_between_pins():
    wires = [
        Wire("bridge", [(70, 0), (30, 0)]),
        Wire("w1", [(0, 0), (30, 0)]),
        Wire("bent", [(30, 0), (50, 0), (70, 0)]),
    ]
    result = delete_bridge_between_pins([(30, 0), (70, 0)], wires)
    assert [w.id for w in result] == ["w1", "bent"]
    assert delete_bridge_between_pins([(30, 0)], wires) == wires


STAIR = [(0, 0), (5, 0), (10, 0), (10, 10), (20, 10)]


def test_split_by_removed_segments():
    assert split_polyline_by_removed_segments(STAIR, {2}) == [
        [Point(0, 0), Point(10, 0)],
        [Point(10, 10), Point(20, 10)],
    ]
    assert split_polyline_by_removed_segments(STAIR, {0}) == [
        [Point(5, 0), Point(10, 0), Point(10, 10), Point(20, 10)],
    ]
    assert split_polyline_by_removed_segments(STAIR, range(4)) == []


def test_split_by_kept_segments():
    assert split_polyline_by_kept_segments(STAIR, {2, 3}) == [
        [Point(10, 0), Point(10, 10), Point(20, 10)],
    ]
    assert split_polyline_by_kept_segments(STAIR, {0, 1, 3}) == [
        [Point(0, 0), Point(10, 0)],
        [Point(10, 10), Point(20, 10)],
    ]
    assert split_polyline_by_kept_segments(STAIR, set()) == []


def test_isolate_wire_segment():
    target = Wire("w1", [(0, 0), (10, 0), (10, 10), (20, 10)], color="#abcdef", net_id="n")
    wires = [Wire("w0", [(0, 50), (10, 50)]), target, Wire("w2", [(0, 90), (10, 90)])]

    result, isolated = isolate_wire_segment(target, 1, wires, sequential_ids("s"))
    assert [w.id for w in result] == ["w0", "s1", "s2", "s3", "w2"]
    assert isolated.id == "s2"
    assert isolated.points == [Point(10, 0), Point(10, 10)]
    assert all(w.color == "#abcdef" and w.net_id == "n" for w in result[1:4])
    assert [w.id for w in wires] == ["w0", "w1", "w2"]  # input list untouched


def test_isolate_first_segment_and_degenerate_cases():
    target = Wire("w1", [(0, 0), (10, 0), (10, 10)])
    result, isolated = isolate_wire_segment(target, 0, [target], sequential_ids("s"))
    assert [w.points for w in result] == [
        [Point(0, 0), Point(10, 0)],
        [Point(10, 0), Point(10, 10)],
    ]
    assert isolated is result[0]

    assert isolate_wire_segment(target, 2, [target], sequential_ids("s")) == ([target], None)

    single = Wire("w2", [(0, 0), (10, 0)])
    assert isolate_wire_segment(single, 0, [single], sequential_ids("s")) == ([single], single)
