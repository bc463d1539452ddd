"""
Tests for the connectivity deriver: endpoint, pin, T and junction rules.
"""

import pytest

from wirekernel.schematic_model import Junction, Pin, Point, RoutingState, Wire
from wirekernel.connectivity import (
    DisjointSet,
    JunctionMember,
    PinMember,
    WireEndpointMember,
    derive_connectivity,
)


def make_state(wires, pins=(), junctions=(), tolerance=0.5):
    return RoutingState(
        wires=[Wire(id=wid, points=pts) for wid, pts in wires],
        pins=[Pin(id=pid, at=at) for pid, at in pins],
        junctions=[Junction(id=jid, at=at, manual=True) for jid, at in junctions],
        tolerance=tolerance,
    )


def test_disjoint_set_unions():
    ds = DisjointSet(5)
    ds.union(0, 1)
    ds.union(3, 4)
    ds.union(1, 4)
    assert ds.find(0) == ds.find(3)
    assert ds.find(2) != ds.find(0)


def test_wire_is_one_conductor():
    conn = derive_connectivity(make_state([("w1", [(0, 0), (10, 0), (10, 10)])]))
    assert conn.net_of_wire_endpoint("w1", 0) == conn.net_of_wire_endpoint("w1", 1)
    assert len(conn.nets) == 1


def test_shared_endpoint_connects():
    conn = derive_connectivity(make_state([
        ("w1", [(0, 0), (10, 0)]),
        ("w2", [(10, 0), (20, 0)]),
    ]))
    assert conn.net_of_wire_endpoint("w1", 1) == conn.net_of_wire_endpoint("w2", 0)


def test_endpoint_to_pin_connects():
    conn = derive_connectivity(make_state(
        [("w1", [(0, 0), (10, 0)])],
        pins=[("p1", (10, 0))],
    ))
    assert conn.are_connected(WireEndpointMember("w1", 1), PinMember("p1"))


def test_crossing_without_junction_does_not_connect():
    conn = derive_connectivity(make_state([
        ("w1", [(0, 0), (20, 0)]),
        ("w2", [(10, -10), (10, 10)]),
    ]))
    assert conn.net_of_wire("w1") != conn.net_of_wire("w2")
    assert conn.implicit_junctions == []


def test_crossing_with_junction_connects():
    conn = derive_connectivity(make_state(
        [("w1", [(0, 0), (20, 0)]), ("w2", [(10, -10), (10, 10)])],
        junctions=[("j1", (10, 0))],
    ))
    assert conn.net_of_wire("w1") == conn.net_of_wire("w2")
    assert conn.net_of_junction("j1") == conn.net_of_wire("w1")


def test_t_junction_connects_without_explicit_junction():
    conn = derive_connectivity(make_state([
        ("wa", [(0, 0), (20, 0)]),
        ("wb", [(10, 0), (10, -10)]),
    ]))
    assert conn.net_of_wire("wa") == conn.net_of_wire("wb")
    assert conn.implicit_junctions == [Point(10, 0)]


def test_endpoint_on_interior_corner_connects():
    # wb ends exactly on wa's bend; no gap between the endpoint and T rules
    conn = derive_connectivity(make_state([
        ("wa", [(0, 0), (10, 0), (10, 10)]),
        ("wb", [(10, 0), (20, 0)]),
    ]))
    assert conn.net_of_wire("wa") == conn.net_of_wire("wb")


def test_endpoint_near_other_wire_end_is_plain_endpoint_rule():
    conn = derive_connectivity(make_state([
        ("w1", [(0, 0), (10, 0)]),
        ("w2", [(10.3, 0), (20, 0)]),
    ]))
    assert conn.net_of_wire("w1") == conn.net_of_wire("w2")
    assert conn.implicit_junctions == []


@pytest.mark.parametrize("gap, connected", [
    (0.5, True),    # exactly at tolerance
    (0.51, False),  # just past tolerance
])
def test_tolerance_boundary_endpoint_to_endpoint(gap, connected):
    conn = derive_connectivity(make_state([
        ("w1", [(0, 0), (10, 0)]),
        ("w2", [(10 + gap, 0), (20, 0)]),
    ]))
    assert (conn.net_of_wire("w1") == conn.net_of_wire("w2")) is connected


@pytest.mark.parametrize("offset, connected", [
    (0.5, True),
    (0.6, False),
])
def test_tolerance_boundary_endpoint_on_segment(offset, connected):
    conn = derive_connectivity(make_state([
        ("wa", [(0, 0), (20, 0)]),
        ("wb", [(10, offset), (10, 10)]),
    ]))
    assert (conn.net_of_wire("wa") == conn.net_of_wire("wb")) is connected


def test_junction_joins_pin():
    conn = derive_connectivity(make_state(
        [("w1", [(0, 0), (20, 0)])],
        pins=[("p1", (5, 0))],
        junctions=[("j1", (5, 0))],
    ))
    assert conn.are_connected(PinMember("p1"), WireEndpointMember("w1", 0))


def test_pin_on_wire_interior_needs_junction():
    conn = derive_connectivity(make_state(
        [("w1", [(0, 0), (20, 0)])],
        pins=[("p1", (5, 0))],
    ))
    assert not conn.are_connected(PinMember("p1"), WireEndpointMember("w1", 0))


def test_net_members_and_numbering():
    conn = derive_connectivity(make_state(
        [("w1", [(0, 0), (10, 0)]), ("w2", [(50, 0), (60, 0)])],
        pins=[("p1", (0, 0))],
        junctions=[("j1", (100, 100))],
    ))
    assert [n.id for n in conn.nets] == ["net:1", "net:2", "net:3"]
    first = conn.nets[0]
    assert first.wire_ids() == ["w1"]
    assert first.pin_ids() == ["p1"]
    assert conn.nets[2].junction_ids() == ["j1"]
    assert conn.net_of(JunctionMember("j1")) == "net:3"
