"""
Electrical connectivity from a flat wire/pin/junction snapshot.

Connection rules:
- A wire is one conductor: its two endpoints are always connected.
- Wire endpoints within tolerance of each other connect.
- A wire endpoint within tolerance of a pin connects.
- A wire endpoint landing on another wire's run (segment interior or an
  interior corner) connects to that wire. The point is reported as an
  implicit junction but never stored as a Junction.
- Wires whose interiors merely cross do NOT connect. They connect only
  through an explicit Junction lying on both of them.

Nets are the connected components of a union-find over tagged members.
Nothing is cached: call `derive_connectivity` again after every edit.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union
import logging

from .schematic_model import Point, RoutingState, Wire
from .geometry import distance_squared, point_key, point_to_segment_distance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WireEndpointMember:
    wire_id: str
    endpoint_index: int  # 0 = start, 1 = end
    kind: str = field(default="wire-endpoint", init=False)


@dataclass(frozen=True)
class PinMember:
    pin_id: str
    kind: str = field(default="pin", init=False)


@dataclass(frozen=True)
class JunctionMember:
    junction_id: str
    kind: str = field(default="junction", init=False)


NetMember = Union[WireEndpointMember, PinMember, JunctionMember]


@dataclass
class DerivedNet:
    """A maximal set of members judged electrically connected."""
    id: str
    members: List[NetMember] = field(default_factory=list)

    def wire_ids(self) -> List[str]:
        seen: List[str] = []
        for m in self.members:
            if isinstance(m, WireEndpointMember) and m.wire_id not in seen:
                seen.append(m.wire_id)
        return seen

    def pin_ids(self) -> List[str]:
        return [m.pin_id for m in self.members if isinstance(m, PinMember)]

    def junction_ids(self) -> List[str]:
        return [m.junction_id for m in self.members if isinstance(m, JunctionMember)]


@dataclass
class Connectivity:
    """Output of `derive_connectivity`."""
    nets: List[DerivedNet] = field(default_factory=list)
    implicit_junctions: List[Point] = field(default_factory=list)
    _index: Dict[NetMember, str] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        if not self._index:
            for net in self.nets:
                for member in net.members:
                    self._index[member] = net.id

    def net_of(self, member: NetMember) -> Optional[str]:
        return self._index.get(member)

    def net_of_pin(self, pin_id: str) -> Optional[str]:
        return self._index.get(PinMember(pin_id))

    def net_of_wire_endpoint(self, wire_id: str, endpoint_index: int = 0) -> Optional[str]:
        return self._index.get(WireEndpointMember(wire_id, endpoint_index))

    def net_of_wire(self, wire_id: str) -> Optional[str]:
        return self.net_of_wire_endpoint(wire_id, 0)

    def net_of_junction(self, junction_id: str) -> Optional[str]:
        return self._index.get(JunctionMember(junction_id))

    def get_net(self, net_id: str) -> Optional[DerivedNet]:
        for net in self.nets:
            if net.id == net_id:
                return net
        return None

    def are_connected(self, a: NetMember, b: NetMember) -> bool:
        """True iff both members exist and share a net."""
        na = self._index.get(a)
        return na is not None and na == self._index.get(b)


class DisjointSet:
    """Union-find over a flat index space, with path compression and union by rank."""

    def __init__(self, n: int):
        self.parent = list(range(n))
        self.rank = [0] * n

    def find(self, a: int) -> int:
        root = a
        while self.parent[root] != root:
            root = self.parent[root]
        # Path compression
        while self.parent[a] != root:
            self.parent[a], a = root, self.parent[a]
        return root

    def union(self, a: int, b: int) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return
        if self.rank[ra] < self.rank[rb]:
            self.parent[ra] = rb
        elif self.rank[ra] > self.rank[rb]:
            self.parent[rb] = ra
        else:
            self.parent[rb] = ra
            self.rank[ra] += 1


def touches_conductor(p: Point, wire: Wire, tolerance: float) -> bool:
    """
    True iff p lies on the wire's run within tolerance: on a segment
    interior or at an interior corner. The wire's own endpoints are not
    checked here.
    """
    tol2 = tolerance * tolerance
    pts = wire.points
    for corner in pts[1:-1]:
        if distance_squared(p, corner) <= tol2:
            return True
    for a, b in zip(pts[:-1], pts[1:]):
        proj = point_to_segment_distance(p, a, b)
        if proj.on_segment and proj.distance <= tolerance:
            return True
    return False


def derive_connectivity(state: RoutingState) -> Connectivity:
    """
    Compute electrical nets for a routing snapshot.

    Args:
        state: wires, pins, junctions and the connection tolerance

    Returns:
        Connectivity with one DerivedNet per connected component, numbered
        "net:1", "net:2", ... in order of first member (wire endpoints,
        then pins, then junctions).
    """
    tol = state.tolerance
    tol2 = tol * tol

    members: List[NetMember] = []
    positions: List[Point] = []
    endpoint_idx: Dict[Tuple[str, int], int] = {}
    pin_idx: Dict[str, int] = {}
    junction_idx: Dict[str, int] = {}

    def add_node(member: NetMember, pos: Point) -> int:
        members.append(member)
        positions.append(pos)
        return len(members) - 1

    wires = [w for w in state.wires if len(w.points) >= 2]
    for w in wires:
        endpoint_idx[(w.id, 0)] = add_node(WireEndpointMember(w.id, 0), w.points[0])
        endpoint_idx[(w.id, 1)] = add_node(WireEndpointMember(w.id, 1), w.points[-1])
    for p in state.pins:
        pin_idx[p.id] = add_node(PinMember(p.id), p.at)
    for j in state.junctions:
        junction_idx[j.id] = add_node(JunctionMember(j.id), j.at)

    dsu = DisjointSet(len(members))
    endpoints = list(endpoint_idx.items())

    # A wire is one conductor
    for w in wires:
        dsu.union(endpoint_idx[(w.id, 0)], endpoint_idx[(w.id, 1)])

    # Endpoint to endpoint
    for i in range(len(endpoints)):
        ni = endpoints[i][1]
        for j in range(i + 1, len(endpoints)):
            nj = endpoints[j][1]
            if distance_squared(positions[ni], positions[nj]) <= tol2:
                dsu.union(ni, nj)

    # Endpoint to pin
    for pid, pi in pin_idx.items():
        for _, ei in endpoints:
            if distance_squared(positions[pi], positions[ei]) <= tol2:
                dsu.union(pi, ei)

    # Endpoint on another wire's run. Targets near that wire's own endpoints
    # were already handled above.
    implicit: Dict[Tuple[int, int], Point] = {}
    for (wid, end_i), ei in endpoints:
        pos = positions[ei]
        for target in wires:
            if target.id == wid:
                continue
            if (distance_squared(pos, target.points[0]) <= tol2
                    or distance_squared(pos, target.points[-1]) <= tol2):
                continue
            if touches_conductor(pos, target, tol):
                dsu.union(ei, endpoint_idx[(target.id, 0)])
                implicit.setdefault(point_key(pos), Point(pos.x, pos.y))

    # Explicit junctions: the only way interior crossings connect
    for j in state.junctions:
        ji = junction_idx[j.id]
        for _, ei in endpoints:
            if distance_squared(positions[ei], j.at) <= tol2:
                dsu.union(ji, ei)
        for pi in pin_idx.values():
            if distance_squared(positions[pi], j.at) <= tol2:
                dsu.union(ji, pi)
        for w in wires:
            if touches_conductor(j.at, w, tol):
                dsu.union(ji, endpoint_idx[(w.id, 0)])

    groups: Dict[int, DerivedNet] = {}
    for i, member in enumerate(members):
        root = dsu.find(i)
        net = groups.get(root)
        if net is None:
            net = DerivedNet(id=f"net:{len(groups) + 1}")
            groups[root] = net
        net.members.append(member)

    result = Connectivity(nets=list(groups.values()), implicit_junctions=list(implicit.values()))
    logger.debug(
        "Derived %d nets from %d wires, %d pins, %d junctions (%d implicit junctions)",
        len(result.nets), len(wires), len(state.pins), len(state.junctions),
        len(result.implicit_junctions),
    )
    return result
