"""
Topology and straight-wire-path (SWP) builder.

A rebuild works on the live wire/component/junction collections:

1. collect integer-rounded segments of every wire
2. find T points: a segment endpoint strictly inside another wire's
   axis-aligned segment
3. split wire polylines at those points (wires are mutated in place)
4. build the node/edge graph with per-axis node degrees
5. add bridge edges for two-pin components embedded in a wire run
6. merge maximal same-axis runs through degree-2 nodes into SWPs
7. map two-pin components onto the SWP they lie on
8. regenerate automatic junctions, keeping manual ones

Everything produced here is derived data and is recomputed from scratch
on every rebuild.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple
import logging

from .schematic_model import (
    Component,
    Junction,
    Pin,
    Point,
    SchematicModel,
    Wire,
    resolve_component_pins,
)
from .geometry import axis_of, point_key, point_strictly_inside_axis_segment, round_point
from .settings import KernelSettings, DEFAULT_SETTINGS
from .wire_utils import find_wire_endpoint_near

logger = logging.getLogger(__name__)

NodeKey = Tuple[int, int]
PinResolver = Callable[[Component], List[Pin]]
EndpointFinder = Callable[[Point, Sequence[Wire], float], Optional[Tuple[Wire, int]]]


@dataclass
class TopoNode:
    """A distinct integer coordinate in the wire graph."""
    x: int
    y: int
    edges: List[str] = field(default_factory=list)  # insertion ordered, no duplicates
    axis_degree: Dict[str, int] = field(default_factory=lambda: {"x": 0, "y": 0})

    @property
    def key(self) -> NodeKey:
        return (self.x, self.y)


@dataclass
class TopoEdge:
    """
    One sub-segment of a (split) wire, or a synthetic bridge across an
    embedded two-pin component (wire_id None, index -1).

    Ids are `wire:<wire id>:<index>` for wire segments and
    `comp:<component id>` for bridges.
    """
    id: str
    wire_id: Optional[str]
    index: int
    a: Point
    b: Point
    axis: Optional[str]
    akey: NodeKey
    bkey: NodeKey


@dataclass
class StraightWirePath:
    """
    A maximal straight run of edges, possibly spanning several wires.

    `start` and `end` are the extremes along `axis` (start has the smaller
    coordinate). `edge_indices_by_wire` lists, per wire, the sorted segment
    indices absorbed into this path.
    """
    id: str
    axis: str
    start: Point
    end: Point
    color: str
    edge_wire_ids: List[str] = field(default_factory=list)
    edge_indices_by_wire: Dict[str, List[int]] = field(default_factory=dict)

    def length(self) -> float:
        return abs(self.end.x - self.start.x) + abs(self.end.y - self.start.y)


@dataclass
class Topology:
    nodes: Dict[NodeKey, TopoNode] = field(default_factory=dict)
    edges: List[TopoEdge] = field(default_factory=list)
    swps: List[StraightWirePath] = field(default_factory=list)
    comp_to_swp: Dict[str, str] = field(default_factory=dict)

    def find_swp(self, swp_id: str) -> Optional[StraightWirePath]:
        for swp in self.swps:
            if swp.id == swp_id:
                return swp
        return None

    def swp_id_for_component(self, component_id: str) -> Optional[str]:
        return self.comp_to_swp.get(component_id)

    def swp_for_wire(self, wire_id: str, segment_index: Optional[int] = None) -> Optional[StraightWirePath]:
        """
        First SWP containing `wire_id`. With `segment_index`, only an SWP
        that absorbed that particular segment matches.
        """
        for swp in self.swps:
            if wire_id not in swp.edge_wire_ids:
                continue
            if segment_index is None or segment_index in swp.edge_indices_by_wire.get(wire_id, []):
                return swp
        return None

    def get_edge(self, edge_id: str) -> Optional[TopoEdge]:
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None


@dataclass
class TopologyResult:
    topology: Topology
    wires: List[Wire]
    junctions: List[Junction]
    split_points: List[Point] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Steps 1-3: T points and wire splitting
# ---------------------------------------------------------------------------

def _rounded_segments(wires: Sequence[Wire]) -> List[Tuple[Wire, Point, Point]]:
    segments = []
    for wire in wires:
        pts = wire.points
        for i in range(len(pts) - 1):
            segments.append((wire, round_point(pts[i]), round_point(pts[i + 1])))
    return segments


def find_t_points(wires: Sequence[Wire]) -> List[Point]:
    """
    Segment endpoints lying strictly inside an axis-aligned segment of a
    different wire. Bare interior crossings are not reported.
    """
    segments = _rounded_segments(wires)
    found: Dict[NodeKey, Point] = {}
    for w1, a1, b1 in segments:
        for w2, a2, b2 in segments:
            if w1.id == w2.id:
                continue
            for p in (a1, b1):
                if p == a2 or p == b2:
                    continue
                if point_strictly_inside_axis_segment(p, a2, b2):
                    found.setdefault(point_key(p), p)
    return list(found.values())


def split_wires_at(wires: Sequence[Wire], points: Sequence[Point]) -> int:
    """
    Insert every point into the polyline of each wire segment it lies
    strictly inside, sorted along the segment. Mutates `wire.points`.

    A wire that gets split is rewritten on rounded coordinates, so its
    original vertices and the inserted points stay on the same grid.

    Returns:
        Number of vertices inserted.
    """
    if not points:
        return 0
    inserted = 0
    for wire in wires:
        rounded = [round_point(p) for p in wire.points]
        new_pts = [rounded[0]]
        split = False
        for ra, rb in zip(rounded[:-1], rounded[1:]):
            on_seg = [p for p in points if point_strictly_inside_axis_segment(p, ra, rb)]
            if on_seg:
                vertical = ra.x == rb.x
                on_seg.sort(key=lambda p: p.y if vertical else p.x)
                if (rb.y if vertical else rb.x) < (ra.y if vertical else ra.x):
                    on_seg.reverse()
                new_pts.extend(on_seg)
                inserted += len(on_seg)
                split = True
            new_pts.append(rb)
        if split:
            deduped = [new_pts[0]]
            for p in new_pts[1:]:
                if p != deduped[-1]:
                    deduped.append(p)
            wire.points = deduped
    return inserted


# ---------------------------------------------------------------------------
# Steps 4-5: graph construction
# ---------------------------------------------------------------------------

class _GraphBuilder:
    def __init__(self):
        self.nodes: Dict[NodeKey, TopoNode] = {}
        self.edges: List[TopoEdge] = []

    def add_node(self, p: Point) -> NodeKey:
        key = point_key(p)
        if key not in self.nodes:
            self.nodes[key] = TopoNode(x=key[0], y=key[1])
        return key

    def add_edge(self, edge_id: str, wire_id: Optional[str], index: int, a: Point, b: Point) -> TopoEdge:
        axis = axis_of(a, b)
        akey, bkey = self.add_node(a), self.add_node(b)
        edge = TopoEdge(edge_id, wire_id, index, a, b, axis, akey, bkey)
        self.edges.append(edge)
        for key in (akey, bkey):
            node = self.nodes[key]
            if edge_id not in node.edges:
                node.edges.append(edge_id)
            if axis:
                node.axis_degree[axis] += 1
        return edge


def _build_graph(
    wires: Sequence[Wire],
    components: Sequence[Component],
    pin_resolver: PinResolver,
    endpoint_finder: EndpointFinder,
    settings: KernelSettings,
) -> _GraphBuilder:
    graph = _GraphBuilder()

    for wire in wires:
        pts = [round_point(p) for p in wire.points]
        for i in range(len(pts) - 1):
            a, b = pts[i], pts[i + 1]
            if a == b:
                continue  # collapsed by rounding
            graph.add_edge(f"wire:{wire.id}:{i}", wire.id, i, a, b)

    for comp in components:
        if comp.ctype not in settings.two_pin_types:
            continue
        pins = [round_point(p.at) for p in pin_resolver(comp)]
        if len(pins) != 2 or axis_of(pins[0], pins[1]) is None:
            continue
        # Only bridge a component that is actually embedded in a wire run
        hit_a = endpoint_finder(pins[0], wires, settings.endpoint_match_tolerance)
        hit_b = endpoint_finder(pins[1], wires, settings.endpoint_match_tolerance)
        if hit_a is None or hit_b is None:
            continue
        graph.add_edge(f"comp:{comp.id}", None, -1, pins[0], pins[1])

    return graph


# ---------------------------------------------------------------------------
# Step 6: SWP extraction
# ---------------------------------------------------------------------------

def build_swps(
    edges: Sequence[TopoEdge],
    nodes: Dict[NodeKey, TopoNode],
    wires: Sequence[Wire],
    settings: KernelSettings = DEFAULT_SETTINGS,
) -> List[StraightWirePath]:
    """
    Group edges into maximal straight runs. A run continues through a node
    only when that node has exactly two edges on the run's axis.
    """
    edge_by_id = {e.id: e for e in edges}
    wire_by_id = {w.id: w for w in wires}
    visited: Set[str] = set()
    swps: List[StraightWirePath] = []

    def next_on_axis(node_key: NodeKey, from_edge: TopoEdge) -> Optional[TopoEdge]:
        node = nodes.get(node_key)
        if node is None or node.axis_degree[from_edge.axis] != 2:
            return None  # branch or dead end
        for eid in node.edges:
            if eid == from_edge.id:
                continue
            e = edge_by_id[eid]
            if e.axis == from_edge.axis and node_key in (e.akey, e.bkey):
                return e
        return None

    for e0 in edges:
        if e0.axis is None or e0.id in visited:
            continue

        chain: Dict[str, TopoEdge] = {}
        for enter_key in (e0.akey, e0.bkey):
            cur = e0
            while True:
                chain[cur.id] = cur
                exit_key = cur.bkey if cur.akey == enter_key else cur.akey
                nxt = next_on_axis(exit_key, cur)
                if nxt is None or nxt.id in chain:
                    break
                enter_key = exit_key
                cur = nxt
        visited.update(chain)

        axis = e0.axis
        keys = {k for e in chain.values() for k in (e.akey, e.bkey)}
        ordered = sorted(keys, key=lambda k: k[0] if axis == "x" else k[1])
        start = Point(float(ordered[0][0]), float(ordered[0][1]))
        end = Point(float(ordered[-1][0]), float(ordered[-1][1]))

        wire_ids: List[str] = []
        indices: Dict[str, List[int]] = {}
        for e in chain.values():
            if e.wire_id is None:
                continue
            if e.wire_id not in wire_ids:
                wire_ids.append(e.wire_id)
            indices.setdefault(e.wire_id, []).append(e.index)
        indices = {wid: sorted(set(idx)) for wid, idx in indices.items()}

        colors = {
            (wire_by_id[wid].color if wid in wire_by_id else None) or settings.default_wire_color
            for wid in wire_ids
        }
        color = colors.pop() if len(colors) == 1 else settings.no_common_color

        swps.append(StraightWirePath(
            id=f"swp{len(swps) + 1}",
            axis=axis,
            start=start,
            end=end,
            color=color,
            edge_wire_ids=wire_ids,
            edge_indices_by_wire=indices,
        ))
    return swps


# ---------------------------------------------------------------------------
# Step 7: component -> SWP mapping
# ---------------------------------------------------------------------------

def map_components_to_swps(
    components: Sequence[Component],
    pin_resolver: PinResolver,
    swps: Sequence[StraightWirePath],
    settings: KernelSettings = DEFAULT_SETTINGS,
) -> Dict[str, str]:
    """First SWP whose axis line carries both pins, within its span, wins."""
    eps = settings.axis_match_eps
    slack = settings.swp_span_slack
    comp_to_swp: Dict[str, str] = {}
    for comp in components:
        if comp.ctype not in settings.two_pin_types:
            continue
        pins = [round_point(p.at) for p in pin_resolver(comp)]
        if len(pins) != 2:
            continue
        for swp in swps:
            fixed, run = (1, 0) if swp.axis == "x" else (0, 1)
            line = swp.start[fixed]
            lo = min(swp.start[run], swp.end[run]) - slack
            hi = max(swp.start[run], swp.end[run]) + slack
            if (abs(pins[0][fixed] - line) <= eps and abs(pins[1][fixed] - line) <= eps
                    and min(pins[0][run], pins[1][run]) >= lo
                    and max(pins[0][run], pins[1][run]) <= hi):
                comp_to_swp[comp.id] = swp.id
                break
    return comp_to_swp


# ---------------------------------------------------------------------------
# Step 8: junction detection
# ---------------------------------------------------------------------------

def detect_junctions(
    nodes: Dict[NodeKey, TopoNode],
    edges: Sequence[TopoEdge],
    wires: Sequence[Wire],
    components: Sequence[Component],
    pin_resolver: PinResolver,
    existing: Sequence[Junction],
    settings: KernelSettings = DEFAULT_SETTINGS,
) -> List[Junction]:
    """
    Keep manual junctions verbatim and regenerate automatic ones.

    An automatic junction is created at a node where at least two distinct
    wires meet and either one of them passes through (the node is not its
    endpoint) or the node is a component pin. A suppressed manual junction
    at the node blocks it, and a manual junction already there is not
    duplicated.
    """
    manual = [j for j in existing if j.manual]
    result = list(manual)

    edge_by_id = {e.id: e for e in edges}
    wire_by_id = {w.id: w for w in wires}
    pin_keys = {point_key(p.at) for c in components for p in pin_resolver(c)}
    manual_keys = {point_key(j.at) for j in manual if not j.suppressed}
    eps = settings.suppression_eps

    for key, node in nodes.items():
        wire_ids: List[str] = []
        mid_segment = False
        for eid in node.edges:
            edge = edge_by_id.get(eid)
            if edge is None or edge.wire_id is None:
                continue
            if edge.wire_id not in wire_ids:
                wire_ids.append(edge.wire_id)
            wire = wire_by_id.get(edge.wire_id)
            if wire is not None and key not in (point_key(wire.points[0]), point_key(wire.points[-1])):
                mid_segment = True

        if len(wire_ids) < 2 or not (mid_segment or key in pin_keys):
            continue
        if any(j.suppressed and abs(j.at.x - node.x) < eps and abs(j.at.y - node.y) < eps for j in manual):
            continue
        if key in manual_keys:
            continue

        net_id = "default"
        for wid in wire_ids:
            wire = wire_by_id.get(wid)
            if wire is not None and wire.net_id:
                net_id = wire.net_id
                break
        style = settings.net_class_for(net_id).junction
        result.append(Junction(
            id=f"jn:{node.x}:{node.y}",
            at=Point(float(node.x), float(node.y)),
            manual=False,
            net_id=net_id,
            size=style.size,
            color=style.color,
        ))
    return result


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def rebuild_topology(
    wires: List[Wire],
    components: Sequence[Component],
    junctions: Sequence[Junction],
    pin_resolver: PinResolver = resolve_component_pins,
    endpoint_finder: EndpointFinder = find_wire_endpoint_near,
    settings: KernelSettings = DEFAULT_SETTINGS,
) -> TopologyResult:
    """
    Rebuild nodes, edges, SWPs, component mapping and junctions.

    Args:
        wires: live wires; split at T points in place
        components: components (pins resolved through pin_resolver)
        junctions: current junctions; only manual ones are carried over
        pin_resolver: absolute, rotation-applied pins of a component
        endpoint_finder: (point, wires, tol) -> (wire, end_index) or None
        settings: tolerances, two-pin types and net classes

    Returns:
        TopologyResult with the topology, the (same) wire list and the new
        junction list.
    """
    t_points = find_t_points(wires)
    inserted = split_wires_at(wires, t_points)

    graph = _build_graph(wires, components, pin_resolver, endpoint_finder, settings)
    swps = build_swps(graph.edges, graph.nodes, wires, settings)
    comp_to_swp = map_components_to_swps(components, pin_resolver, swps, settings)
    new_junctions = detect_junctions(
        graph.nodes, graph.edges, wires, components, pin_resolver, junctions, settings
    )

    topology = Topology(nodes=graph.nodes, edges=graph.edges, swps=swps, comp_to_swp=comp_to_swp)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Topology rebuilt: %d nodes, %d edges, %d SWPs, %d junctions (%d split points, %d inserted)",
            len(graph.nodes), len(graph.edges), len(swps), len(new_junctions),
            len(t_points), inserted,
        )
    return TopologyResult(topology=topology, wires=wires, junctions=new_junctions, split_points=t_points)


def rebuild_model_topology(model: SchematicModel, settings: KernelSettings = DEFAULT_SETTINGS) -> Topology:
    """
    Rebuild a document's derived state: splits `model.wires` in place,
    replaces `model.junctions` and returns the topology.
    """
    result = rebuild_topology(model.wires, model.components, model.junctions, settings=settings)
    model.junctions = result.junctions
    return result.topology
