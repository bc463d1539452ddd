from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union
import math

from .settings import KernelSettings, DEFAULT_SETTINGS


class Point(NamedTuple):
    """2D coordinate. Editor coordinates are grid-snapped but may be real-valued."""
    x: float
    y: float


PointLike = Union[Point, Tuple[float, float], Sequence[float]]


def as_point(p: PointLike) -> Point:
    """Coerce a tuple/sequence or Point into a Point."""
    if isinstance(p, Point):
        return p
    return Point(float(p[0]), float(p[1]))


@dataclass
class Wire:
    """
    Wire represented as a polyline (list of points).

    Consecutive points define segments. The polyline is a single continuous
    conductor regardless of its shape.
    """
    id: str
    points: List[Point]  # polyline points, length >= 2
    color: Optional[str] = None
    net_id: Optional[str] = None

    def __post_init__(self):
        """Validate and clean up points."""
        if not isinstance(self.points, (list, tuple)) or len(self.points) < 2:
            raise ValueError(f"Wire {self.id} must have at least 2 points, got {self.points}")

        # De-duplicate consecutive identical points
        pts = [as_point(p) for p in self.points]
        deduplicated = [pts[0]]
        for pt in pts[1:]:
            if pt != deduplicated[-1]:
                deduplicated.append(pt)
        self.points = deduplicated

        if len(self.points) < 2:
            raise ValueError(f"Wire {self.id} must have at least 2 distinct points")

    @property
    def start(self) -> Point:
        return self.points[0]

    @property
    def end(self) -> Point:
        return self.points[-1]

    def endpoint(self, endpoint_index: int) -> Point:
        """Return the start (0) or end (1) point."""
        return self.points[0] if endpoint_index == 0 else self.points[-1]

    def segments(self) -> List[Tuple[Point, Point]]:
        """Consecutive point pairs."""
        return list(zip(self.points[:-1], self.points[1:]))


@dataclass
class Junction:
    """
    Explicit marker saying wires/pins connect at `at`.

    `manual` junctions are user-placed and survive topology rebuilds.
    `suppressed` marks a location where the user removed an automatic
    junction; no automatic junction may be recreated there.
    """
    id: str
    at: Point
    manual: bool = False
    suppressed: bool = False
    net_id: Optional[str] = None
    size: Optional[float] = None
    color: Optional[str] = None

    def __post_init__(self):
        self.at = as_point(self.at)


@dataclass
class Pin:
    """Fixed connection point at an absolute position."""
    id: str
    at: Point

    def __post_init__(self):
        self.at = as_point(self.at)


@dataclass
class ComponentPin:
    """Pin offset relative to the component origin, before rotation."""
    name: str
    dx: float
    dy: float


@dataclass
class Component:
    id: str
    ctype: str          # "resistor", "capacitor", "npn", "ground", ...
    x: float
    y: float
    rotation: float = 0.0
    pins: List[ComponentPin] = field(default_factory=list)
    label: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)


def make_two_pin_component(
    comp_id: str,
    ctype: str,
    x: float, y: float,
    rotation: float = 0.0,
    settings: KernelSettings = DEFAULT_SETTINGS,
) -> Component:
    """Create a two-pin component with pins A/B at +/- 2*grid along its axis."""
    span = 2 * settings.grid
    return Component(
        id=comp_id,
        ctype=ctype,
        x=x,
        y=y,
        rotation=rotation,
        pins=[ComponentPin("A", -span, 0.0), ComponentPin("B", span, 0.0)],
    )


def resolve_component_pins(component: Component) -> List[Pin]:
    """
    Absolute pin positions for a component, rotation applied.

    Rotations that are multiples of 90 degrees produce exact coordinates
    (no floating-point residue from sin/cos).
    """
    rot = component.rotation % 360
    quarter = {0: (1, 0), 90: (0, 1), 180: (-1, 0), 270: (0, -1)}
    if rot in quarter:
        co, s = quarter[rot]
    else:
        rad = math.radians(rot)
        co, s = math.cos(rad), math.sin(rad)

    resolved = []
    for pin in component.pins:
        px = component.x + pin.dx * co - pin.dy * s
        py = component.y + pin.dx * s + pin.dy * co
        resolved.append(Pin(id=f"{component.id}:{pin.name}", at=Point(px, py)))
    return resolved


@dataclass
class RoutingState:
    """
    Flat snapshot consumed by the connectivity deriver and owned by the
    routing kernel.
    """
    wires: List[Wire] = field(default_factory=list)
    junctions: List[Junction] = field(default_factory=list)
    pins: List[Pin] = field(default_factory=list)
    tolerance: float = DEFAULT_SETTINGS.tolerance

    def get_wire(self, wire_id: str) -> Optional[Wire]:
        for wire in self.wires:
            if wire.id == wire_id:
                return wire
        return None


@dataclass
class SchematicModel:
    """
    The document: authoritative components, wires, junctions and free pins.

    Topology, SWPs and automatic junctions are derived from this and are
    never part of the persisted form (see `to_dict`).
    """
    components: List[Component] = field(default_factory=list)
    wires: List[Wire] = field(default_factory=list)
    junctions: List[Junction] = field(default_factory=list)
    pins: List[Pin] = field(default_factory=list)

    def get_wire(self, wire_id: str) -> Optional[Wire]:
        for wire in self.wires:
            if wire.id == wire_id:
                return wire
        return None

    def get_component(self, comp_id: str) -> Optional[Component]:
        for comp in self.components:
            if comp.id == comp_id:
                return comp
        return None

    def all_pins(self) -> List[Pin]:
        """Free pins followed by every component pin (rotation applied)."""
        pins = list(self.pins)
        for comp in self.components:
            pins.extend(resolve_component_pins(comp))
        return pins

    def routing_state(self, settings: KernelSettings = DEFAULT_SETTINGS) -> RoutingState:
        """Flat connectivity snapshot sharing this document's wire/junction objects."""
        return RoutingState(
            wires=self.wires,
            junctions=self.junctions,
            pins=self.all_pins(),
            tolerance=settings.tolerance,
        )

    # ------------------------------------------------------------------
    # Persistence of authoritative state only
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialise components, wires, free pins and manual junctions.

        Automatic junctions are derived data and are dropped.
        """
        return {
            "components": [
                {
                    "id": c.id,
                    "ctype": c.ctype,
                    "x": c.x,
                    "y": c.y,
                    "rotation": c.rotation,
                    "label": c.label,
                    "pins": [{"name": p.name, "dx": p.dx, "dy": p.dy} for p in c.pins],
                    "extra": dict(c.extra),
                }
                for c in self.components
            ],
            "wires": [
                {
                    "id": w.id,
                    "points": [[p.x, p.y] for p in w.points],
                    "color": w.color,
                    "net_id": w.net_id,
                }
                for w in self.wires
            ],
            "junctions": [
                {
                    "id": j.id,
                    "at": [j.at.x, j.at.y],
                    "manual": True,
                    "suppressed": j.suppressed,
                    "net_id": j.net_id,
                    "size": j.size,
                    "color": j.color,
                }
                for j in self.junctions
                if j.manual
            ],
            "pins": [{"id": p.id, "at": [p.at.x, p.at.y]} for p in self.pins],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SchematicModel":
        """Inverse of `to_dict`. Call a topology rebuild afterwards to regain derived state."""
        components = [
            Component(
                id=c["id"],
                ctype=c["ctype"],
                x=c["x"],
                y=c["y"],
                rotation=c.get("rotation", 0.0),
                pins=[ComponentPin(p["name"], p["dx"], p["dy"]) for p in c.get("pins", [])],
                label=c.get("label", ""),
                extra=dict(c.get("extra", {})),
            )
            for c in data.get("components", [])
        ]
        wires = [
            Wire(
                id=w["id"],
                points=[Point(*pt) for pt in w["points"]],
                color=w.get("color"),
                net_id=w.get("net_id"),
            )
            for w in data.get("wires", [])
        ]
        junctions = [
            Junction(
                id=j["id"],
                at=Point(*j["at"]),
                manual=bool(j.get("manual", True)),
                suppressed=bool(j.get("suppressed", False)),
                net_id=j.get("net_id"),
                size=j.get("size"),
                color=j.get("color"),
            )
            for j in data.get("junctions", [])
        ]
        pins = [Pin(id=p["id"], at=Point(*p["at"])) for p in data.get("pins", [])]
        return cls(components=components, wires=wires, junctions=junctions, pins=pins)


def wires_from_points(specs: Iterable[Tuple[str, Sequence[PointLike]]]) -> List[Wire]:
    """Convenience constructor: [(id, [(x, y), ...]), ...] -> [Wire, ...]."""
    return [Wire(id=wid, points=[as_point(p) for p in pts]) for wid, pts in specs]
