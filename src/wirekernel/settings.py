"""
Kernel configuration.

All tolerances and styling defaults used by the wire kernel live here in a
single frozen dataclass so that the connectivity deriver, the topology
builder and the routing kernel agree on the same numbers.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, Optional


@dataclass(frozen=True)
class JunctionStyle:
    """Size and colour of a junction dot."""
    size: float = 1.2
    color: str = "#FFFFFF"


@dataclass(frozen=True)
class NetClass:
    """
    Styling defaults shared by every wire of a net class.

    Only the junction style is consumed by the kernel (to style newly
    detected junctions); the wire fields are carried for the front end.
    """
    id: str
    name: str
    wire_width: float = 0.25
    wire_color: str = "#c7f284"
    junction: JunctionStyle = field(default_factory=JunctionStyle)


DEFAULT_NET_CLASS = NetClass(id="default", name="Default")

TWO_PIN_TYPES: FrozenSet[str] = frozenset(
    {"resistor", "capacitor", "inductor", "diode", "battery", "ac"}
)


@dataclass(frozen=True)
class KernelSettings:
    """
    Tolerances and defaults for the wire kernel.

    Distances are in diagram units (the editor grid is `grid` units wide).
    """

    grid: float = 10.0
    """Grid pitch. Two-pin components place their pins at +/- 2*grid."""

    tolerance: float = 0.5
    """Connection tolerance shared by every connectivity rule."""

    exact_eps: float = 1e-6
    """Exact-snap comparisons (vertex coincidence)."""

    endpoint_match_tolerance: float = 0.9
    """How close a component pin must be to a wire endpoint to count as embedded."""

    axis_match_eps: float = 0.5
    """Pin-on-SWP axis line tolerance."""

    swp_span_slack: float = 0.5
    """Extra span allowed at both ends of an SWP when mapping components."""

    suppression_eps: float = 1e-3
    """Distance at which a suppressed manual junction blocks an auto junction."""

    hit_tolerance: float = 6.0
    """Default hit-test radius."""

    min_move_threshold: float = 5.0
    """Cursor travel below this is treated as jitter during orthogonal placement."""

    turn_threshold: float = 20.0
    """Perpendicular travel past this commits a corner automatically."""

    default_wire_color: str = "#c7f284"
    no_common_color: str = "#FFFFFF"

    two_pin_types: FrozenSet[str] = TWO_PIN_TYPES

    net_classes: Dict[str, NetClass] = field(
        default_factory=lambda: {"default": DEFAULT_NET_CLASS}
    )

    def net_class_for(self, net_id: Optional[str]) -> NetClass:
        """Return the net class for `net_id`, falling back to the default class."""
        if net_id and net_id in self.net_classes:
            return self.net_classes[net_id]
        return self.net_classes.get("default", DEFAULT_NET_CLASS)

    def with_overrides(self, **changes) -> "KernelSettings":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


DEFAULT_SETTINGS = KernelSettings()
