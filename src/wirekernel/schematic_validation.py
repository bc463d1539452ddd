"""
Schematic validation and error checking.

Electrical-rule checks built on the connectivity deriver:
- Unconnected component pins (error)
- Dangling wire endpoints (warning)
- Wires crossing without a junction, which are therefore NOT connected (warning)
- Diagonal wire segments (warning)
"""

from __future__ import annotations
from typing import List, Tuple, Set, Optional
from dataclasses import dataclass
import logging

from .schematic_model import Point, SchematicModel, Wire, resolve_component_pins
from .geometry import (
    axis_aligned_intersection,
    axis_of,
    distance_squared,
    point_key,
    point_strictly_inside_axis_segment,
)
from .connectivity import JunctionMember, PinMember, derive_connectivity, touches_conductor
from .settings import KernelSettings, DEFAULT_SETTINGS

logger = logging.getLogger(__name__)


@dataclass
class ValidationError:
    """Represents a validation error with a message and severity."""
    message: str
    severity: str  # "error" or "warning"
    component_ref: Optional[str] = None
    pin_name: Optional[str] = None
    location: Optional[Point] = None


def validate_schematic(
    model: SchematicModel,
    settings: KernelSettings = DEFAULT_SETTINGS,
) -> Tuple[bool, List[ValidationError]]:
    """
    Perform electrical-rule validation of a schematic model.

    Checks:
    1. Unconnected pins
    2. Dangling wire endpoints
    3. Wire crossings without a junction
    4. Diagonal wire segments

    Returns:
        (is_valid, list_of_errors) where is_valid ignores warnings
    """
    errors: List[ValidationError] = []
    errors.extend(_unconnected_pins(model, settings))
    errors.extend(_dangling_endpoints(model, settings))
    errors.extend(_unjoined_crossings(model, settings))
    errors.extend(_diagonal_segments(model))

    is_valid = not any(e.severity == "error" for e in errors)
    logger.debug("Validation: %d findings, valid=%s", len(errors), is_valid)
    return (is_valid, errors)


def _unconnected_pins(model: SchematicModel, settings: KernelSettings) -> List[ValidationError]:
    """A component pin is unconnected if its net holds nothing but itself (and junctions)."""
    conn = derive_connectivity(model.routing_state(settings))
    errors = []
    for comp in model.components:
        for cpin, pin in zip(comp.pins, resolve_component_pins(comp)):
            net = conn.get_net(conn.net_of_pin(pin.id) or "")
            others = [] if net is None else [
                m for m in net.members
                if m != PinMember(pin.id) and not isinstance(m, JunctionMember)
            ]
            if not others:
                pin_name = cpin.name
                errors.append(ValidationError(
                    message=f"Unconnected pin: {comp.id}.{pin_name}",
                    severity="error",
                    component_ref=comp.id,
                    pin_name=pin_name,
                    location=pin.at,
                ))
    return errors


def _dangling_endpoints(model: SchematicModel, settings: KernelSettings) -> List[ValidationError]:
    tol = settings.tolerance
    tol2 = tol * tol
    pins = model.all_pins()
    errors = []
    for wire in model.wires:
        for end in (wire.start, wire.end):
            if _endpoint_touches_anything(end, wire, model.wires, pins, model, tol, tol2):
                continue
            errors.append(ValidationError(
                message=f"Dangling wire end: {wire.id} at ({end.x:g}, {end.y:g})",
                severity="warning",
                location=end,
            ))
    return errors


def _endpoint_touches_anything(end: Point, wire: Wire, wires, pins, model, tol: float, tol2: float) -> bool:
    for other in wires:
        if other is wire:
            continue
        if distance_squared(end, other.start) <= tol2 or distance_squared(end, other.end) <= tol2:
            return True
        if touches_conductor(end, other, tol):
            return True
    if any(distance_squared(end, p.at) <= tol2 for p in pins):
        return True
    return any(distance_squared(end, j.at) <= tol2 for j in model.junctions)


def _unjoined_crossings(model: SchematicModel, settings: KernelSettings) -> List[ValidationError]:
    """
    Interior crossings of two wires with no junction on them. By the
    connection rules these wires are not connected there.
    """
    tol2 = settings.tolerance * settings.tolerance
    reported: Set[Tuple[int, int]] = set()
    errors = []
    wires = model.wires
    for i, w1 in enumerate(wires):
        for w2 in wires[i + 1:]:
            for a1, b1 in w1.segments():
                for a2, b2 in w2.segments():
                    if axis_of(a1, b1) == axis_of(a2, b2):
                        continue
                    p = axis_aligned_intersection(a1, b1, a2, b2)
                    if p is None:
                        continue
                    if not (point_strictly_inside_axis_segment(p, a1, b1)
                            and point_strictly_inside_axis_segment(p, a2, b2)):
                        continue
                    if any(distance_squared(p, j.at) <= tol2 for j in model.junctions):
                        continue
                    key = point_key(p)
                    if key in reported:
                        continue
                    reported.add(key)
                    errors.append(ValidationError(
                        message=f"Wires {w1.id} and {w2.id} cross at ({p.x:g}, {p.y:g}) without a junction",
                        severity="warning",
                        location=p,
                    ))
    return errors


def _diagonal_segments(model: SchematicModel) -> List[ValidationError]:
    errors = []
    for wire in model.wires:
        for i, (a, b) in enumerate(wire.segments()):
            if axis_of(a, b) is None:
                errors.append(ValidationError(
                    message=f"Wire {wire.id} segment {i} is not horizontal or vertical",
                    severity="warning",
                    location=a,
                ))
    return errors
