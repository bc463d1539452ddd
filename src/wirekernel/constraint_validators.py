"""
Validators for each constraint type.

A validator is a callable

    validate(entity, proposed, context, constraint) -> ValidationResult

It may reject the proposed position, suggest an adjusted one, and list
updates other entities need so the constraint keeps holding.
"""

from __future__ import annotations
from typing import Callable, Dict, List, Optional, Tuple

from .schematic_model import Point
from .geometry import distance, round_coord
from .constraints import (
    ALIGN,
    COINCIDENT,
    COMPONENT,
    CONNECTED,
    Constraint,
    Entity,
    EntityUpdate,
    FIXED_AXIS,
    FIXED_POSITION,
    MIN_DISTANCE,
    NO_OVERLAP,
    ON_GRID,
    ORTHOGONAL,
    RUBBER_BAND,
    ValidationContext,
    ValidationResult,
)

Validator = Callable[[Entity, Point, ValidationContext, Constraint], ValidationResult]

POSITION_TOLERANCE = 0.1


class ConstraintRegistry:
    """Maps constraint types to their validators."""

    def __init__(self):
        self._validators: Dict[str, Validator] = {}

    def register(self, constraint_type: str, validator: Validator) -> None:
        self._validators[constraint_type] = validator

    def get_validator(self, constraint_type: str) -> Optional[Validator]:
        return self._validators.get(constraint_type)

    def has_validator(self, constraint_type: str) -> bool:
        return constraint_type in self._validators

    def registered_types(self) -> List[str]:
        return list(self._validators)


def _others(entity: Entity, constraint: Constraint, context: ValidationContext) -> List[Entity]:
    return [
        context.entities[eid]
        for eid in constraint.entities
        if eid != entity.id and eid in context.entities
    ]


def validate_fixed_position(entity, proposed, context, constraint) -> ValidationResult:
    fixed = constraint.params.get("position", entity.position)
    if (abs(proposed.x - fixed[0]) < POSITION_TOLERANCE
            and abs(proposed.y - fixed[1]) < POSITION_TOLERANCE):
        return ValidationResult(True)
    return ValidationResult(
        False,
        f"{entity.id} must stay at fixed position ({fixed[0]}, {fixed[1]})",
        adjusted_position=Point(fixed[0], fixed[1]),
    )


def validate_fixed_axis(entity, proposed, context, constraint) -> ValidationResult:
    """Movement only along params['axis'], optionally bounded."""
    params = constraint.params
    axis = params["axis"]
    fixed = params["fixed_value"]
    lo = params.get("min_value")
    hi = params.get("max_value")

    # run = coordinate along the allowed axis, off = the fixed one
    run, off = (proposed.x, proposed.y) if axis == "x" else (proposed.y, proposed.x)

    def make(run_value: float) -> Point:
        return Point(run_value, fixed) if axis == "x" else Point(fixed, run_value)

    if abs(off - fixed) > POSITION_TOLERANCE:
        clamped = run
        if lo is not None:
            clamped = max(lo, clamped)
        if hi is not None:
            clamped = min(hi, clamped)
        return ValidationResult(
            False,
            f"Movement restricted to {axis.upper()} axis ({'Y' if axis == 'x' else 'X'} must be {fixed})",
            adjusted_position=make(clamped),
        )
    if lo is not None and run < lo:
        return ValidationResult(False, f"Below minimum {axis.upper()} value ({lo})", adjusted_position=make(lo))
    if hi is not None and run > hi:
        return ValidationResult(False, f"Above maximum {axis.upper()} value ({hi})", adjusted_position=make(hi))
    return ValidationResult(True)


def validate_coincident(entity, proposed, context, constraint) -> ValidationResult:
    """Entities sitting on the coincidence point follow the moving one."""
    point = constraint.params.get("point", entity.position)
    tol = constraint.params.get("tolerance", 1.0)
    updates = [
        EntityUpdate(other.id, proposed, f"coincident with {entity.id}")
        for other in _others(entity, constraint, context)
        if distance(other.position, point) <= tol
    ]
    return ValidationResult(True, required_updates=updates)


def validate_connected(entity, proposed, context, constraint) -> ValidationResult:
    """Connected partners move by the same delta."""
    if not constraint.params.get("maintain_connection", True):
        return ValidationResult(True)
    dx = proposed.x - entity.position.x
    dy = proposed.y - entity.position.y
    updates = [
        EntityUpdate(other.id, Point(other.position.x + dx, other.position.y + dy),
                     f"connected to {entity.id}")
        for other in _others(entity, constraint, context)
    ]
    return ValidationResult(True, required_updates=updates)


def validate_orthogonal(entity, proposed, context, constraint) -> ValidationResult:
    """The other end of a horizontal/vertical segment follows to keep its axis."""
    axis = constraint.params.get("axis")
    updates = []
    for other in _others(entity, constraint, context):
        if axis == "x" and other.position.y != proposed.y:
            updates.append(EntityUpdate(other.id, Point(other.position.x, proposed.y), "keep segment horizontal"))
        elif axis == "y" and other.position.x != proposed.x:
            updates.append(EntityUpdate(other.id, Point(proposed.x, other.position.y), "keep segment vertical"))
    return ValidationResult(True, required_updates=updates)


def validate_min_distance(entity, proposed, context, constraint) -> ValidationResult:
    min_dist = constraint.params.get("distance", 0.0)
    for other in _others(entity, constraint, context):
        d = distance(proposed, other.position)
        if d < min_dist:
            return ValidationResult(False, f"Closer than {min_dist} to {other.id} ({d:.2f})")
    return ValidationResult(True)


def _bbox(entity: Entity, center: Point, extent: float, width: float, padding: float) -> Tuple[float, float, float, float]:
    rot = entity.metadata.get("rotation", 0) % 360
    horizontal = rot in (0, 180)
    hx, hy = (extent, width) if horizontal else (width, extent)
    return (center.x - hx - padding, center.y - hy - padding,
            center.x + hx + padding, center.y + hy + padding)


def validate_no_overlap(entity, proposed, context, constraint) -> ValidationResult:
    """
    Axis-aligned bounding boxes of components may touch but not overlap.
    With only the moving entity listed, every other component is checked.
    """
    params = constraint.params
    extent = params.get("body_extent", 2 * context.grid)
    width = params.get("body_width", context.grid / 2)
    padding = params.get("padding", 0.0)

    others = _others(entity, constraint, context)
    if not others:
        others = [e for e in context.entities.values() if e.type == COMPONENT and e.id != entity.id]

    x0, y0, x1, y1 = _bbox(entity, proposed, extent, width, padding)
    for other in others:
        ox0, oy0, ox1, oy1 = _bbox(other, other.position, extent, width, 0.0)
        if not (x1 <= ox0 or x0 >= ox1 or y1 <= oy0 or y0 >= oy1):
            return ValidationResult(False, f"Bounding box overlap with {other.id}")
    return ValidationResult(True)


def validate_on_grid(entity, proposed, context, constraint) -> ValidationResult:
    """Auto-fix: snap to the grid."""
    grid = constraint.params.get("grid_size", context.grid)
    if grid <= 0:
        return ValidationResult(True)
    snapped = Point(round_coord(proposed.x / grid) * grid, round_coord(proposed.y / grid) * grid)
    if snapped == proposed:
        return ValidationResult(True)
    return ValidationResult(True, adjusted_position=snapped)


def validate_rubber_band(entity, proposed, context, constraint) -> ValidationResult:
    """
    A perpendicular wire attached at the connection point stretches: its
    attached point follows the moving entity on the axis it does not run along.
    """
    stretch_axis = constraint.params.get("stretch_axis", "y")
    updates = []
    for other in _others(entity, constraint, context):
        if stretch_axis == "y":
            new_pos = Point(proposed.x, other.position.y)
        else:
            new_pos = Point(other.position.x, proposed.y)
        if new_pos != other.position:
            updates.append(EntityUpdate(other.id, new_pos, f"stretch with {entity.id}"))
    return ValidationResult(True, required_updates=updates)


def validate_align(entity, proposed, context, constraint) -> ValidationResult:
    """Snap to an alignment line when close enough (a hint, never a rejection)."""
    axis = constraint.params.get("axis", "x")
    value = constraint.params["align_value"]
    snap = constraint.params.get("snap_distance", context.grid / 2)
    if axis == "x" and proposed.x != value and abs(proposed.x - value) <= snap:
        return ValidationResult(True, adjusted_position=Point(value, proposed.y))
    if axis == "y" and proposed.y != value and abs(proposed.y - value) <= snap:
        return ValidationResult(True, adjusted_position=Point(proposed.x, value))
    return ValidationResult(True)


def create_default_registry() -> ConstraintRegistry:
    registry = ConstraintRegistry()
    registry.register(FIXED_POSITION, validate_fixed_position)
    registry.register(FIXED_AXIS, validate_fixed_axis)
    registry.register(COINCIDENT, validate_coincident)
    registry.register(CONNECTED, validate_connected)
    registry.register(ORTHOGONAL, validate_orthogonal)
    registry.register(MIN_DISTANCE, validate_min_distance)
    registry.register(NO_OVERLAP, validate_no_overlap)
    registry.register(ON_GRID, validate_on_grid)
    registry.register(RUBBER_BAND, validate_rubber_band)
    registry.register(ALIGN, validate_align)
    return registry
