"""
Priority-ordered constraint solver and constraint builders.

`ConstraintSolver.solve(entity_id, proposed)` evaluates every enabled
constraint on the entity from highest to lowest priority. A constraint may
reject the position (recorded as a violation) and/or adjust it. A lower
priority adjustment is only taken if it still satisfies every higher
priority constraint already evaluated, so e.g. a manual junction's fixed
position always beats grid snapping. Updates for other entities are
collected once the final position is known.
"""

from __future__ import annotations
from typing import Callable, Iterable, List, Optional, Sequence, Tuple
import logging

from .schematic_model import Component, Junction, Pin, Point, PointLike, SchematicModel, Wire, as_point, resolve_component_pins
from .geometry import axis_of, distance
from .constraints import (
    COINCIDENT,
    COMPONENT,
    CONNECTED,
    FIXED_AXIS,
    FIXED_POSITION,
    JUNCTION,
    NO_OVERLAP,
    ON_GRID,
    ORTHOGONAL,
    PRIORITY,
    RUBBER_BAND,
    WIRE_POINT,
    Constraint,
    ConstraintGraph,
    ConstraintViolation,
    Entity,
    EntityUpdate,
    SolveResult,
    ValidationContext,
    wire_point_entity_id,
)
from .constraint_validators import ConstraintRegistry, create_default_registry
from .settings import KernelSettings, DEFAULT_SETTINGS
from .topology import StraightWirePath, Topology

logger = logging.getLogger(__name__)

PinResolver = Callable[[Component], List[Pin]]


class ConstraintSolver:
    """Resolves proposed entity moves against the constraint graph."""

    def __init__(self, grid: float = DEFAULT_SETTINGS.grid, registry: Optional[ConstraintRegistry] = None):
        self.grid = grid
        self.graph = ConstraintGraph()
        self.registry = registry if registry is not None else create_default_registry()

    # Convenience passthroughs
    def add_entity(self, entity: Entity) -> None:
        self.graph.add_entity(entity)

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        return self.graph.get_entity(entity_id)

    def add_constraint(self, constraint: Constraint) -> None:
        self.graph.add_constraint(constraint)

    def add_constraints(self, constraints: Iterable[Constraint]) -> None:
        for c in constraints:
            self.graph.add_constraint(c)

    def _context(self) -> ValidationContext:
        return ValidationContext(
            entities={e.id: e for e in self.graph.all_entities()},
            constraints={c.id: c for c in self.graph.all_constraints()},
            grid=self.grid,
        )

    def solve(self, entity_id: str, proposed: PointLike) -> SolveResult:
        """
        Work out what moving `entity_id` to `proposed` would do.

        Returns:
            SolveResult; `allowed` is False when any constraint was violated,
            in which case `closest_valid` holds the best-effort position.
        """
        proposed = as_point(proposed)
        entity = self.graph.get_entity(entity_id)
        if entity is None:
            return SolveResult(
                allowed=False,
                final_position=proposed,
                violations=[ConstraintViolation("none", None, f"Entity {entity_id} not found")],
            )

        constraints = sorted(
            self.graph.constraints_for_entity(entity_id),
            key=lambda c: (-c.priority, c.id),
        )
        context = self._context()
        current = proposed
        violations: List[ConstraintViolation] = []
        evaluated: List[Constraint] = []

        for constraint in constraints:
            validator = self.registry.get_validator(constraint.type)
            if validator is None:
                continue
            result = validator(entity, current, context, constraint)
            if not result.valid:
                violations.append(ConstraintViolation(
                    constraint.id, constraint, result.reason or "Constraint violation"))

            candidate = result.adjusted_position
            if candidate is not None and candidate != current:
                if self._satisfies(entity, candidate, context, evaluated):
                    current = candidate
                else:
                    logger.warning(
                        "Ignoring %s adjustment for %s: conflicts with a higher priority constraint",
                        constraint.id, entity_id,
                    )
            evaluated.append(constraint)

        affected = [EntityUpdate(entity_id, current, "primary move")]
        seen = {entity_id}
        for constraint in constraints:
            validator = self.registry.get_validator(constraint.type)
            if validator is None:
                continue
            for update in validator(entity, current, context, constraint).required_updates:
                if update.id not in seen:
                    seen.add(update.id)
                    affected.append(update)

        allowed = not violations
        logger.debug(
            "solve %s -> (%s, %s) allowed=%s violations=%d",
            entity_id, current.x, current.y, allowed, len(violations),
        )
        return SolveResult(
            allowed=allowed,
            final_position=current,
            affected_entities=affected,
            violations=violations,
            closest_valid=None if allowed else current,
        )

    def _satisfies(self, entity: Entity, position: Point, context: ValidationContext,
                   constraints: Sequence[Constraint]) -> bool:
        for c in constraints:
            validator = self.registry.get_validator(c.type)
            if validator is not None and not validator(entity, position, context, c).valid:
                return False
        return True

    def apply_result(self, result: SolveResult) -> bool:
        """Move the affected entities. A disallowed result is not applied."""
        if not result.allowed:
            logger.warning("Attempted to apply a disallowed move result")
            return False
        for update in result.affected_entities:
            self.graph.update_entity_position(update.id, update.new_position)
        return True

    def explain_violations(self, entity_id: str, proposed: PointLike) -> List[str]:
        result = self.solve(entity_id, proposed)
        if result.allowed:
            return ["Move is allowed"]
        lines = []
        for v in result.violations:
            if v.constraint is None:
                lines.append(v.reason)
            else:
                lines.append(f"[{v.constraint.type}] {v.reason} (priority: {v.constraint.priority})")
        return lines

    def disable_constraints(self, types: Iterable[str]) -> None:
        wanted = set(types)
        for c in self.graph.all_constraints():
            if c.type in wanted:
                self.graph.disable_constraint(c.id)

    def enable_constraints(self, types: Iterable[str]) -> None:
        wanted = set(types)
        for c in self.graph.all_constraints():
            if c.type in wanted:
                self.graph.enable_constraint(c.id)

    def clear_temporary_constraints(self) -> int:
        return self.graph.clear_temporary_constraints()


# ---------------------------------------------------------------------------
# Entity and constraint builders
# ---------------------------------------------------------------------------

def component_entity(component: Component) -> Entity:
    return Entity(
        id=component.id,
        type=COMPONENT,
        position=Point(component.x, component.y),
        metadata={"ctype": component.ctype, "rotation": component.rotation, "label": component.label},
    )


def wire_point_entities(wire: Wire) -> List[Entity]:
    return [
        Entity(
            id=wire_point_entity_id(wire.id, i),
            type=WIRE_POINT,
            position=p,
            metadata={"wire_id": wire.id, "point_index": i},
        )
        for i, p in enumerate(wire.points)
    ]


def junction_entity(junction: Junction) -> Entity:
    return Entity(
        id=junction.id,
        type=JUNCTION,
        position=junction.at,
        metadata={"manual": junction.manual, "suppressed": junction.suppressed, "net_id": junction.net_id},
    )


def _wire_points_at(point: Point, wires: Sequence[Wire], tol: float) -> List[str]:
    ids = []
    for wire in wires:
        for i, p in enumerate(wire.points):
            if distance(p, point) <= tol:
                ids.append(wire_point_entity_id(wire.id, i))
    return ids


def build_junction_constraints(junction: Junction, wires: Sequence[Wire], tol: float = 0.5) -> List[Constraint]:
    """
    Manual junctions pin themselves and the wire points on them in place.
    Automatic junctions keep the wire points on them together.
    """
    attached = _wire_points_at(junction.at, wires, tol)
    if junction.manual and not junction.suppressed:
        return [Constraint(
            id=f"{FIXED_POSITION}:{junction.id}",
            type=FIXED_POSITION,
            priority=PRIORITY.MANUAL_JUNCTION,
            entities=[junction.id] + attached,
            params={"position": junction.at},
            reason="Manual junction cannot move",
            created_by="build_junction_constraints",
        )]
    if not junction.manual:
        return [Constraint(
            id=f"{COINCIDENT}:{junction.id}",
            type=COINCIDENT,
            priority=PRIORITY.AUTO_JUNCTION,
            entities=[junction.id] + attached,
            params={"point": junction.at, "tolerance": 1.0},
            reason="Automatic T-junction",
            created_by="build_junction_constraints",
        )]
    return []


def build_wire_constraints(wire: Wire) -> List[Constraint]:
    """Every axis-aligned segment stays horizontal/vertical."""
    constraints = []
    for i, (a, b) in enumerate(wire.segments()):
        axis = axis_of(a, b)
        if axis is None:
            continue
        constraints.append(Constraint(
            id=f"{ORTHOGONAL}:{wire.id}:{i}",
            type=ORTHOGONAL,
            priority=PRIORITY.ORTHOGONAL,
            entities=[wire_point_entity_id(wire.id, i), wire_point_entity_id(wire.id, i + 1)],
            params={"axis": axis},
            reason=f"Segment {i} must stay {'horizontal' if axis == 'x' else 'vertical'}",
            created_by="build_wire_constraints",
        ))
    return constraints


def build_component_constraints(
    component: Component,
    wires: Sequence[Wire],
    pin_resolver: PinResolver = resolve_component_pins,
    tol: float = 0.5,
) -> List[Constraint]:
    """Pins sitting on wire endpoints drag them along; components do not overlap."""
    constraints = []
    for pin in pin_resolver(component):
        attached = []
        for wire in wires:
            for i in (0, len(wire.points) - 1):
                if distance(wire.points[i], pin.at) <= tol:
                    attached.append(wire_point_entity_id(wire.id, i))
        if attached:
            constraints.append(Constraint(
                id=f"{CONNECTED}:{pin.id}",
                type=CONNECTED,
                priority=PRIORITY.COMPONENT_CONNECTION,
                entities=[component.id] + attached,
                params={"connection_type": "pin-to-wire", "maintain_connection": True},
                reason=f"Pin {pin.id} connected to wire",
                created_by="build_component_constraints",
            ))
    constraints.append(Constraint(
        id=f"{NO_OVERLAP}:{component.id}",
        type=NO_OVERLAP,
        priority=PRIORITY.NO_OVERLAP,
        entities=[component.id],
        params={"padding": 0.0},
        reason="Prevent component overlap",
        created_by="build_component_constraints",
    ))
    return constraints


def build_swp_constraints(component: Component, swp: StraightWirePath,
                          pin_resolver: PinResolver = resolve_component_pins) -> List[Constraint]:
    """
    Temporary constraint keeping an embedded component on its SWP, with its
    pins inside the SWP span.
    """
    run = 0 if swp.axis == "x" else 1
    half = max((abs(p.at[run] - (component.x, component.y)[run]) for p in pin_resolver(component)), default=0.0)
    lo = min(swp.start[run], swp.end[run]) + half
    hi = max(swp.start[run], swp.end[run]) - half
    fixed = swp.start[1 - run]
    return [Constraint(
        id=f"{FIXED_AXIS}:{component.id}:{swp.id}",
        type=FIXED_AXIS,
        priority=PRIORITY.TOPOLOGY,
        entities=[component.id],
        params={"axis": swp.axis, "fixed_value": fixed, "min_value": lo, "max_value": max(lo, hi)},
        reason="Component moving along SWP",
        created_by="build_swp_constraints",
        temporary=True,
    )]


def build_rubber_band_constraints(
    entity_id: str,
    attached: Sequence[Tuple[str, Point]],
    stretch_axis: str,
) -> List[Constraint]:
    """Temporary constraints letting perpendicular wires stretch with a moving entity."""
    return [
        Constraint(
            id=f"{RUBBER_BAND}:{entity_id}:{other_id}",
            type=RUBBER_BAND,
            priority=PRIORITY.RUBBER_BAND,
            entities=[entity_id, other_id],
            params={"connection_point": point, "stretch_axis": stretch_axis},
            reason="Perpendicular wires stretch together",
            created_by="build_rubber_band_constraints",
            temporary=True,
        )
        for other_id, point in attached
    ]


def rebuild_all_constraints(
    solver: ConstraintSolver,
    model: SchematicModel,
    settings: KernelSettings = DEFAULT_SETTINGS,
) -> int:
    """
    Replace the solver's graph with entities and constraints derived from a
    document. Returns the number of constraints created.
    """
    solver.graph.clear()
    for comp in model.components:
        solver.add_entity(component_entity(comp))
    for wire in model.wires:
        for entity in wire_point_entities(wire):
            solver.add_entity(entity)
    for junction in model.junctions:
        solver.add_entity(junction_entity(junction))

    constraints: List[Constraint] = []
    for comp in model.components:
        constraints.extend(build_component_constraints(comp, model.wires, tol=settings.tolerance))
    for wire in model.wires:
        constraints.extend(build_wire_constraints(wire))
    for junction in model.junctions:
        constraints.extend(build_junction_constraints(junction, model.wires, tol=settings.tolerance))
    solver.add_constraints(constraints)
    logger.debug("Rebuilt %d constraints over %d entities", len(constraints), len(solver.graph.all_entities()))
    return len(constraints)


def solve_component_move(
    model: SchematicModel,
    topology: Topology,
    component_id: str,
    proposed: PointLike,
    settings: KernelSettings = DEFAULT_SETTINGS,
) -> SolveResult:
    """
    Resolve a component drag. An embedded component stays on its SWP
    (clamped to the SWP span), the result is grid snapped, and wire
    endpoints on its pins are reported as affected entities.
    """
    solver = ConstraintSolver(grid=settings.grid)
    rebuild_all_constraints(solver, model, settings)
    component = model.get_component(component_id)
    if component is None:
        return solver.solve(component_id, proposed)

    # Overlap is checked by the caller's placement logic; here only the drag path matters
    solver.disable_constraints([NO_OVERLAP])

    swp_id = topology.swp_id_for_component(component_id)
    swp = topology.find_swp(swp_id) if swp_id else None
    if swp is not None:
        solver.add_constraints(build_swp_constraints(component, swp))
    solver.add_constraint(Constraint(
        id=f"{ON_GRID}:{component_id}",
        type=ON_GRID,
        priority=PRIORITY.GRID_SNAP,
        entities=[component_id],
        params={"grid_size": settings.grid},
        reason="Snap to grid",
        created_by="solve_component_move",
        temporary=True,
    ))
    return solver.solve(component_id, proposed)
