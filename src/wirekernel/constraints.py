"""
Constraint-based movement model.

Entities (components, wire points, junctions) carry a position. Typed,
priority-ranked constraints are registered against one or more entity
ids. The graph here only stores and indexes them; validation lives in
`constraint_validators` and resolution in `constraint_solver`.
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from .schematic_model import Point
from .geometry import distance

# Entity types
COMPONENT = "component"
WIRE_POINT = "wire-point"
JUNCTION = "junction"

# Constraint types
FIXED_POSITION = "fixed-position"
FIXED_AXIS = "fixed-axis"
COINCIDENT = "coincident"
CONNECTED = "connected"
ORTHOGONAL = "orthogonal"
MIN_DISTANCE = "min-distance"
NO_OVERLAP = "no-overlap"
ON_GRID = "on-grid"
RUBBER_BAND = "rubber-band"
ALIGN = "align"

CONSTRAINT_TYPES = (
    FIXED_POSITION, FIXED_AXIS, COINCIDENT, CONNECTED, ORTHOGONAL,
    MIN_DISTANCE, NO_OVERLAP, ON_GRID, RUBBER_BAND, ALIGN,
)


class PRIORITY:
    """Standard priorities. Higher wins."""
    MANUAL_JUNCTION = 200
    COMPONENT_CONNECTION = 150
    AUTO_JUNCTION = 120
    TOPOLOGY = 100
    RUBBER_BAND = 90
    ORTHOGONAL = 80
    NO_OVERLAP = 70
    MIN_DISTANCE = 60
    GRID_SNAP = 50
    ALIGN = 40


def wire_point_entity_id(wire_id: str, point_index: int) -> str:
    return f"wire:{wire_id}:{point_index}"


@dataclass
class Entity:
    id: str
    type: str
    position: Point
    constraints: Set[str] = field(default_factory=set)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Constraint:
    """
    A typed rule over one or more entities.

    `params` depends on the type, e.g. fixed-axis uses
    {"axis": "x"|"y", "fixed_value": float, "min_value": float, "max_value": float}
    where `axis` is the axis the entity may move ALONG.
    """
    id: str
    type: str
    priority: int
    entities: List[str]
    params: Dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    reason: str = ""
    created_by: str = ""
    temporary: bool = False


@dataclass
class EntityUpdate:
    id: str
    new_position: Point
    reason: str = ""


@dataclass
class ConstraintViolation:
    constraint_id: str
    constraint: Optional[Constraint]
    reason: str
    severity: str = "error"


@dataclass
class ValidationResult:
    valid: bool
    reason: str = ""
    adjusted_position: Optional[Point] = None
    required_updates: List[EntityUpdate] = field(default_factory=list)


@dataclass
class SolveResult:
    allowed: bool
    final_position: Point
    affected_entities: List[EntityUpdate] = field(default_factory=list)
    violations: List[ConstraintViolation] = field(default_factory=list)
    closest_valid: Optional[Point] = None


@dataclass
class ValidationContext:
    entities: Dict[str, Entity]
    constraints: Dict[str, Constraint]
    grid: float = 10.0


class ConstraintGraph:
    """Bidirectional index between entities and the constraints on them."""

    def __init__(self):
        self._entities: Dict[str, Entity] = {}
        self._constraints: Dict[str, Constraint] = {}

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def add_entity(self, entity: Entity) -> None:
        # Pick up constraints that were registered before the entity
        for c in self._constraints.values():
            if entity.id in c.entities:
                entity.constraints.add(c.id)
        self._entities[entity.id] = entity

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        return self._entities.get(entity_id)

    def remove_entity(self, entity_id: str) -> None:
        """Remove an entity and every constraint that referenced it."""
        entity = self._entities.pop(entity_id, None)
        if entity is None:
            return
        for cid in list(entity.constraints):
            self.remove_constraint(cid)

    def all_entities(self) -> List[Entity]:
        return list(self._entities.values())

    def update_entity_position(self, entity_id: str, position: Point) -> None:
        entity = self._entities.get(entity_id)
        if entity is not None:
            entity.position = position

    def entities_by_type(self, entity_type: str) -> List[Entity]:
        return [e for e in self._entities.values() if e.type == entity_type]

    def entities_near(self, point: Point, radius: float) -> List[Entity]:
        return [e for e in self._entities.values() if distance(e.position, point) <= radius]

    # ------------------------------------------------------------------
    # Constraints
    # ------------------------------------------------------------------

    def add_constraint(self, constraint: Constraint) -> None:
        self._constraints[constraint.id] = constraint
        for eid in constraint.entities:
            entity = self._entities.get(eid)
            if entity is not None:
                entity.constraints.add(constraint.id)

    def get_constraint(self, constraint_id: str) -> Optional[Constraint]:
        return self._constraints.get(constraint_id)

    def remove_constraint(self, constraint_id: str) -> None:
        constraint = self._constraints.pop(constraint_id, None)
        if constraint is None:
            return
        for eid in constraint.entities:
            entity = self._entities.get(eid)
            if entity is not None:
                entity.constraints.discard(constraint_id)

    def all_constraints(self) -> List[Constraint]:
        return list(self._constraints.values())

    def enable_constraint(self, constraint_id: str) -> None:
        c = self._constraints.get(constraint_id)
        if c is not None:
            c.enabled = True

    def disable_constraint(self, constraint_id: str) -> None:
        c = self._constraints.get(constraint_id)
        if c is not None:
            c.enabled = False

    def constraints_for_entity(self, entity_id: str) -> List[Constraint]:
        """Enabled constraints touching an entity."""
        entity = self._entities.get(entity_id)
        if entity is None:
            return []
        return [
            self._constraints[cid]
            for cid in sorted(entity.constraints)
            if cid in self._constraints and self._constraints[cid].enabled
        ]

    def entities_for_constraint(self, constraint_id: str) -> List[Entity]:
        c = self._constraints.get(constraint_id)
        if c is None:
            return []
        return [self._entities[eid] for eid in c.entities if eid in self._entities]

    def constraints_by_type(self, constraint_type: str) -> List[Constraint]:
        return [c for c in self._constraints.values() if c.type == constraint_type]

    # ------------------------------------------------------------------
    # Graph queries
    # ------------------------------------------------------------------

    def are_connected(self, a: str, b: str) -> bool:
        """True iff some constraint references both entities."""
        return any(a in c.entities and b in c.entities for c in self._constraints.values())

    def find_path(self, start: str, goal: str) -> Optional[List[str]]:
        """Shortest chain of entities linked by shared constraints (BFS)."""
        if start not in self._entities or goal not in self._entities:
            return None
        if start == goal:
            return [start]
        previous: Dict[str, str] = {}
        queue = deque([start])
        seen = {start}
        while queue:
            current = queue.popleft()
            for cid in sorted(self._entities[current].constraints):
                c = self._constraints.get(cid)
                if c is None:
                    continue
                for nxt in c.entities:
                    if nxt in seen or nxt not in self._entities:
                        continue
                    seen.add(nxt)
                    previous[nxt] = current
                    if nxt == goal:
                        path = [goal]
                        while path[-1] != start:
                            path.append(previous[path[-1]])
                        return list(reversed(path))
                    queue.append(nxt)
        return None

    def clear_temporary_constraints(self) -> int:
        temp = [c.id for c in self._constraints.values() if c.temporary]
        for cid in temp:
            self.remove_constraint(cid)
        return len(temp)

    def clear(self) -> None:
        self._entities.clear()
        self._constraints.clear()

    def stats(self) -> Dict[str, Any]:
        by_type: Dict[str, int] = {}
        for c in self._constraints.values():
            by_type[c.type] = by_type.get(c.type, 0) + 1
        return {
            "entities": len(self._entities),
            "constraints": len(self._constraints),
            "enabled": sum(1 for c in self._constraints.values() if c.enabled),
            "by_type": by_type,
        }
