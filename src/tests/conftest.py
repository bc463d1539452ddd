import pytest

from wirekernel.schematic_model import Pin, SchematicModel, Wire, make_two_pin_component


@pytest.fixture
def embedded_model():
    """R1 sitting in a horizontal run: P1 -- w1 -- R1 -- w2 -- P2."""
    return SchematicModel(
        components=[make_two_pin_component("R1", "resistor", 50, 0)],  # pins (30,0) (70,0)
        wires=[Wire("w1", [(0, 0), (30, 0)]), Wire("w2", [(70, 0), (100, 0)])],
        pins=[Pin("P1", (0, 0)), Pin("P2", (100, 0))],
    )
