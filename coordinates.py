"""
Spatial coordinates of neurons as logged by the simulator.

Locations are written as ``(x=-300 µm, y=0 µm, z=100 µm)``, sometimes
followed by ``, norm=316.23 µm``.  ``parse_coordinate`` turns such a literal
into an immutable ``Coordinate``; the norm and the units are discarded.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

from spikes_errors import MalformedCoordinate

_NORM_MARKER = ", norm"


@dataclass(frozen=True)
class Coordinate:
    """3D Cartesian coordinate ``C(x1, x2, x3)``."""
    x1: float
    x2: float
    x3: float

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.x1, self.x2, self.x3)

    def distance_to(self, other: "Coordinate") -> float:
        dx = self.x1 - other.x1
        dy = self.x2 - other.x2
        dz = self.x3 - other.x3
        return math.sqrt(dx * dx + dy * dy + dz * dz)


def parse_coordinate(literal: str) -> Coordinate:
    """Parse a logged coordinate literal.

    Args:
        literal: String of the form ``(x=x1 µm, y=x2 µm, z=x3 µm)``,
            optionally followed by ``, norm=d µm``.

    Raises:
        MalformedCoordinate: If there are not exactly three components,
            a component has no ``=``, or a value is not a finite number.
    """
    coordinate = literal.split(_NORM_MARKER, 1)[0].strip()
    if not (coordinate.startswith("(") and coordinate.endswith(")")):
        raise MalformedCoordinate(literal, "coordinate must be parenthesised")

    components = coordinate[1:-1].split(",")
    if len(components) != 3:
        raise MalformedCoordinate(
            literal, f"expected 3 components, found {len(components)}"
        )

    values = []
    for component in components:
        _, sep, rhs = component.partition("=")
        tokens = rhs.split()
        if not sep or not tokens:
            raise MalformedCoordinate(literal, f"bad component {component.strip()!r}")
        try:
            value = float(tokens[0])
        except ValueError:
            raise MalformedCoordinate(literal, f"bad number {tokens[0]!r}") from None
        if not math.isfinite(value):
            raise MalformedCoordinate(literal, f"non-finite number {tokens[0]!r}")
        values.append(value)

    return Coordinate(*values)
