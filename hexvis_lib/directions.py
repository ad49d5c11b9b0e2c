# --- hexvis_lib/directions.py ---
import math
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Direction:
    """One edge of the hexagonal tile, as seen from above with north at the top."""

    name: str
    angle: int  # degrees, measured in the world XZ plane
    label: str
    position: str  # where the edge sits in a top-down view

    @property
    def radians(self) -> float:
        return math.radians(self.angle)

    @property
    def vector(self) -> Tuple[float, float]:
        """Unit (x, z) vector towards the edge. -Z is north."""
        return (math.cos(self.radians), math.sin(self.radians))


# Canonical order. Image N sent to the model is always DIRECTIONS[N - 1].
# With -Z pointing north, 240 and 300 degrees land on the two upper edges.
DIRECTIONS: Tuple[Direction, ...] = (
    Direction("east", 0, "E", "right side of the hexagon"),
    Direction("southeast", 60, "SE", "right-bottom edge"),
    Direction("southwest", 120, "SW", "left-bottom edge"),
    Direction("west", 180, "W", "left side of the hexagon"),
    Direction("northwest", 240, "NW", "left-top edge (NORTH direction)"),
    Direction("northeast", 300, "NE", "right-top edge (NORTH direction)"),
)

DIRECTION_NAMES: Tuple[str, ...] = tuple(d.name for d in DIRECTIONS)

_BY_NAME = {d.name: d for d in DIRECTIONS}


def get_direction(name: str) -> Direction:
    """Looks up a direction by its canonical name."""
    try:
        return _BY_NAME[name]
    except KeyError:
        raise ValueError(f"Unknown hex direction: {name!r}") from None
