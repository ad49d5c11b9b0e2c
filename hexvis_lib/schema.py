# --- hexvis_lib/schema.py ---
import json
from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields, replace
from types import MappingProxyType
from typing import Any, Dict, Iterator, Optional

from hexvis_lib.directions import DIRECTION_NAMES

# The closed set of edge terrain categories the model may report.
CONNECTION_TYPES = ("grass", "water", "coast", "road")

# May appear in raw model output; never kept in a TileConnections value.
UNKNOWN_CONNECTION = "unknown"


@dataclass(frozen=True)
class RenderOptions:
    """Capture settings for the multi-angle renderer."""

    width: int = 512
    height: int = 512
    fov: float = 45.0
    distance: float = 8.0
    background_color: int = 0x1A1A1A

    def __post_init__(self):
        if int(self.width) <= 0 or int(self.height) <= 0:
            raise ValueError(f"Render size must be positive, got {self.width}x{self.height}")
        if not 0 < float(self.fov) < 180:
            raise ValueError(f"Field of view must be between 0 and 180 degrees, got {self.fov}")
        if not 0 < float(self.distance) < float("inf"):
            raise ValueError(f"Camera distance must be positive and finite, got {self.distance}")

    def merged(self, overrides: Optional[Dict[str, Any]] = None) -> "RenderOptions":
        """Returns a copy with the non-None entries of `overrides` applied."""
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown render options: {', '.join(sorted(unknown))}")
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class TileConnections(Mapping):
    """
    Immutable map of direction name -> connection type for one tile.

    Directions without a connection are simply absent. Compares equal to any
    mapping with the same items, so tests and callers can use plain dicts.
    """

    def __init__(self, edges: Optional[Mapping] = None):
        edges = dict(edges or {})
        for direction, conn_type in edges.items():
            if direction not in DIRECTION_NAMES:
                raise ValueError(f"Unknown hex direction: {direction!r}")
            if conn_type not in CONNECTION_TYPES:
                raise ValueError(
                    f"Invalid connection type {conn_type!r} for direction '{direction}'"
                )
        # Store in canonical order so serialized output is stable.
        ordered = {d: edges[d] for d in DIRECTION_NAMES if d in edges}
        self._edges = MappingProxyType(ordered)

    def __getitem__(self, direction: str) -> str:
        return self._edges[direction]

    def __iter__(self) -> Iterator[str]:
        return iter(self._edges)

    def __len__(self) -> int:
        return len(self._edges)

    def __repr__(self) -> str:
        return f"TileConnections({dict(self._edges)!r})"

    def to_dict(self) -> Dict[str, str]:
        return dict(self._edges)

    def to_payload(self) -> Dict[str, Dict[str, str]]:
        """The response-shaped object: {"connections": {...}}."""
        return {"connections": self.to_dict()}


def save_json(connections: TileConnections, output_path: str) -> None:
    """
    Serializes a TileConnections value to a JSON file.

    Args:
        connections: The connection map to write.
        output_path: The path to the output .json file.
    """
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(connections.to_payload(), f, indent=2)


def load_json(input_path: str) -> TileConnections:
    """
    Reads a JSON file previously written by save_json.

    Args:
        input_path: The path to the input .json file.

    Returns:
        The TileConnections stored in the file.
    """
    with open(input_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return TileConnections(data.get("connections") or {})
