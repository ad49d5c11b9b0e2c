# --- hexvis_lib/prompts.py ---
import logging
from typing import NamedTuple, Optional, Sequence

from hexvis_lib.directions import DIRECTIONS, Direction
from hexvis_lib.schema import CONNECTION_TYPES

log = logging.getLogger("hexvis.prompt")

SYSTEM_PROMPT_TEMPLATE = """
You are an expert at analyzing 3D hexagonal tile models for a grid-based game.
Your task is to determine the connection type for each of the 6 edges of a
hexagonal tile by analyzing the PHYSICAL EDGES between the top hexagonal surface
and the side faces.

CRITICAL UNDERSTANDING - PHYSICAL EDGE DETECTION:
- A connection exists ONLY where there is a PHYSICAL EDGE/LINE between the top
  hexagonal surface and a side face.
- If you see an "empty space" or "cliff" (no connecting line), there is NO
  connection (use null).
- The connection type is determined by the COLOR/TEXTURE of that edge area.

IMPORTANT ORIENTATION:
- NORTH is at the TOP of a top-down view of the tile, SOUTH at the BOTTOM.
- The two edges adjacent to NORTH are "northwest" (left-top) and "northeast"
  (right-top).
- You will receive 6 images, one per edge, each taken from a camera placed
  above and outside that edge, looking at the tile centre.

Connection types for EXISTING physical edges:
{type_list}

Return a JSON object with this exact structure:
{schema}

Use null for directions where no physical edge exists (empty space/cliff).
Return ONLY the JSON object.
"""

USER_PROMPT_TEMPLATE = """
Analyze these 6 images of one hexagonal tile, each viewed from a 3/4 perspective.

CRITICAL ORIENTATION:
- NORTH is at the TOP and SOUTH at the BOTTOM of a top-down view of the tile.
- "northwest" and "northeast" are the two NORTH edges.

Tile context:
- Type: {tile_type}
- Biome: {biome}

The images are given in this order (clockwise from East); image N shows the edge
nearest to its camera:
{image_list}

For each edge, examine:
- Is there a VISIBLE EDGE/LINE between the top surface and that direction?
- If NO line is visible (empty space/cliff) -> null (no connection)
- If a line IS visible -> determine the connection type by its color/texture

Answer by direction name, not by image number. Return ONLY the JSON object with
connections.
"""

# Visual cues per connection type; keys must match CONNECTION_TYPES.
TYPE_DESCRIPTIONS = {
    "grass": "Green colors, vegetation textures, land surface",
    "water": "Blue/white colors, water-like textures, reflective surfaces",
    "coast": "Sandy/beige colors with grass, beach-like textures, coastal transition",
    "road": "Narrow strip of sandy/beige color with grass around it, path-like surface",
}


class VisionPrompts(NamedTuple):
    system: str
    user: str


def _type_list() -> str:
    return "\n".join(f'- "{t}": {TYPE_DESCRIPTIONS[t]}' for t in CONNECTION_TYPES)


def _response_schema(directions: Sequence[Direction]) -> str:
    choices = " | ".join(f'"{t}"' for t in CONNECTION_TYPES) + " | null"
    lines = [f'    "{d.name}": {choices}' for d in directions]
    return '{\n  "connections": {\n' + ",\n".join(lines) + "\n  }\n}"


def _image_list(directions: Sequence[Direction]) -> str:
    return "\n".join(
        f"{i}. {d.name.capitalize()} ({d.label}) - camera at {d.angle} degrees, "
        f"facing the {d.position}"
        for i, d in enumerate(directions, start=1)
    )


def build_prompts(
    tile_type: Optional[str] = None,
    biome: Optional[str] = None,
    directions: Sequence[Direction] = DIRECTIONS,
) -> VisionPrompts:
    """
    Builds the system and user instructions for one tile.

    The output depends only on the arguments, so identical inputs always give
    byte-identical prompts.
    """
    system = SYSTEM_PROMPT_TEMPLATE.format(
        type_list=_type_list(), schema=_response_schema(directions)
    ).strip()
    user = USER_PROMPT_TEMPLATE.format(
        tile_type=tile_type or "unknown",
        biome=biome or "unknown",
        image_list=_image_list(directions),
    ).strip()
    log.debug("Built prompts (system: %d chars, user: %d chars).", len(system), len(user))
    return VisionPrompts(system=system, user=user)
