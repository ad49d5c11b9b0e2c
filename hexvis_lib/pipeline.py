# --- hexvis_lib/pipeline.py ---
import logging
from typing import Optional, Sequence

import requests

from hexvis_lib.llm import VISION_TEMPERATURE, CancelToken, query_vision_llm
from hexvis_lib.prompts import build_prompts
from hexvis_lib.rendering.camera import Camera
from hexvis_lib.rendering.multi_angle import OptionsLike, render_tile_from_multiple_angles
from hexvis_lib.rendering.rasterizer import RenderTarget
from hexvis_lib.rendering.scene import Scene
from hexvis_lib.sanitizer import parse_connections
from hexvis_lib.schema import TileConnections

log = logging.getLogger("hexvis.main")


def analyze_rendered_views(
    images: Sequence[str],
    base_url: str,
    model: str,
    tile_type: Optional[str] = None,
    biome: Optional[str] = None,
    temperature: float = VISION_TEMPERATURE,
    token: Optional[CancelToken] = None,
    session: Optional[requests.Session] = None,
) -> TileConnections:
    """Prompts the model with six already-rendered edge views and parses its answer."""
    prompts = build_prompts(tile_type, biome)
    raw_response = query_vision_llm(
        images,
        base_url,
        model,
        prompts.system,
        prompts.user,
        temperature=temperature,
        token=token,
        session=session,
    )
    return parse_connections(raw_response)


def analyze_tile_connections(
    scene: Scene,
    camera: Camera,
    target: RenderTarget,
    base_url: str,
    model: str,
    tile_type: Optional[str] = None,
    biome: Optional[str] = None,
    render_options: OptionsLike = None,
    temperature: float = VISION_TEMPERATURE,
    token: Optional[CancelToken] = None,
    session: Optional[requests.Session] = None,
) -> TileConnections:
    """
    Runs the full edge connection pipeline for one tile.

    Renders the six edge views, builds the prompts, queries the vision model
    and validates its answer. Errors from any stage propagate unchanged as
    VisionError subclasses.
    """
    log.info("Analyzing tile connections (type=%s, biome=%s)...", tile_type, biome)
    images = render_tile_from_multiple_angles(scene, camera, target, render_options)
    connections = analyze_rendered_views(
        images,
        base_url,
        model,
        tile_type=tile_type,
        biome=biome,
        temperature=temperature,
        token=token,
        session=session,
    )
    log.info("Tile analysis complete: %d connected edges.", len(connections))
    return connections
