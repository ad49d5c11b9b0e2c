# --- hexvis_lib/rendering/multi_angle.py ---
import logging
import math
from typing import Any, Dict, List, Union

import numpy as np

from hexvis_lib.directions import DIRECTIONS
from hexvis_lib.schema import RenderOptions
from .camera import Camera, camera_pose_scope
from .rasterizer import RenderTarget
from .scene import Scene

log = logging.getLogger("hexvis.render")

# Camera height as a fraction of its horizontal distance from the tile.
ELEVATION_RATIO = 0.6

OptionsLike = Union[RenderOptions, Dict[str, Any], None]


def _resolve_options(options: OptionsLike) -> RenderOptions:
    if isinstance(options, RenderOptions):
        return options
    return RenderOptions().merged(options)


def camera_position_for_angle(angle: float, distance: float) -> tuple:
    """Where the camera sits to look at the edge at `angle` degrees."""
    rad = math.radians(angle)
    return (distance * math.cos(rad), distance * ELEVATION_RATIO, distance * math.sin(rad))


def _prepare_target(target: RenderTarget, opts: RenderOptions) -> None:
    target.set_size(opts.width, opts.height)
    target.set_clear_color(opts.background_color)


def _capture(scene: Scene, camera: Camera, target: RenderTarget, angle: float, opts: RenderOptions) -> str:
    camera.position = np.array(camera_position_for_angle(angle, opts.distance), dtype=np.float64)
    camera.fov = float(opts.fov)
    camera.look_at((0.0, 0.0, 0.0))
    target.render(scene, camera)
    return target.to_data_url()


def render_tile_from_multiple_angles(
    scene: Scene,
    camera: Camera,
    target: RenderTarget,
    options: OptionsLike = None,
) -> List[str]:
    """
    Renders the tile once per hex edge, in canonical direction order.

    The scene, camera and target are shared mutable objects; callers running
    several captures at once must serialize access to the same triple.

    Args:
        scene: The tile to draw, centred on the origin.
        camera: Borrowed for the duration of the call; its pose is restored.
        target: Resized and recoloured according to the options.
        options: A RenderOptions or a dict of overrides for the defaults.

    Returns:
        Six PNG data URLs, image i showing DIRECTIONS[i].
    """
    opts = _resolve_options(options)
    _prepare_target(target, opts)

    images = []
    with camera_pose_scope(camera):
        for direction in DIRECTIONS:
            log.debug("Capturing %s view at %d degrees.", direction.name, direction.angle)
            images.append(_capture(scene, camera, target, direction.angle, opts))

    log.info("Rendered %d tile views at %dx%d.", len(images), opts.width, opts.height)
    return images


def render_tile_from_angle(
    scene: Scene,
    camera: Camera,
    target: RenderTarget,
    angle: float,
    options: OptionsLike = None,
) -> str:
    """Renders one view from an arbitrary angle in degrees; the camera pose is restored."""
    opts = _resolve_options(options)
    _prepare_target(target, opts)
    with camera_pose_scope(camera):
        return _capture(scene, camera, target, angle, opts)
