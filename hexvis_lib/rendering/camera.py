# --- hexvis_lib/rendering/camera.py ---
import logging
import math
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Sequence

import numpy as np

log = logging.getLogger("hexvis.render")

EPS = 1e-9
WORLD_UP = np.array([0.0, 1.0, 0.0])


def _normalize(v: np.ndarray) -> np.ndarray:
    norm = float(np.linalg.norm(v))
    if norm < EPS:
        raise ValueError("Cannot normalize a zero-length vector.")
    return v / norm


@dataclass(frozen=True)
class CameraPose:
    """A snapshot of everything the renderer changes on a camera."""

    position: tuple
    direction: tuple
    fov: float


class Camera:
    """
    A perspective camera looking along a unit direction with +Y as world up.

    Mirrors the subset of a scene-graph camera the tile renderer needs:
    position, look direction and vertical field of view.
    """

    def __init__(
        self,
        position: Sequence[float] = (0.0, 5.0, 8.0),
        fov: float = 45.0,
        aspect: float = 1.0,
        near: float = 0.1,
    ):
        self.position = np.asarray(position, dtype=np.float64)
        self.direction = _normalize(-self.position)
        self.fov = float(fov)
        self.aspect = float(aspect)
        self.near = float(near)

    def look_at(self, target: Sequence[float]) -> None:
        """Turns the camera towards a world-space point."""
        self.direction = _normalize(np.asarray(target, dtype=np.float64) - self.position)

    def pose(self) -> CameraPose:
        return CameraPose(
            position=tuple(float(c) for c in self.position),
            direction=tuple(float(c) for c in self.direction),
            fov=self.fov,
        )

    def restore(self, pose: CameraPose) -> None:
        self.position = np.array(pose.position, dtype=np.float64)
        self.direction = np.array(pose.direction, dtype=np.float64)
        self.fov = pose.fov

    def view_matrix(self) -> np.ndarray:
        """
        World-to-view transform. The view basis has u right, v up and n
        pointing back towards the camera, so visible points have z < 0.
        """
        n = -self.direction
        u = np.cross(WORLD_UP, n)
        if float(np.linalg.norm(u)) < EPS:
            # Looking straight up or down; any horizontal right vector works.
            u = np.array([1.0, 0.0, 0.0])
        u = _normalize(u)
        v = np.cross(n, u)

        out = np.eye(4, dtype=np.float64)
        out[0, 0:3] = u
        out[1, 0:3] = v
        out[2, 0:3] = n
        out[0, 3] = -float(np.dot(u, self.position))
        out[1, 3] = -float(np.dot(v, self.position))
        out[2, 3] = -float(np.dot(n, self.position))
        return out

    def focal_length(self, height_px: int) -> float:
        """Pixels per unit of normalized image-plane height for the current fov."""
        return (height_px / 2.0) / math.tan(math.radians(self.fov) / 2.0)


@contextmanager
def camera_pose_scope(camera: Camera) -> Iterator[Camera]:
    """
    Lends the camera to a block of renders and puts it back afterwards.

    The pose taken on entry is restored on exit, including when the block
    raises.
    """
    saved = camera.pose()
    log.debug("Camera pose saved: position=%s", saved.position)
    try:
        yield camera
    finally:
        camera.restore(saved)
        log.debug("Camera pose restored: position=%s", saved.position)
