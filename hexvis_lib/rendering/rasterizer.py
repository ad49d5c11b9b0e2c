# --- hexvis_lib/rendering/rasterizer.py ---
import base64
import logging
from typing import Tuple, Union

import cv2
import numpy as np

from .camera import Camera
from .scene import Scene

log = logging.getLogger("hexvis.render")

PNG_DATA_URL_PREFIX = "data:image/png;base64,"

# Sub-pixel precision for cv2.fillConvexPoly (coordinates are scaled by 2**4).
_SHIFT = 4
_LIGHT_DIR = np.array([0.4, 1.0, 0.3]) / np.linalg.norm([0.4, 1.0, 0.3])
_AMBIENT = 0.35


def color_to_bgr(color: Union[int, str]) -> Tuple[int, int, int]:
    """Converts 0xRRGGBB or '#RRGGBB' to an OpenCV BGR tuple."""
    if isinstance(color, str):
        color = int(color.lstrip("#"), 16)
    color = int(color)
    return (color & 0xFF, (color >> 8) & 0xFF, (color >> 16) & 0xFF)


def extract_base64_from_data_url(data_url: str) -> str:
    """Strips a 'data:...;base64,' prefix; other strings are returned as-is."""
    marker = data_url.find("base64,")
    if marker == -1:
        return data_url
    return data_url[marker + len("base64,"):]


class RenderTarget:
    """
    A software frame buffer that draws a Scene as seen by a Camera.

    Triangles are shaded with a fixed directional light and painted back to
    front, which is enough for the convex, mostly-flat geometry of map tiles.
    """

    def __init__(self, width: int = 512, height: int = 512, clear_color: Union[int, str] = 0):
        self.width = 0
        self.height = 0
        self.clear_color = color_to_bgr(clear_color)
        self.set_size(width, height)

    def set_size(self, width: int, height: int) -> None:
        width, height = int(width), int(height)
        if width <= 0 or height <= 0:
            raise ValueError(f"Render target size must be positive, got {width}x{height}")
        self.width, self.height = width, height
        self.frame = self._cleared_frame()

    def set_clear_color(self, color: Union[int, str]) -> None:
        self.clear_color = color_to_bgr(color)

    def _cleared_frame(self) -> np.ndarray:
        frame = np.empty((self.height, self.width, 3), dtype=np.uint8)
        frame[:] = self.clear_color
        return frame

    def render(self, scene: Scene, camera: Camera) -> np.ndarray:
        """Draws the scene into a fresh frame and returns it (BGR, uint8)."""
        frame = self._cleared_frame()
        if not scene.meshes:
            self.frame = frame
            return frame

        tris = np.concatenate([m.triangles() for m in scene.meshes], axis=0)
        colors = np.concatenate([m.face_colors for m in scene.meshes], axis=0)

        # Lambert term from world-space normals, lit from both sides.
        normals = np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0])
        lengths = np.linalg.norm(normals, axis=1)
        lengths[lengths == 0] = 1.0
        lambert = np.abs((normals / lengths[:, None]) @ _LIGHT_DIR)
        shade = _AMBIENT + (1.0 - _AMBIENT) * lambert

        view = camera.view_matrix()
        homo = np.concatenate([tris, np.ones(tris.shape[:2] + (1,))], axis=2)
        view_pts = homo @ view.T
        z = view_pts[..., 2]

        # Drop anything touching the near plane instead of clipping it.
        visible = np.all(z < -camera.near, axis=1)
        depth = z.mean(axis=1)
        order = [i for i in np.argsort(depth) if visible[i]]

        focal = camera.focal_length(self.height)
        cx, cy = self.width / 2.0, self.height / 2.0
        with np.errstate(divide="ignore", invalid="ignore"):
            sx = cx + focal * view_pts[..., 0] / -z
            sy = cy - focal * view_pts[..., 1] / -z

        scale = 1 << _SHIFT
        for i in order:
            pts = np.stack([sx[i], sy[i]], axis=1)
            pts = np.round(pts * scale).astype(np.int32)
            color = tuple(int(c) for c in np.clip(colors[i] * shade[i], 0, 255))
            cv2.fillConvexPoly(frame, pts, color, lineType=cv2.LINE_AA, shift=_SHIFT)

        log.debug(
            "Rendered %d/%d triangles at %dx%d.", len(order), len(tris), self.width, self.height
        )
        self.frame = frame
        return frame

    def to_png_bytes(self) -> bytes:
        ok, buffer = cv2.imencode(".png", self.frame)
        if not ok:
            raise RuntimeError("OpenCV failed to encode the frame as PNG.")
        return buffer.tobytes()

    def to_data_url(self) -> str:
        """The current frame as a 'data:image/png;base64,...' URL."""
        return PNG_DATA_URL_PREFIX + base64.b64encode(self.to_png_bytes()).decode("utf-8")
