# --- hexvis_lib/rendering/scene.py ---
import logging
import math
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

import numpy as np
import trimesh

from hexvis_lib.directions import DIRECTIONS

log = logging.getLogger("hexvis.render")

# BGR, to match OpenCV's channel order in the rasterizer.
CONNECTION_COLORS = {
    "grass": (60, 160, 70),
    "water": (200, 120, 60),
    "coast": (140, 200, 220),
    "road": (110, 160, 190),
}
BARE_TOP_COLOR = (80, 100, 120)
SIDE_COLOR = (60, 75, 90)


@dataclass
class Mesh:
    """A triangle mesh with one BGR colour per face."""

    vertices: np.ndarray  # (N, 3) float
    faces: np.ndarray  # (M, 3) int
    face_colors: np.ndarray  # (M, 3) uint8
    name: str = "mesh"

    def __post_init__(self):
        self.vertices = np.asarray(self.vertices, dtype=np.float64).reshape(-1, 3)
        self.faces = np.asarray(self.faces, dtype=np.int64).reshape(-1, 3)
        self.face_colors = np.asarray(self.face_colors, dtype=np.uint8).reshape(-1, 3)
        if len(self.face_colors) != len(self.faces):
            raise ValueError(
                f"Mesh '{self.name}' has {len(self.faces)} faces but "
                f"{len(self.face_colors)} face colours."
            )

    def triangles(self) -> np.ndarray:
        """World-space triangle corners, shape (M, 3, 3)."""
        return self.vertices[self.faces]


@dataclass
class Scene:
    """The set of meshes a RenderTarget draws."""

    meshes: List[Mesh] = field(default_factory=list)

    def add(self, mesh: Mesh) -> None:
        self.meshes.append(mesh)

    def triangle_count(self) -> int:
        return sum(len(m.faces) for m in self.meshes)


def build_hex_tile(
    connections: Optional[Mapping[str, str]] = None,
    radius: float = 2.0,
    height: float = 0.4,
) -> Scene:
    """
    Builds a hexagonal prism centred on the origin whose top surface is split
    into one wedge per edge, each coloured by that edge's connection type.

    Edge midpoints sit on the canonical direction angles, so edge `d` spans the
    corners at d.angle - 30 and d.angle + 30 degrees.
    """
    connections = connections or {}
    top_y, bottom_y = height / 2.0, -height / 2.0

    vertices = [(0.0, top_y, 0.0)]
    for k in range(6):
        a = math.radians(60 * k - 30)
        vertices.append((radius * math.cos(a), top_y, radius * math.sin(a)))
    for k in range(6):
        a = math.radians(60 * k - 30)
        vertices.append((radius * math.cos(a), bottom_y, radius * math.sin(a)))

    faces, colors = [], []
    for k, direction in enumerate(DIRECTIONS):
        top_a, top_b = 1 + k, 1 + (k + 1) % 6
        bot_a, bot_b = 7 + k, 7 + (k + 1) % 6
        conn_type = connections.get(direction.name)
        faces.append((0, top_a, top_b))
        colors.append(CONNECTION_COLORS.get(conn_type, BARE_TOP_COLOR))
        faces.append((bot_a, bot_b, top_b))
        faces.append((bot_a, top_b, top_a))
        colors.extend([SIDE_COLOR, SIDE_COLOR])

    scene = Scene()
    scene.add(Mesh(vertices, faces, colors, name="hex_tile"))
    log.debug("Built procedural hex tile with connections: %s", dict(connections))
    return scene


def load_tile_scene(path: str, target_radius: Optional[float] = None) -> Scene:
    """
    Loads a tile model through trimesh and centres it on the origin.

    Args:
        path: Any mesh format trimesh understands (OBJ+MTL, GLB, PLY, ...).
        target_radius: If given, uniformly scales the model so its horizontal
            extent has this radius.

    Returns:
        A Scene holding the model as a single coloured mesh.
    """
    loaded = trimesh.load(path, force="mesh")
    if isinstance(loaded, trimesh.Scene):
        meshes = [g for g in loaded.geometry.values() if isinstance(g, trimesh.Trimesh)]
        if not meshes:
            raise ValueError(f"Scene has no mesh geometry: {path}")
        loaded = trimesh.util.concatenate(meshes)
    if not isinstance(loaded, trimesh.Trimesh):
        raise ValueError(f"Unsupported mesh type from {path}")

    mesh = loaded.copy()
    mesh.apply_translation(-mesh.bounding_box.centroid)
    if target_radius:
        horizontal = float(np.max(np.linalg.norm(mesh.vertices[:, [0, 2]], axis=1)))
        if horizontal > 0:
            mesh.apply_scale(target_radius / horizontal)

    visual = mesh.visual
    if getattr(visual, "kind", None) == "texture":
        visual = visual.to_color()
    rgba = np.asarray(visual.face_colors)
    if len(rgba) != len(mesh.faces):
        log.warning("Model '%s' has no usable face colours; using grey.", path)
        rgba = np.tile(np.array([102, 102, 102, 255], dtype=np.uint8), (len(mesh.faces), 1))
    bgr = rgba[:, [2, 1, 0]]

    log.info("Loaded tile model '%s': %d faces.", path, len(mesh.faces))
    scene = Scene()
    scene.add(Mesh(mesh.vertices, mesh.faces, bgr, name=str(path)))
    return scene
