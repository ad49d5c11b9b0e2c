#!/usr/bin/env python3
"""hexvis: Renders a hex tile from its six edges and asks a vision model how each edge connects."""

import argparse
import base64
import configparser
import logging
import os
import sys

from core.log_utils import setup_logging
from hexvis_lib import schema
from hexvis_lib.config import ConfigService
from hexvis_lib.directions import DIRECTIONS
from hexvis_lib.errors import VisionError
from hexvis_lib.llm import CancelToken
from hexvis_lib.pipeline import analyze_rendered_views
from hexvis_lib.rendering.camera import Camera
from hexvis_lib.rendering.multi_angle import render_tile_from_multiple_angles
from hexvis_lib.rendering.rasterizer import RenderTarget, extract_base64_from_data_url
from hexvis_lib.rendering.scene import build_hex_tile, load_tile_scene


def parse_demo_connections(edges: str) -> dict:
    """Parses 'east=road,west=water' into a connection dict."""
    connections = {}
    for part in filter(None, (p.strip() for p in edges.split(","))):
        direction, _, conn_type = part.partition("=")
        connections[direction.strip()] = conn_type.strip()
    return schema.TileConnections(connections).to_dict()


def save_renders(images: list, directory: str, base_name: str):
    """Writes each edge view to <directory>/<base_name>_<direction>.png."""
    log = logging.getLogger("hexvis.main")
    os.makedirs(directory, exist_ok=True)
    for direction, image in zip(DIRECTIONS, images):
        path = os.path.join(directory, f"{base_name}_{direction.name}.png")
        with open(path, "wb") as f:
            f.write(base64.b64decode(extract_base64_from_data_url(image)))
        log.info("Saved %s view to '%s'", direction.name, path)


def get_cli_args():
    """Configures and parses command-line arguments."""
    p = argparse.ArgumentParser(
        description="Detects hex tile edge connections with a vision LLM."
    )
    src = p.add_mutually_exclusive_group(required=True)
    src.add_argument("-i", "--input", help="Path to the tile model (OBJ, GLB, PLY, ...).")
    src.add_argument(
        "--demo-tile",
        metavar="EDGES",
        help="Render a procedural tile instead, e.g. 'east=road,west=road,northeast=water'.",
    )
    p.add_argument("-o", "--output", required=True, help="Base name for output files.")
    p.add_argument("--tile-type", help="Tile type hint for the model (e.g. road, coast).")
    p.add_argument("--biome", help="Biome hint for the model.")
    p.add_argument(
        "--render-only",
        action="store_true",
        help="Render the six views and stop without querying the model.",
    )
    p.add_argument(
        "--fit-radius",
        type=float,
        help="Scale the loaded model so its horizontal radius matches this value.",
    )

    g_render = p.add_argument_group("Rendering")
    g_render.add_argument("--width", type=int, help="Image width in pixels.")
    g_render.add_argument("--height", type=int, help="Image height in pixels.")
    g_render.add_argument("--fov", type=float, help="Camera field of view in degrees.")
    g_render.add_argument("--distance", type=float, help="Camera distance from tile centre.")
    g_render.add_argument("--background", help="Background colour as #RRGGBB.")

    g_llm = p.add_argument_group("Vision LLM")
    g_llm.add_argument("-M", "--llm-model", help="The vision model to use.")
    g_llm.add_argument("-U", "--llm-url", help="Base URL of the OpenAI-compatible server.")
    g_llm.add_argument(
        "--timeout", type=float, default=300, help="Request timeout in seconds (default: 300)."
    )
    g_llm.add_argument("--config", metavar="FILE", help="Use this config file instead of ~/.hexvis/hexvis.cfg.")

    g_log = p.add_argument_group("Logging & Output")
    g_log.add_argument("-v", "--verbose", action="store_true", help="Enable INFO logging.")
    g_log.add_argument(
        "--save-renders", metavar="DIR", help="Save the six rendered views to a directory."
    )
    g_log.add_argument("--color-logs", action="store_true", help="Enable colored logging.")
    g_log.add_argument("--log-file", metavar="FILE", help="Redirect log output to a file.")
    g_log.add_argument(
        "-d",
        "--debug",
        nargs="?",
        const="all",
        dest="debug_topics",
        metavar="TOPICS",
        help="Enable DEBUG logging (all,main,render,prompt,llm,parse,config).",
    )
    return p.parse_args()


def main():
    """Main entry point for the hexvis CLI."""
    args = get_cli_args()
    log_level = logging.INFO if args.verbose else logging.WARNING
    if args.debug_topics:
        log_level = logging.DEBUG

    setup_logging("hexvis", log_level, args.color_logs, args.debug_topics, args.log_file)
    log = logging.getLogger("hexvis.main")
    log.info("--- HEXVIS CLI Initialized ---")
    log.debug("Arguments received: %s", vars(args))

    config = ConfigService(args.config) if args.config else ConfigService()
    try:
        settings = config.get_settings()["Ollama"]
        render_options = config.render_options().merged(
            {
                "width": args.width,
                "height": args.height,
                "fov": args.fov,
                "distance": args.distance,
                "background_color": int(args.background.lstrip("#"), 16) if args.background else None,
            }
        )
        if args.input:
            scene = load_tile_scene(args.input, target_radius=args.fit_radius)
        else:
            scene = build_hex_tile(parse_demo_connections(args.demo_tile))
    except (ValueError, OSError, configparser.Error) as e:
        log.critical("Could not prepare the tile for rendering: %s", e)
        sys.exit(1)

    camera = Camera(fov=render_options.fov)
    target = RenderTarget(render_options.width, render_options.height)
    images = render_tile_from_multiple_angles(scene, camera, target, render_options)

    if args.save_renders:
        save_renders(images, args.save_renders, os.path.basename(args.output))
    if args.render_only:
        log.info("--- Rendering complete. ---")
        return

    try:
        connections = analyze_rendered_views(
            images,
            args.llm_url or settings["url"],
            args.llm_model or settings["vision_model"],
            tile_type=args.tile_type,
            biome=args.biome,
            token=CancelToken(args.timeout),
        )
    except VisionError as e:
        log.critical("Connection analysis failed (%s): %s", type(e).__name__, e)
        sys.exit(1)

    output_path = f"{args.output}.json"
    schema.save_json(connections, output_path)
    log.info("Saved connections to '%s'", output_path)
    for direction in DIRECTIONS:
        print(f"{direction.label:>2} {direction.name:<10} {connections.get(direction.name, '-')}")


if __name__ == "__main__":
    main()
