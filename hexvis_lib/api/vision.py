# hexvis_lib/api/vision.py
import logging

from flask import Blueprint, current_app, jsonify, request

from hexvis_lib.directions import DIRECTIONS
from hexvis_lib.errors import (
    ParseError,
    TimeoutError,
    TransportError,
    ValidationError,
    VisionError,
)
from hexvis_lib.llm import CancelToken
from hexvis_lib.pipeline import analyze_rendered_views

bp = Blueprint("vision", __name__)
log = logging.getLogger("hexvis.api")

# Client-input faults are 4xx; everything upstream of us is a gateway fault.
ERROR_STATUS = {
    ValidationError: 400,
    TimeoutError: 504,
    TransportError: 502,
    ParseError: 502,
}


def _error_response(e: VisionError):
    status = ERROR_STATUS.get(type(e), 500)
    payload = {"success": False, "error": str(e), "type": type(e).__name__}
    if isinstance(e, TransportError) and e.status_code is not None:
        payload["upstreamStatus"] = e.status_code
    return jsonify(payload), status


@bp.route("/directions", methods=["GET"])
def get_directions():
    """Returns the canonical direction table, in image order."""
    return jsonify(
        [{"name": d.name, "angle": d.angle, "label": d.label} for d in DIRECTIONS]
    )


@bp.route("/analyze-connections", methods=["POST"])
def analyze_connections():
    """
    Analyzes six pre-rendered edge views of one tile.

    Body: {images: [6 base64 strings or data URLs], localUrl?, model?,
    tileType?, biome?}. localUrl and model default to the app configuration.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"success": False, "error": "Missing JSON request body"}), 400

    images = data.get("images")
    if not isinstance(images, list):
        return jsonify({"success": False, "error": "'images' must be a list of strings"}), 400

    base_url = data.get("localUrl") or current_app.config["OLLAMA_URL"]
    model = data.get("model") or current_app.config["VISION_MODEL"]
    log.debug(
        "Connection analysis requested: %d images, model=%s, type=%s, biome=%s",
        len(images),
        model,
        data.get("tileType"),
        data.get("biome"),
    )

    try:
        connections = analyze_rendered_views(
            images,
            base_url,
            model,
            tile_type=data.get("tileType"),
            biome=data.get("biome"),
            token=CancelToken(current_app.config["VISION_TIMEOUT_S"]),
        )
    except VisionError as e:
        log.warning("Connection analysis failed (%s): %s", type(e).__name__, e)
        return _error_response(e)

    return jsonify({"success": True, "connections": connections.to_dict()})
