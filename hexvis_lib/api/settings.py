from flask import Blueprint, request, jsonify, current_app

from hexvis_lib.config import validate_settings

bp = Blueprint("settings", __name__)


@bp.route("/", methods=["GET"])
def get_settings():
    """Gets the [Ollama] and [Render] settings from the config file."""
    settings = current_app.config_service.get_settings()
    return jsonify(settings)


@bp.route("/", methods=["POST"])
def save_settings():
    """
    Validates and saves settings to the config file.

    [Render] values must make a valid RenderOptions once merged over the
    current ones; a saved endpoint or model also becomes the server default
    for later analysis requests.
    """
    data = request.get_json(silent=True)
    if not data or not isinstance(data, dict):
        return jsonify({"error": "Missing request body"}), 400

    service = current_app.config_service
    current = service.get_settings()
    try:
        validate_settings(data, current)
    except ValueError as e:
        return jsonify({"success": False, "error": str(e)}), 400

    updated = {s: {**current.get(s, {}), **data.get(s, {})} for s in {**current, **data}}
    try:
        service.save_settings(updated)
    except Exception as e:
        current_app.logger.error("Failed to save settings: %s", e, exc_info=True)
        return jsonify({"error": "Failed to save settings."}), 500

    ollama = data.get("Ollama", {})
    if ollama.get("url"):
        current_app.config["OLLAMA_URL"] = ollama["url"]
    if ollama.get("vision_model"):
        current_app.config["VISION_MODEL"] = ollama["vision_model"]
    return jsonify({"success": True, "message": "Settings saved."})
