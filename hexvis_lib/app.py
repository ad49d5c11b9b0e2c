import os
import logging

from flask import Flask, jsonify

from .config import DEFAULT_CONFIG_PATH, ConfigService
from .llm import VISION_TIMEOUT_S


def create_app(config_overrides=None):
    """
    Creates and configs an instance of the Flask application.
    """
    app = Flask(__name__)
    log = logging.getLogger("hexvis.api")

    # --- Configuration ---
    app.config.from_mapping(
        CONFIG_PATH=DEFAULT_CONFIG_PATH,
        OLLAMA_URL=None,
        VISION_MODEL=None,
        VISION_TIMEOUT_S=VISION_TIMEOUT_S,
    )
    if config_overrides:
        app.config.from_mapping(config_overrides)
        log.info("Applied runtime configuration overrides.")

    # Values not set explicitly fall back to the config file.
    app.config_service = ConfigService(app.config["CONFIG_PATH"])
    settings = app.config_service.get_settings()
    if not app.config["OLLAMA_URL"]:
        app.config["OLLAMA_URL"] = settings["Ollama"]["url"]
    if not app.config["VISION_MODEL"]:
        app.config["VISION_MODEL"] = settings["Ollama"]["vision_model"]
    log.debug(
        "Vision endpoint: %s (model %s), config at %s",
        app.config["OLLAMA_URL"],
        app.config["VISION_MODEL"],
        os.path.abspath(app.config["CONFIG_PATH"]),
    )

    # --- Register Blueprints (APIs) ---
    from .api import settings as settings_api, vision

    app.register_blueprint(vision.bp, url_prefix="/api/vision")
    app.register_blueprint(settings_api.bp, url_prefix="/api/settings")

    # --- Global Error Handler ---
    @app.errorhandler(Exception)
    def handle_exception(e):
        """Catches all unhandled exceptions, logs them, and returns JSON."""
        if hasattr(e, "code") and isinstance(e.code, int) and e.code < 500:
            return jsonify(success=False, error=str(e)), e.code
        log.exception("An unhandled exception occurred: %s", e)
        return jsonify(success=False, error="An internal server error occurred."), 500

    @app.route("/health")
    def health_check():
        return "OK"

    return app
