#!/usr/bin/env python3
"""hexvis_server: HTTP front end for the edge connection vision pipeline."""

import logging
import sys
import argparse

from hexvis_lib.app import create_app
from core.log_utils import setup_logging


def main():
    """Initializes and runs the hexvis Flask application."""
    log = logging.getLogger("hexvis")

    # --- Argument Parsing ---
    parser = argparse.ArgumentParser(description="hexvis vision analysis server.")
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    parser.add_argument("--port", type=int, default=5000, help="Port to listen on.")
    g_ollama = parser.add_argument_group("Vision LLM Configuration")
    g_ollama.add_argument(
        "--ollama-url",
        type=str,
        default=None,
        help="OpenAI-compatible server URL. Default: [Ollama] url from hexvis.cfg",
    )
    g_ollama.add_argument(
        "--vision-model",
        type=str,
        default=None,
        help="Vision model. Default: [Ollama] vision_model from hexvis.cfg",
    )
    g_ollama.add_argument(
        "--config", metavar="FILE", default=None, help="Path to hexvis.cfg."
    )

    g_log = parser.add_argument_group("Logging & Output")
    g_log.add_argument(
        "-v", "--verbose", action="store_true", help="Enable INFO logging for progress."
    )
    g_log.add_argument(
        "--color-logs", action="store_true", help="Enable colored logging output."
    )
    g_log.add_argument(
        "--log-file",
        metavar="FILE",
        default=None,
        help="Redirect all logging output to a specified file.",
    )
    g_log.add_argument(
        "-d",
        "--debug",
        dest="debug_topics",
        metavar="TOPICS",
        help="Enable DEBUG logging (all,api,llm,parse,prompt,config).",
    )
    args = parser.parse_args()

    # --- Logging Setup ---
    setup_logging(
        project_name="hexvis",
        level=logging.INFO if args.verbose else logging.WARNING,
        color_logs=args.color_logs,
        debug_topics=args.debug_topics,
        log_file=args.log_file,
    )

    config_overrides = {
        key: value
        for key, value in {
            "OLLAMA_URL": args.ollama_url,
            "VISION_MODEL": args.vision_model,
            "CONFIG_PATH": args.config,
        }.items()
        if value is not None
    }

    # --- App Creation ---
    try:
        app = create_app(config_overrides)
        log.info("Using vision server at: %s", app.config["OLLAMA_URL"])
    except Exception as e:
        log.critical("Failed to create the hexvis application: %s", e, exc_info=True)
        sys.exit(1)

    # --- Run Server ---
    try:
        log.info("Starting hexvis server at http://%s:%d...", args.host, args.port)
        from waitress import serve

        # Vision requests may legitimately take the full five-minute budget.
        serve(app, host=args.host, port=args.port, channel_timeout=600)
    except KeyboardInterrupt:
        log.info("\nServer stopped by user. Exiting.")
        sys.exit(0)
    except Exception as e:
        log.critical("The Flask server failed to run: %s", e, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
