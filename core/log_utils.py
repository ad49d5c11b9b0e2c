#!/usr/bin/env python3
"""
core/log_utils.py: Logging setup shared by the hexvis CLI and server.
This module contains:
- setup_logging: Installs console/file handlers and per-topic DEBUG levels.
- RichLogFormatter: A custom logging formatter for colorful console output.
- format_text_for_log: Squeezes long prompts and responses onto one line.
"""

import logging

PROJECT_TOPICS = {
    "hexvis": {"main", "render", "prompt", "llm", "parse", "api", "config"},
}

# Libraries whose INFO output drowns the project's own topics.
NOISY_LOGGERS = ("werkzeug", "urllib3", "PIL", "trimesh", "waitress")


def setup_logging(
    project_name: str,
    level=logging.INFO,
    color_logs=False,
    debug_topics=None,
    log_file: str = None,
):
    """Configures logging for the application."""
    root_logger = logging.getLogger()
    if root_logger.hasHandlers():
        for h in root_logger.handlers[:]:
            root_logger.removeHandler(h)
            h.close()

    # Console Handler (always enabled)
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(RichLogFormatter(use_color=color_logs))
    root_logger.addHandler(console_handler)
    root_logger.setLevel(level)

    # File Handler (optional)
    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, mode="w")
            file_handler.setFormatter(RichLogFormatter(use_color=False))
            root_logger.addHandler(file_handler)
            logging.getLogger(project_name).info("Logging to file: %s", log_file)
        except IOError as e:
            logging.getLogger(project_name).error(
                "Could not open log file %s: %s", log_file, e
            )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if debug_topics:
        user_topics = [t.strip() for t in debug_topics.split(",")]
        valid_topics = PROJECT_TOPICS.get(project_name, set())
        if "all" in user_topics:
            topics_to_set = valid_topics
        else:
            topics_to_set = {
                full for u in user_topics for full in valid_topics if full.startswith(u)
            }
        for topic in topics_to_set:
            logging.getLogger(f"{project_name}.{topic}").setLevel(logging.DEBUG)


def format_text_for_log(text: str) -> str:
    """Formats a long text block into a concise, single-line summary for logging."""
    single_line_text = str(text).replace("\n", " ").strip()
    if len(single_line_text) > 240:
        return f'"{single_line_text[:115]}...{single_line_text[-115:]}"'
    return f'"{single_line_text}"'


# --- CUSTOM LOGGING FORMATTER ---
class RichLogFormatter(logging.Formatter):
    """A custom logging formatter for aligned, optionally colored console output.

    Every line of a multi-line message gets the level/topic prefix, so prompt
    dumps stay readable when interleaved with other topics.
    Args:
        use_color (bool): If True, ANSI color codes are used. Defaults to False.
    """

    _ANSI = {
        logging.DEBUG: "\033[38;5;252m",  # Light Grey
        logging.INFO: "\033[38;5;111m",  # Pastel Blue
        logging.WARNING: "\033[38;5;229m",  # Pale Yellow
        logging.ERROR: "\033[38;5;210m",  # Soft Red
        logging.CRITICAL: "\033[38;5;217m",  # Light Magenta
    }

    def __init__(self, use_color=False):
        super().__init__()
        self.use_color = use_color
        self.BOLD = "\033[1m" if use_color else ""
        self.RESET = "\033[0m" if use_color else ""

    def format(self, record):
        color = self._ANSI.get(record.levelno, "") if self.use_color else ""
        level_name = record.levelname[:5]

        # "hexvis.render" -> "render"
        name_parts = record.name.split(".")
        topic = name_parts[1][:6] if len(name_parts) > 1 else record.name[:6]

        prefix = f"{color}{level_name:<5}{self.RESET}:{self.BOLD}{topic:<6}{self.RESET}: "
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return "\n".join(f"{prefix}{line}" for line in message.split("\n"))
