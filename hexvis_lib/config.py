import configparser
import logging
import os

from hexvis_lib.schema import RenderOptions

log = logging.getLogger("hexvis.config")

APP_DIR = os.path.join(os.path.expanduser("~"), ".hexvis")
DEFAULT_CONFIG_PATH = os.path.join(APP_DIR, "hexvis.cfg")

# Keys each section may hold. Sampling temperature is not a setting; requests
# always use VISION_TEMPERATURE from hexvis_lib.llm.
SETTINGS_KEYS = {
    "Ollama": ("url", "vision_model"),
    "Render": ("width", "height", "fov", "distance", "background_color"),
}


def parse_render_section(section: dict) -> RenderOptions:
    """
    Builds RenderOptions from a [Render] section of strings (or numbers).

    Raises:
        ValueError: A value is not a number/#RRGGBB colour, or is out of range.
    """
    background = section["background_color"]
    if isinstance(background, str):
        background = int(background.lstrip("#"), 16)
    return RenderOptions(
        width=int(section["width"]),
        height=int(section["height"]),
        fov=float(section["fov"]),
        distance=float(section["distance"]),
        background_color=int(background),
    )


def validate_settings(settings: dict, current: dict) -> None:
    """
    Checks a settings update against the known sections before it is saved.

    Args:
        settings: Sections to write, e.g. {"Render": {"width": "256"}}.
        current: The settings in effect; partial sections are checked merged
            over these.

    Raises:
        ValueError: Unknown section or key, empty endpoint or model, or
            render values RenderOptions rejects.
    """
    for section, values in settings.items():
        if section not in SETTINGS_KEYS:
            raise ValueError(f"Unknown settings section '{section}'")
        if not isinstance(values, dict):
            raise ValueError(f"Section '{section}' must be an object of key/value pairs")
        unknown = set(values) - set(SETTINGS_KEYS[section])
        if unknown:
            raise ValueError(f"Unknown keys in [{section}]: {', '.join(sorted(unknown))}")

    for key in ("url", "vision_model"):
        value = settings.get("Ollama", {}).get(key)
        if value is not None and not str(value).strip():
            raise ValueError(f"[Ollama] {key} must not be empty")

    if "Render" in settings:
        merged = {**current.get("Render", {}), **settings["Render"]}
        try:
            parse_render_section(merged)
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid [Render] settings: {e}") from e


class ConfigService:
    """Manages reading from and writing to the hexvis.cfg file."""

    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH):
        self.config_path = config_path
        defaults = RenderOptions()
        self.defaults = {
            "Ollama": {
                "url": "http://localhost:11434",
                "vision_model": "llava:latest",
            },
            "Render": {
                "width": str(defaults.width),
                "height": str(defaults.height),
                "fov": str(defaults.fov),
                "distance": str(defaults.distance),
                "background_color": f"#{defaults.background_color:06x}",
            },
        }

    def get_settings(self) -> dict:
        """Reads settings from the config file, applying defaults if missing."""
        config = configparser.ConfigParser()
        for section, values in self.defaults.items():
            config[section] = values

        if not config.read(self.config_path):
            log.info("Config file not found at %s. Creating with defaults.", self.config_path)
            self.save_settings(self._config_to_dict(config))

        return self._config_to_dict(config)

    def save_settings(self, settings: dict):
        """Saves a dictionary of settings to the config file."""
        config = configparser.ConfigParser()
        for section, values in settings.items():
            config[section] = {k: str(v) for k, v in values.items()}

        directory = os.path.dirname(self.config_path)
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.config_path, "w") as configfile:
                config.write(configfile)
            log.info("Settings successfully saved to %s", self.config_path)
        except IOError as e:
            log.error("Failed to write settings to %s: %s", self.config_path, e)

    def render_options(self) -> RenderOptions:
        """The [Render] section as RenderOptions."""
        return parse_render_section(self.get_settings()["Render"])

    def _config_to_dict(self, config: configparser.ConfigParser) -> dict:
        """Converts a ConfigParser object to a nested dictionary."""
        return {s: dict(config.items(s)) for s in config.sections()}
