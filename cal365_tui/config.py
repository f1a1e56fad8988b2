"""
Settings file handling.

Settings live in ``$XDG_CONFIG_HOME/365cal-tui/Settings.toml`` (falling back
to ``~/.config``). The event cache sits next to it.
"""

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

APP_DIR_NAME = "365cal-tui"
SETTINGS_FILE_NAME = "Settings.toml"
DB_FILE_NAME = "365cal.db"
LOG_FILE_NAME = "365cal-tui.log"

DEFAULT_SETTINGS_TEMPLATE = """\
# 365cal-tui settings
#
# Register an application in Microsoft Entra ID with the redirect URI
# http://localhost:8080 (mobile and desktop platform) and paste its
# Application (client) ID here.
client_id = ""

# Minutes between background refreshes of the events view
refresh_interval_minutes = 5

# Write a debug log to 365cal-tui.log in the working directory
enable_debug_log = false

# catppuccin, nord, gruvbox, or a key of [custom_themes]
theme = "catppuccin"

# nerd, unicode, ascii, or a key of [custom_fonts]
# font = "unicode"

enable_notifications = true
notification_minutes_before = 15

# [custom_themes.mine]
# background = "#1e1e2e"
# foreground = "#cdd6f4"
# yellow = "#f9e2af"
# blue = "#89b4fa"
# mauve = "#cba6f7"

# [symbols]
# selected = "> "

# [calendar_overrides]
# "Calendar name or id" = "#a6e3a1"
"""


class ConfigError(Exception):
    """The settings file is missing or invalid"""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


def config_dir() -> Path:
    """Directory holding settings and the event cache"""
    base = os.environ.get("XDG_CONFIG_HOME")
    root = Path(base) if base else Path.home() / ".config"
    return root / APP_DIR_NAME


def settings_path() -> Path:
    return config_dir() / SETTINGS_FILE_NAME


def db_path() -> Path:
    return config_dir() / DB_FILE_NAME


def ensure_config_dir() -> Path:
    """Create the config directory if it doesn't exist"""
    path = config_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


@dataclass
class Settings:
    client_id: str
    refresh_interval_minutes: int = 5
    enable_debug_log: bool = False
    theme: str = "catppuccin"
    font: Optional[str] = None
    use_nerd_font: Optional[bool] = None
    enable_notifications: bool = True
    notification_minutes_before: int = 15
    custom_themes: Dict[str, Dict[str, str]] = field(default_factory=dict)
    custom_fonts: Dict[str, Dict[str, str]] = field(default_factory=dict)
    symbols: Dict[str, str] = field(default_factory=dict)
    calendar_overrides: Dict[str, str] = field(default_factory=dict)

    def glyph_set_name(self) -> str:
        """Explicit font wins; the deprecated use_nerd_font picks unicode when false"""
        if self.font:
            return self.font
        if self.use_nerd_font is False:
            return "unicode"
        return "nerd"


# key -> (expected type, type name for messages)
_FIELD_TYPES = {
    'client_id': (str, "a string"),
    'refresh_interval_minutes': (int, "an integer"),
    'enable_debug_log': (bool, "a boolean"),
    'theme': (str, "a string"),
    'font': (str, "a string"),
    'use_nerd_font': (bool, "a boolean"),
    'enable_notifications': (bool, "a boolean"),
    'notification_minutes_before': (int, "an integer"),
    'custom_themes': (dict, "a table"),
    'custom_fonts': (dict, "a table"),
    'symbols': (dict, "a table"),
    'calendar_overrides': (dict, "a table"),
}


def write_default_settings(path: Path):
    """Write the commented default settings file"""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_SETTINGS_TEMPLATE, encoding="utf-8")
    logger.info(f"Default settings written to {path}")


def parse_settings(data: Dict, path: Optional[Path] = None) -> Settings:
    """Validate a decoded TOML document and build Settings"""
    values = {}
    for key, value in data.items():
        if key not in _FIELD_TYPES:
            logger.warning(f"Ignoring unknown setting {key!r}")
            continue
        expected, type_name = _FIELD_TYPES[key]
        # bool is an int subclass; don't accept true for a number
        if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
            raise ConfigError(f"Setting {key!r} must be {type_name}", path)
        values[key] = value

    client_id = values.get('client_id', '').strip()
    if not client_id:
        raise ConfigError("Setting 'client_id' is required", path)
    values['client_id'] = client_id

    for key in ('refresh_interval_minutes', 'notification_minutes_before'):
        if key in values and values[key] < 1:
            raise ConfigError(f"Setting {key!r} must be at least 1", path)

    return Settings(**values)


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load settings, writing the default file first when none exists.

    Raises ConfigError when the file is missing, unreadable or invalid.
    """
    path = path or settings_path()
    if not path.exists():
        try:
            write_default_settings(path)
        except OSError as e:
            raise ConfigError(f"Could not create default settings: {e}", path) from e
        raise ConfigError("A default settings file was created; set client_id in it", path)

    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        raise ConfigError(f"Could not read settings: {e}", path) from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML: {e}", path) from e

    return parse_settings(data, path)
