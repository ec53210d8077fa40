"""
Configuration management for transcoder.

Handles:
- XDG Base Directory compliance
- TOML/INI configuration file loading
- Config dataclass with all options
- Configuration merging (system -> user -> CLI)
- Validation before any file is touched
"""

import configparser
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from transcoder.errors import ConfigurationError

# Try TOML support (Python 3.11+ or tomli package)
try:
    import tomllib  # Python 3.11+

    TOML_AVAILABLE = True
except ImportError:
    try:
        import tomli as tomllib  # pip install tomli

        TOML_AVAILABLE = True
    except ImportError:
        TOML_AVAILABLE = False


DEFAULT_FLAGS = "-map 0 -c:v libx265 -preset ultrafast -x265-params crf=16 -c:a aac -strict -2 -b:a 256k"
DEFAULT_EXTENSIONS = [".mp4", ".mkv", ".flv"]

LOG_LEVELS = ["trace", "debug", "info", "success", "warning", "error", "critical"]

SYSTEM_CONFIG_DIR = Path("/etc/transcoder")


# -------------------- XDG DIRECTORIES --------------------


def get_xdg_config_home() -> Path:
    """Get XDG config home directory."""
    return Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))


def get_config_dir() -> Path:
    """Return the user configuration directory (not created)."""
    return get_xdg_config_home() / "transcoder"


# -------------------- CONFIGURATION DATACLASS --------------------


@dataclass
class Config:
    """All configuration options for transcoder."""

    # Encoding
    flags: str = DEFAULT_FLAGS
    extensions: List[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    ffmpeg: str = "ffmpeg"
    ffprobe: str = "ffprobe"

    # Progress
    interval: float = 5.0  # seconds between progress reports
    stderr: bool = False  # pass ffmpeg stderr through
    progress: bool = True  # progress bar on interactive terminals

    # Keep/replace policy
    keep_old: bool = False  # keep the original if the transcode is not smaller
    early_exit: bool = True  # stop encoding once output outgrows original (requires keep_old)

    # Notifications
    tg_bot_key: str = ""
    tg_chat_id: int = 0
    notify: bool = False  # desktop notifications

    # Logging
    log_level: str = "info"
    colors: bool = False

    @property
    def abort_above_original(self) -> bool:
        """Whether sessions should stop once output exceeds the original size."""
        return self.keep_old and self.early_exit

    def validate(self) -> None:
        """
        Check option values before processing starts.

        Raises:
            ConfigurationError: On the first invalid value found.
        """
        if self.log_level.lower() not in LOG_LEVELS:
            raise ConfigurationError(f"Unknown log level: {self.log_level} (expected one of {', '.join(LOG_LEVELS)})")
        if self.interval <= 0:
            raise ConfigurationError(f"Interval must be positive, got {self.interval}")
        if not self.extensions:
            raise ConfigurationError("At least one extension is required")
        for ext in self.extensions:
            if not ext.startswith(".") or len(ext) < 2:
                raise ConfigurationError(f"Extensions must start with a dot: {ext!r}")
        if not self.flags.strip():
            raise ConfigurationError("Encoder flags must not be empty")
        try:
            shlex.split(self.flags)
        except ValueError as e:
            raise ConfigurationError(f"Cannot parse encoder flags {self.flags!r}: {e}") from e
        if self.tg_bot_key and not self.tg_chat_id:
            raise ConfigurationError("--tg-chat-id is required with --tg-bot-key")


def parse_extensions(values: List[str]) -> List[str]:
    """Flatten repeated and comma separated extension arguments."""
    result: List[str] = []
    for value in values:
        result.extend(x.strip() for x in value.split(",") if x.strip())
    return result


# -------------------- CONFIG FILE LOADING --------------------


def _parse_ini_value(value: str):
    """Parse INI value: bool, int, float, list (comma-sep), or string."""
    v = value.strip()
    if not v:
        return ""
    if v.lower() in ("true", "yes", "on"):
        return True
    if v.lower() in ("false", "no", "off"):
        return False
    # Try int
    try:
        return int(v)
    except ValueError:
        pass
    # Try float
    try:
        return float(v)
    except ValueError:
        pass
    # Check for comma-separated list
    if "," in v:
        return [x.strip() for x in v.split(",") if x.strip()]
    return v


def _load_ini_config(path: Path) -> Dict[str, Any]:
    """Load INI file and convert to nested dict."""
    cp = configparser.ConfigParser()
    cp.read(path)
    result: Dict[str, Any] = {}
    for section in cp.sections():
        result[section] = {}
        for key, value in cp.items(section):
            result[section][key] = _parse_ini_value(value)
    return result


def load_file(path: Path) -> Dict[str, Any]:
    """
    Load one config file, TOML or INI depending on its suffix.

    Raises:
        ConfigurationError: The file exists but cannot be parsed.
    """
    try:
        if path.suffix == ".toml":
            if not TOML_AVAILABLE:
                raise ConfigurationError(f"Cannot read {path}: install tomli for TOML support")
            with path.open("rb") as f:
                return dict(tomllib.load(f))
        return _load_ini_config(path)
    except (OSError, ValueError, configparser.Error) as e:
        raise ConfigurationError(f"Failed to load {path}: {e}") from e


def _load_single_config(config_dir: Path) -> Dict[str, Any]:
    """Load config from a single directory (TOML or INI file)."""
    toml_path = config_dir / "config.toml"
    ini_path = config_dir / "config.ini"

    if TOML_AVAILABLE and toml_path.exists():
        return load_file(toml_path)
    elif ini_path.exists():
        return load_file(ini_path)
    return {}


def _deep_merge_dicts(base: dict, override: dict) -> dict:
    """Deep merge two dicts, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge_dicts(result[key], value)
        else:
            result[key] = value
    return result


def load_config_file(config_dir: Path, system_dir: Optional[Path] = None) -> dict:
    """
    Load config with priority:
    1. User config: ~/.config/transcoder/config.toml (highest priority)
    2. System config: /etc/transcoder/config.toml (lowest priority, optional)

    User config values override system config values.
    """
    system_dir = system_dir or SYSTEM_CONFIG_DIR
    system_config = {}
    if system_dir.exists():
        system_config = _load_single_config(system_dir)

    user_config = _load_single_config(config_dir)

    return _deep_merge_dicts(system_config, user_config)


def config_file_path(config_dir: Path) -> Path:
    """Path of the user config file that is (or would be) used."""
    if TOML_AVAILABLE:
        return config_dir / "config.toml"
    return config_dir / "config.ini"


def _get_default_config_toml() -> str:
    """Return default config as TOML string."""
    return f"""# transcoder configuration file
# This file is auto-generated on first run

[transcode]
flags = "{DEFAULT_FLAGS}"
extensions = [".mp4", ".mkv", ".flv"]
# Seconds between progress reports
interval = 5
stderr = false
# Keep the original if the transcoded version is not smaller
keep_old = false
# Stop early once the output outgrows the original (requires keep_old)
early_exit = true

[telegram]
# bot_key = ""
# chat_id = 0

[notifications]
# Desktop notifications for every processed file
desktop = false

[logging]
level = "info"
colors = false
"""


def _get_default_config_ini() -> str:
    """Return default config as INI string."""
    return f"""# transcoder configuration file
# This file is auto-generated on first run

[transcode]
flags = {DEFAULT_FLAGS}
# Lists as comma-separated values
extensions = .mp4, .mkv, .flv
interval = 5
stderr = false
keep_old = false
early_exit = true

[telegram]
# bot_key =
# chat_id =

[notifications]
desktop = false

[logging]
level = info
colors = false
"""


def save_default_config(config_dir: Path) -> Path:
    """Create default config file (TOML if available, else INI). Returns path."""
    config_dir.mkdir(parents=True, exist_ok=True)

    if TOML_AVAILABLE:
        path = config_dir / "config.toml"
        if not path.exists():
            path.write_text(_get_default_config_toml())
        return path
    else:
        path = config_dir / "config.ini"
        if not path.exists():
            path.write_text(_get_default_config_ini())
        return path


def apply_config_to_args(file_config: dict, cfg: Config) -> None:
    """
    Apply file config values to Config instance.

    Only applies values from file config if they weren't explicitly set on CLI.
    This ensures CLI arguments have priority over config file values.

    Args:
        file_config: Dict from config file (TOML or INI)
        cfg: Config instance with CLI-parsed values
    """
    # Get default values for comparison
    default_cfg = Config()

    # Map config file keys to Config attribute names
    mappings = {
        ("transcode", "flags"): "flags",
        ("transcode", "extensions"): "extensions",
        ("transcode", "interval"): "interval",
        ("transcode", "stderr"): "stderr",
        ("transcode", "keep_old"): "keep_old",
        ("transcode", "early_exit"): "early_exit",
        ("transcode", "ffmpeg"): "ffmpeg",
        ("transcode", "ffprobe"): "ffprobe",
        ("telegram", "bot_key"): "tg_bot_key",
        ("telegram", "chat_id"): "tg_chat_id",
        ("notifications", "desktop"): "notify",
        ("logging", "level"): "log_level",
        ("logging", "colors"): "colors",
    }

    for (section, key), attr_name in mappings.items():
        if section in file_config and key in file_config[section]:
            file_val = file_config[section][key]
            current_val = getattr(cfg, attr_name)
            default_val = getattr(default_cfg, attr_name)

            # Skip if CLI explicitly set this value (different from default)
            if current_val != default_val:
                continue

            if attr_name == "extensions":
                if isinstance(file_val, str):
                    file_val = parse_extensions([file_val])
                elif isinstance(file_val, list):
                    file_val = [str(x) for x in file_val]
                else:
                    raise ConfigurationError(f"Invalid value for [{section}] {key}: {file_val!r}")
            elif attr_name == "tg_chat_id":
                try:
                    file_val = int(file_val)
                except (TypeError, ValueError) as e:
                    raise ConfigurationError(f"Invalid value for [{section}] {key}: {file_val!r}") from e
            elif attr_name == "interval":
                if isinstance(file_val, bool) or not isinstance(file_val, (int, float)):
                    raise ConfigurationError(f"Invalid value for [{section}] {key}: {file_val!r}")
                file_val = float(file_val)

            setattr(cfg, attr_name, file_val)
