"""
Configuration loader with TOML file parsing and environment variable overrides.
"""
import os
import logging
from pathlib import Path
from typing import Optional, Any, Dict, List

# Try Python 3.11+ tomllib first, fallback to tomli for older versions
try:
    import tomllib
except ModuleNotFoundError:
    import tomli as tomllib

from .models import BondbotConfig

logger = logging.getLogger(__name__)

_config: Optional[BondbotConfig] = None

CONFIG_PATHS = [
    Path("/etc/bondbot/bondbot.toml"),
    Path.home() / ".config" / "bondbot" / "bondbot.toml",
]


def _load_toml(path: Path) -> Dict[str, Any]:
    """Load TOML file and return parsed dict."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value}")


def _apply_env_overrides(config: BondbotConfig, environ: Optional[Dict[str, str]] = None) -> BondbotConfig:
    """
    Override config with environment variables.
    Format: BONDBOT_SECTION_KEY
    Example: BONDBOT_MQTT_PASSWORD overrides config.mqtt.password
    """
    environ = os.environ if environ is None else environ
    env_map = {
        # MQTT overrides
        "BONDBOT_MQTT_BROKER": lambda v: setattr(config.mqtt, "broker", v),
        "BONDBOT_MQTT_PORT": lambda v: setattr(config.mqtt, "port", int(v)),
        "BONDBOT_MQTT_USERNAME": lambda v: setattr(config.mqtt, "username", v),
        "BONDBOT_MQTT_PASSWORD": lambda v: setattr(config.mqtt, "password", v),

        # MongoDB overrides
        "BONDBOT_MONGODB_URI": lambda v: setattr(config.mongodb, "uri", v),
        "BONDBOT_MONGODB_DATABASE": lambda v: setattr(config.mongodb, "database", v),
        "BONDBOT_MONGODB_COLLECTION": lambda v: setattr(config.mongodb, "collection", v),

        # Gemini overrides
        "BONDBOT_GEMINI_API_KEY": lambda v: setattr(config.gemini, "api_key", v),
        "BONDBOT_GEMINI_MODEL": lambda v: setattr(config.gemini, "model", v),
        "BONDBOT_GEMINI_TIMEOUT": lambda v: setattr(config.gemini, "timeout", float(v)),

        # HTTP overrides
        "BONDBOT_HTTP_HOST": lambda v: setattr(config.http, "host", v),
        "BONDBOT_HTTP_PORT": lambda v: setattr(config.http, "port", int(v)),

        # Presence overrides
        "BONDBOT_PRESENCE_STALE_AFTER": lambda v: setattr(config.presence, "stale_after", float(v)),
        "BONDBOT_PRESENCE_SWEEP_INTERVAL": lambda v: setattr(config.presence, "sweep_interval", float(v)),

        # Bridge overrides
        "BONDBOT_BRIDGE_PAIR_IDS": lambda v: setattr(config.bridge, "pair_ids", _split_list(v)),

        # Logging overrides
        "BONDBOT_LOGGING_LEVEL": lambda v: setattr(config.logging, "level", v),
        "BONDBOT_LOGGING_JSON": lambda v: setattr(config.logging, "json", _parse_bool(v)),
    }

    for env_var, setter in env_map.items():
        value = environ.get(env_var)
        if value is not None:
            try:
                setter(value)
                logger.debug(f"Config override from env: {env_var}")
            except (ValueError, TypeError) as e:
                logger.warning(f"Failed to apply env override {env_var}={value}: {e}")

    return config


def _toml_to_config(data: Dict[str, Any]) -> BondbotConfig:
    """Convert TOML dict to BondbotConfig dataclass."""
    config = BondbotConfig()

    # Map TOML section names to config sub-objects
    section_map = {
        "mqtt": config.mqtt,
        "mongodb": config.mongodb,
        "gemini": config.gemini,
        "http": config.http,
        "presence": config.presence,
        "bridge": config.bridge,
        "logging": config.logging,
    }

    for section_name, section_obj in section_map.items():
        if section_name in data:
            for k, v in data[section_name].items():
                if hasattr(section_obj, k):
                    setattr(section_obj, k, v)
                else:
                    logger.warning(f"Unknown config key [{section_name}].{k}, ignoring")

    return config


def load_config(config_path: Optional[Path] = None) -> BondbotConfig:
    """
    Load configuration from TOML file with environment variable overrides.

    Args:
        config_path: Optional explicit path to config file. If None, checks
            $BONDBOT_CONFIG and then the default paths.

    Returns:
        BondbotConfig instance with loaded configuration.
    """
    global _config

    if config_path:
        paths = [config_path]
    elif os.environ.get("BONDBOT_CONFIG"):
        paths = [Path(os.environ["BONDBOT_CONFIG"])] + CONFIG_PATHS
    else:
        paths = CONFIG_PATHS

    data = {}
    for path in paths:
        if path.exists():
            try:
                data = _load_toml(path)
                logger.info(f"Loaded config from {path}")
                break
            except (OSError, tomllib.TOMLDecodeError) as e:
                logger.error(f"Failed to load config from {path}: {e}")
                continue
    else:
        logger.warning("No config file found, using defaults")

    config = _toml_to_config(data)
    config = _apply_env_overrides(config)
    _config = config
    return config


def get_config() -> BondbotConfig:
    """
    Get cached config or load if not yet loaded.

    Returns:
        BondbotConfig instance.
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config():
    """Drop the cached config so the next get_config() reloads."""
    global _config
    _config = None
