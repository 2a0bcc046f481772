"""
BondBot configuration management.

Provides centralized configuration loading from TOML files with environment variable overrides.

Usage:
    from bondbot.config import get_config

    config = get_config()
    mqtt_broker = config.mqtt.broker
    gemini_model = config.gemini.model
"""
from .loader import load_config, get_config, reset_config
from .models import BondbotConfig

__all__ = ["load_config", "get_config", "reset_config", "BondbotConfig"]
