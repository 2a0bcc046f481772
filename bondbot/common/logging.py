"""Structured logging for BondBot services."""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Union

LOGGER_PREFIX = "bondbot."

# Applied by setup_logging() when a caller passes no explicit level/format
_defaults = {"level": logging.INFO, "json_output": False}


class JSONFormatter(logging.Formatter):
    """Format log records as JSON for structured logging."""

    def format(self, record):
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service_name", record.name),
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0]:
            log_data["exception"] = self.formatException(record.exc_info)
        # Add any extra fields
        for key in ("pair_id", "topic", "endpoint", "duration_ms"):
            if hasattr(record, key):
                log_data[key] = getattr(record, key)
        return json.dumps(log_data)


def _formatter(service_name: str, json_output: bool) -> logging.Formatter:
    if json_output:
        return JSONFormatter()
    return logging.Formatter(
        f"%(asctime)s [{service_name}] %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )


def setup_logging(service_name: str, level: int = None, json_output: bool = None) -> logging.Logger:
    """Set up logging for a service or component.

    Args:
        service_name: Name of the component (e.g., "bridge", "router")
        level: Logging level. Defaults to the configured level.
        json_output: If True, use JSON format. Defaults to the configured format.

    Returns:
        Configured logger
    """
    level = _defaults["level"] if level is None else level
    json_output = _defaults["json_output"] if json_output is None else json_output

    logger = logging.getLogger(f"{LOGGER_PREFIX}{service_name}")
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(_formatter(service_name, json_output))
        logger.addHandler(handler)

    return logger


def configure_logging(level: Union[int, str] = logging.INFO, json_output: bool = False):
    """Apply level and format to every bondbot logger, existing and future."""
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            logging.getLogger(__name__).warning(f"Unknown log level {level!r}, using INFO")
            resolved = logging.INFO
        level = resolved

    _defaults.update(level=level, json_output=json_output)

    for name, logger in list(logging.Logger.manager.loggerDict.items()):
        if not name.startswith(LOGGER_PREFIX) or not isinstance(logger, logging.Logger):
            continue
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)
            handler.setFormatter(_formatter(name[len(LOGGER_PREFIX):], json_output))
