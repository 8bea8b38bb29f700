import dataclasses
import json
import logging
from typing import Any

from .proxy_server import ProxySettings

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Accepted JSON types per settings field.
_FIELD_TYPES: dict[str, tuple[type, ...]] = {
    "bind_host": (str,),
    "port": (int,),
    "keep_alive_timeout": (int,),
    "connect_timeout": (int, float, type(None)),
    "shutdown_timeout": (int, type(None)),
    "user_agent": (str,),
    "verify_ssl": (bool, str),
    "log_level": (str,),
}


def _check_value(config_file_path: str, key: str, value: Any) -> None:
    expected = _FIELD_TYPES[key]
    # bool is an int subclass; only verify_ssl takes booleans.
    if isinstance(value, bool) and bool not in expected:
        valid = False
    else:
        valid = isinstance(value, expected)
    if not valid:
        msg = f"Invalid value for '{key}' in {config_file_path}: {value!r}"
        logger.error(msg)
        raise ValueError(msg)
    if key == "log_level" and value.upper() not in LOG_LEVELS:
        msg = f"Invalid log_level in {config_file_path}: {value!r}"
        logger.error(msg)
        raise ValueError(msg)


def load_settings_from_file(
    config_file_path: str, base: ProxySettings | None = None,
) -> ProxySettings:
    """Loads proxy settings from a JSON file.

    Args:
        config_file_path: Path to the JSON configuration file.
        base: Settings to start from. Keys in the file override its values.

    Returns:
        A new ProxySettings instance.

    Raises:
        FileNotFoundError: If the config file is not found.
        json.JSONDecodeError: If the config file contains invalid JSON.
        ValueError: If the config file format is invalid.
    """
    logger.info(f"Loading proxy settings from: {config_file_path}")

    try:
        with open(config_file_path) as f:
            config_data = json.load(f)
    except FileNotFoundError:
        logger.error(f"Configuration file not found: {config_file_path}")
        raise
    except json.JSONDecodeError:
        logger.error(f"Error decoding JSON from configuration file: {config_file_path}")
        raise
    except Exception as e:
        logger.error(
            f"Unexpected error opening or reading configuration file {config_file_path}: {e}",
        )
        raise ValueError(f"Could not read configuration file: {e}")

    if not isinstance(config_data, dict):
        msg = f"Invalid config file format in {config_file_path}. Expected a JSON object."
        logger.error(msg)
        raise ValueError(msg)

    unknown = sorted(set(config_data) - set(_FIELD_TYPES))
    if unknown:
        msg = f"Unknown settings in {config_file_path}: {', '.join(unknown)}"
        logger.error(msg)
        raise ValueError(msg)

    for key, value in config_data.items():
        _check_value(config_file_path, key, value)

    if "log_level" in config_data:
        config_data["log_level"] = config_data["log_level"].upper()

    settings = dataclasses.replace(base or ProxySettings(), **config_data)
    logger.info(f"Loaded {len(config_data)} setting(s) from {config_file_path}")
    return settings
