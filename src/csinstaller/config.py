# src/csinstaller/config.py

import copy
import os
from typing import Any, Dict, Optional

import platformdirs
import yaml

from csinstaller.constants import (
    APP_NAME,
    CONFIG_FILE_NAME,
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_CHANNEL_LIMITS,
    DEFAULT_CONNECT_RETRIES,
    DEFAULT_REQUEST_TIMEOUT,
)
from csinstaller.exceptions import ConfigurationError
from csinstaller.log_utils import logger

# Get the config directory using platformdirs
CONFIG_DIR = platformdirs.user_config_dir(APP_NAME)
CONFIG_FILE = os.path.join(CONFIG_DIR, CONFIG_FILE_NAME)

DEFAULT_CONFIG: Dict[str, Any] = {
    "BUILD_DIR": None,
    "TOOL_CACHE_DIR": None,
    "REQUEST_TIMEOUT": DEFAULT_REQUEST_TIMEOUT,
    "TOOL_TIMEOUT": None,
    "CONNECT_RETRIES": DEFAULT_CONNECT_RETRIES,
    "BACKOFF_FACTOR": DEFAULT_BACKOFF_FACTOR,
    "CHANNEL_LIMITS": dict(DEFAULT_CHANNEL_LIMITS),
    "SHOW_PROGRESS": True,
    "LOG_LEVEL": "",
    "LOG_TO_FILE": False,
    "GITHUB_TOKEN": None,
    "ALLOW_ENV_TOKEN": True,
}


def get_log_dir() -> str:
    """Return the platformdirs log directory used for file logging."""
    return platformdirs.user_log_dir(APP_NAME)


def _check_positive_number(config: Dict[str, Any], key: str) -> None:
    value = config.get(key)
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigurationError(
            f"Invalid value for {key}", details=f"expected a positive number, got {value!r}"
        )


def _check_non_negative_int(key: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigurationError(
            f"Invalid value for {key}",
            details=f"expected a non-negative integer, got {value!r}",
        )


def validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a merged configuration mapping.

    Returns the same mapping so calls can be chained.

    Raises:
        ConfigurationError: If a timeout is not a positive number, a retry count or
            channel limit is not a non-negative integer, or CHANNEL_LIMITS is not a mapping.
    """
    _check_positive_number(config, "REQUEST_TIMEOUT")
    _check_positive_number(config, "TOOL_TIMEOUT")
    _check_non_negative_int("CONNECT_RETRIES", config.get("CONNECT_RETRIES"))

    backoff = config.get("BACKOFF_FACTOR")
    if isinstance(backoff, bool) or not isinstance(backoff, (int, float)) or backoff < 0:
        raise ConfigurationError(
            "Invalid value for BACKOFF_FACTOR",
            details=f"expected a non-negative number, got {backoff!r}",
        )

    limits = config.get("CHANNEL_LIMITS")
    if not isinstance(limits, dict):
        raise ConfigurationError(
            "Invalid value for CHANNEL_LIMITS",
            details=f"expected a mapping of channel to limit, got {type(limits).__name__}",
        )
    for channel, limit in limits.items():
        _check_non_negative_int(f"CHANNEL_LIMITS[{channel}]", limit)

    return config


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the installer configuration YAML merged over the defaults.

    If `path` is not provided, the platformdirs-managed CONFIG_FILE is used. A
    missing file is not an error: the defaults are returned. Keys are
    upper-cased so `request_timeout` and `REQUEST_TIMEOUT` are equivalent.

    Parameters:
        path (str | None): Optional explicit path to a configuration file.

    Returns:
        dict: The validated configuration mapping.

    Raises:
        ConfigurationError: If the file cannot be read, is not valid YAML, does not
            contain a mapping, or holds invalid values.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    config_path = path or CONFIG_FILE

    if not os.path.exists(config_path):
        if path:
            raise ConfigurationError("Configuration file not found", details=path)
        logger.debug(f"No configuration file at {config_path}; using defaults")
        return validate_config(config)

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Failed to load configuration from {config_path}", details=str(e)
        ) from e

    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise ConfigurationError(
            f"Configuration in {config_path} must be a mapping",
            details=f"got {type(loaded).__name__}",
        )

    for key, value in loaded.items():
        key = str(key).upper()
        if key not in DEFAULT_CONFIG:
            logger.warning(f"Ignoring unknown configuration key: {key}")
            continue
        config[key] = value

    logger.debug(f"Loaded configuration from {config_path}")
    return validate_config(config)


def apply_overrides(config: Dict[str, Any], **overrides: Any) -> Dict[str, Any]:
    """
    Return a copy of `config` with non-None command-line overrides applied.

    Keyword names are matched case-insensitively against configuration keys.
    """
    merged = copy.deepcopy(config)
    for key, value in overrides.items():
        if value is not None:
            merged[key.upper()] = value
    return validate_config(merged)
