"""Constants and runtime configuration used across the resolution engine."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_LEVEL = "INFO"

    # Historical stand-in for "no constraint" on mod versions and for
    # unparseable runtime tags.
    LEGACY_UNCONSTRAINED_SENTINEL = "0.0.0"
    RUNTIME_LABEL_PREFIX = "SPT"

    RESOLUTION_MAX_WORKERS = 4
    RESOLUTION_RETRY_MAX = 3
    RESOLUTION_RETRY_BASE_DELAY_SEC = 0.3
    RECENT_MINOR_COUNT = 3

    CONFIG_FILE_NAME = "forge-resolver.yml"
    ENV_CONFIG_PATH = "FORGE_RESOLVER_CONFIG"
    ENV_LOG_LEVEL = "FORGE_RESOLVER_LOG_LEVEL"
    ENV_MAX_WORKERS = "FORGE_RESOLVER_MAX_WORKERS"
    ENV_RETRY_MAX = "FORGE_RESOLVER_RETRY_MAX"


# YAML key -> Constants attribute, with the coercion applied to the value.
_RESOLUTION_KEYS = {
    "max_workers": ("RESOLUTION_MAX_WORKERS", int),
    "retry_max": ("RESOLUTION_RETRY_MAX", int),
    "retry_base_delay_sec": ("RESOLUTION_RETRY_BASE_DELAY_SEC", float),
    "recent_minor_count": ("RECENT_MINOR_COUNT", int),
}
_LOGGING_KEYS = {
    "level": ("LOG_LEVEL", lambda v: str(v).upper()),
    "format": ("LOG_FORMAT", str),
}
_ENV_KEYS = {
    Constants.ENV_MAX_WORKERS: ("RESOLUTION_MAX_WORKERS", int),
    Constants.ENV_RETRY_MAX: ("RESOLUTION_RETRY_MAX", int),
    Constants.ENV_LOG_LEVEL: ("LOG_LEVEL", lambda v: str(v).upper()),
}


def _candidate_config_paths(path: Optional[str]) -> list:
    """Return config file locations in priority order."""
    if path:
        return [path]
    paths = []
    env_path = os.environ.get(Constants.ENV_CONFIG_PATH)
    if env_path:
        paths.append(env_path)
    paths.append(os.path.join(os.getcwd(), Constants.CONFIG_FILE_NAME))
    paths.append(
        os.path.join(os.path.expanduser("~"), ".config", "forge-resolver", Constants.CONFIG_FILE_NAME)
    )
    return paths


def _apply_section(section: Any, mapping: Dict[str, tuple]) -> None:
    if not isinstance(section, dict):
        return
    for key, (attr, coerce) in mapping.items():
        if key not in section or section[key] is None:
            continue
        try:
            setattr(Constants, attr, coerce(section[key]))
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid config value for %s: %r", key, section[key])


def _load_yaml_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load the first readable YAML config file and apply it to Constants.

    Returns the parsed mapping (empty when nothing was loaded). Never raises.
    """
    for candidate in _candidate_config_paths(path):
        if not candidate or not os.path.isfile(candidate):
            continue
        try:
            with open(candidate, "r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh) or {}
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("Failed to load config %s: %s", candidate, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Config %s is not a mapping; ignoring", candidate)
            return {}
        _apply_section(data.get("resolution"), _RESOLUTION_KEYS)
        _apply_section(data.get("logging"), _LOGGING_KEYS)
        return data
    return {}


def _apply_env_overrides() -> None:
    """Environment variables take precedence over the config file."""
    for env_name, (attr, coerce) in _ENV_KEYS.items():
        raw = os.environ.get(env_name)
        if raw is None or not raw.strip():
            continue
        try:
            setattr(Constants, attr, coerce(raw.strip()))
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid value for %s: %r", env_name, raw)


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Apply YAML config then environment overrides to Constants."""
    data = _load_yaml_config(path)
    _apply_env_overrides()
    return data
