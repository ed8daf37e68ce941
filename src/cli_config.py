"""Runtime configuration layering.

Defaults live on ``Constants``. An optional YAML file is applied first, then
``PKGSIZE_*`` environment variables, then CLI flags; each layer overwrites
``Constants`` attributes set by the previous one.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Mapping, Optional

import yaml

from constants import Constants

logger = logging.getLogger(__name__)


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


# config key -> (Constants attribute, converter)
_SETTINGS: Dict[str, tuple] = {
    "registry_url": ("REGISTRY_URL_NPM", str),
    "api_url": ("API_URL_NPM", str),
    "request_timeout": ("REQUEST_TIMEOUT", int),
    "image": ("BASE_IMAGE", str),
    "container_tool": ("CONTAINER_TOOL", str),
    "npm_cache": ("NPM_CACHE_DIR", str),
    "wait_timeout": ("SANDBOX_WAIT_TIMEOUT", int),
    "no_cleanup": ("NO_CLEANUP", _to_bool),
    "resolvers": ("RESOLVER_WORKERS", int),
    "measure_workers": ("MEASURE_WORKERS", int),
}

ENV_PREFIX = "PKGSIZE_"


def load_config_file(config_path: Optional[str]) -> Dict[str, Any]:
    """Load settings from a YAML file.

    A ``pkgsize:`` section is used when present, otherwise the top level.

    Raises:
        OSError: The file cannot be read.
        ValueError: The file is not valid YAML or not a mapping.
    """
    if not config_path:
        return {}
    with open(config_path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {config_path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping")
    section = data.get("pkgsize", data)
    if not isinstance(section, dict):
        raise ValueError(f"'pkgsize' section of {config_path} must be a mapping")
    return section


def _apply(key: str, value: Any, source: str) -> None:
    attr, convert = _SETTINGS[key]
    try:
        converted = convert(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value for {key} from {source}: {value!r}") from e
    setattr(Constants, attr, converted)
    logger.debug("Config %s=%r (from %s)", attr, converted, source)


def apply_settings(settings: Mapping[str, Any], source: str = "config") -> None:
    """Apply known keys of ``settings`` onto Constants; unknown keys are logged."""
    for key, value in settings.items():
        if key not in _SETTINGS:
            logger.warning("Unknown configuration key %r in %s", key, source)
            continue
        if value is None:
            continue
        _apply(key, value, source)


def apply_env_overrides(environ: Optional[Mapping[str, str]] = None) -> None:
    """Apply ``PKGSIZE_<KEY>`` environment variables."""
    environ = os.environ if environ is None else environ
    for key in _SETTINGS:
        value = environ.get(ENV_PREFIX + key.upper())
        if value is not None and value != "":
            _apply(key, value, "environment")


_CLI_FLAGS: Dict[str, str] = {
    "REGISTRY_URL": "registry_url",
    "IMAGE": "image",
    "CONTAINER_TOOL": "container_tool",
    "NPM_CACHE": "npm_cache",
    "WAIT_TIMEOUT": "wait_timeout",
    "RESOLVERS": "resolvers",
}


def apply_cli_overrides(args) -> None:
    """Apply CLI overrides with highest precedence."""
    for dest, key in _CLI_FLAGS.items():
        value = getattr(args, dest, None)
        if value is not None:
            _apply(key, value, "command line")
    if getattr(args, "NO_CLEANUP", False):
        Constants.NO_CLEANUP = True


def configure(args, environ: Optional[Mapping[str, str]] = None) -> None:
    """Apply config file, environment and CLI layers in order."""
    settings = load_config_file(getattr(args, "CONFIG", None))
    apply_settings(settings, source=getattr(args, "CONFIG", None) or "config")
    apply_env_overrides(environ)
    apply_cli_overrides(args)


def snapshot() -> Dict[str, Any]:
    """Current values of every configurable Constants attribute."""
    return {attr: getattr(Constants, attr) for attr, _ in _SETTINGS.values()}


def restore(values: Mapping[str, Any]) -> None:
    """Restore Constants attributes captured by :func:`snapshot`."""
    for attr, value in values.items():
        setattr(Constants, attr, value)
