"""Centralized logging helpers.

Provides process-wide logging setup plus small utilities used across modules
for structured DEBUG traces: an ``extra`` builder, a cheap level guard, a
duration timer and URL redaction.
"""
from __future__ import annotations

import logging
import os
import time
import urllib.parse
from typing import Any, Dict, Optional

from constants import Constants

_SENSITIVE_QUERY_KEYS = ("token", "access_token", "auth", "key", "password", "secret")
_CONFIGURED = False


def configure_logging(level_name: Optional[str] = None) -> None:
    """Configure the root logger once.

    An explicit ``level_name`` wins; otherwise the level comes from the
    PKGSIZE_LOG_LEVEL environment variable (default INFO).
    """
    global _CONFIGURED  # pylint: disable=global-statement
    level_name = (level_name or os.environ.get("PKGSIZE_LOG_LEVEL") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    root = logging.getLogger()
    if not _CONFIGURED:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
        root.addHandler(handler)
        _CONFIGURED = True
    root.setLevel(level)


def extra_context(**kwargs: Any) -> Dict[str, Any]:
    """Build an ``extra`` mapping for structured log records, dropping None values."""
    return {k: v for k, v in kwargs.items() if v is not None}


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True if DEBUG records would be emitted by ``logger``."""
    return logger.isEnabledFor(logging.DEBUG)


def redact(value: Optional[str]) -> str:
    """Mask a secret value for logging."""
    if not value:
        return ""
    return "[REDACTED]"


def safe_url(url: str) -> str:
    """Return ``url`` with credentials and sensitive query values redacted."""
    try:
        parts = urllib.parse.urlsplit(url)
    except ValueError:
        return url
    netloc = parts.netloc
    if "@" in netloc:
        netloc = "[REDACTED]@" + netloc.rsplit("@", 1)[1]
    query = parts.query
    if query:
        pairs = urllib.parse.parse_qsl(query, keep_blank_values=True)
        query = "&".join(
            f"{k}={redact(v) if k.lower() in _SENSITIVE_QUERY_KEYS else v}" for k, v in pairs
        )
    return urllib.parse.urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))


class Timer:
    """Context manager measuring wall-clock duration."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.monotonic()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._end = time.monotonic()

    def duration_ms(self) -> int:
        """Elapsed milliseconds, up to now if the block is still running."""
        end = self._end if self._end is not None else time.monotonic()
        return int((end - self._start) * 1000)
