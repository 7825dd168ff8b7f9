"""Centralized logging helpers.

Structured context is attached through ``extra=`` so handlers and formatters
can pick the fields they care about without parsing messages.
"""
from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, Optional

from constants import Constants

_CONFIGURED = False


def configure_logging(level: Optional[str] = None) -> None:
    """Install a root handler once and apply the configured level.

    Level precedence: explicit argument, FORGE_RESOLVER_LOG_LEVEL, Constants.LOG_LEVEL.
    """
    global _CONFIGURED  # pylint: disable=global-statement
    level_name = (level or os.environ.get(Constants.ENV_LOG_LEVEL) or Constants.LOG_LEVEL).upper()
    level_value = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    if not _CONFIGURED:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
        root.addHandler(handler)
        _CONFIGURED = True
    root.setLevel(level_value)


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records from this logger would be emitted."""
    return logger.isEnabledFor(logging.DEBUG)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build an ``extra=`` payload, dropping fields whose value is None.

    Common keys: event, component, action, outcome, entity, count, duration_ms.
    """
    return {key: value for key, value in fields.items() if value is not None}


class Timer:
    """Context manager measuring wall-clock duration."""

    def __init__(self) -> None:
        self._start: Optional[float] = None
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> int:
        """Elapsed milliseconds; measured up to now while still running."""
        if self._start is None:
            return 0
        end = self._end if self._end is not None else time.perf_counter()
        return int((end - self._start) * 1000)
