"""Logging helpers shared by the CLI and the resolver packages.

Provides one place to configure handlers and a small vocabulary for
structured DEBUG records (``extra_context``) so every component logs the
same fields: event, component, action, outcome, plus free-form context.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

from constants import Constants


class _ContextFormatter(logging.Formatter):
    """Formatter that appends structured context fields when present."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        ctx = getattr(record, "context_fields", None)
        if not ctx:
            return base
        parts = [f"{k}={ctx[k]}" for k in sorted(ctx)]
        return f"{base} [{' '.join(parts)}]"


def configure_logging(level: str = "INFO", logfile: Optional[str] = None, quiet: bool = False) -> None:
    """Configure root logging for the CLI.

    Args:
        level: Logging level name, e.g. "DEBUG".
        logfile: Optional file to write logs to instead of stderr.
        quiet: When True, only errors reach the console.
    """
    numeric = getattr(logging, str(level).upper(), logging.INFO)
    if quiet and logfile is None:
        numeric = max(numeric, logging.ERROR)

    fmt = Constants.LOG_FORMAT_DEBUG if numeric <= logging.DEBUG else Constants.LOG_FORMAT
    handler: logging.Handler
    if logfile:
        handler = logging.FileHandler(logfile, encoding="utf-8")
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(_ContextFormatter(fmt))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(numeric)


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records from this logger would be emitted."""
    return logger.isEnabledFor(logging.DEBUG)


def extra_context(**kwargs: Any) -> Dict[str, Any]:
    """Build the ``extra`` mapping for a structured log record.

    None values are dropped so records stay compact.
    """
    fields = {k: v for k, v in kwargs.items() if v is not None}
    return {"context_fields": fields}


def safe_url(url: str) -> str:
    """Strip credentials and query strings from a URL before logging it."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return "<invalid-url>"
    netloc = parts.hostname or ""
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, "", ""))


class Timer:
    """Context manager measuring wall-clock duration in milliseconds."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *exc: Any) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> float:
        """Elapsed milliseconds; live value while still inside the block."""
        end = self._end if self._end is not None else time.perf_counter()
        return round((end - self._start) * 1000.0, 2)
