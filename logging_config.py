"""
logging_config.py

Central logging configuration for beatconv.

Modules log through `logging.getLogger(__name__)`; this module installs the one
stream handler on the root logger. Calling configure_logging again only changes
the level, so tests and repeated CLI invocations never stack handlers.
"""

from __future__ import annotations

import enum
import logging
import sys
from typing import Optional, TextIO, Union


_HANDLER_TAG = "_beatconv_logging_handler"
_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class LogVerbosity(str, enum.Enum):
    """Verbosity levels accepted by the config file and the CLI."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    VERBOSE = "verbose"


_VERBOSITY_LEVELS = {
    LogVerbosity.ERROR: logging.ERROR,
    LogVerbosity.WARNING: logging.WARNING,
    LogVerbosity.INFO: logging.INFO,
    LogVerbosity.VERBOSE: logging.DEBUG,
}


def parse_verbosity(value: Union[LogVerbosity, str]) -> LogVerbosity:
    if isinstance(value, LogVerbosity):
        return value
    normalized = str(value or "").strip().lower()
    if normalized == "debug":
        return LogVerbosity.VERBOSE
    try:
        return LogVerbosity(normalized)
    except ValueError as exc:
        allowed = ", ".join(item.value for item in LogVerbosity)
        raise ValueError(f"Unsupported log level {value!r}; expected one of: {allowed}") from exc


def _installed_handler() -> Optional[logging.Handler]:
    for handler in logging.getLogger().handlers:
        if getattr(handler, _HANDLER_TAG, False):
            return handler
    return None


def configure_logging(verbosity: Union[LogVerbosity, str] = LogVerbosity.INFO, stream: Optional[TextIO] = None) -> None:
    level = _VERBOSITY_LEVELS[parse_verbosity(verbosity)]
    root = logging.getLogger()
    root.setLevel(level)

    handler = _installed_handler()
    if handler is None:
        handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        setattr(handler, _HANDLER_TAG, True)
        root.addHandler(handler)
    handler.setLevel(level)


def reset_logging() -> None:
    """Remove the handler installed by configure_logging."""
    root = logging.getLogger()
    handler = _installed_handler()
    if handler is not None:
        root.removeHandler(handler)
        handler.close()
