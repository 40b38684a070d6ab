"""
Process-wide verbose logging switch.

Engine modules log through ordinary module loggers. When verbose mode is off,
the filter installed here drops their records below ERROR; errors are always
emitted. Nothing in the engine reads the flag to decide what to do.
"""

import logging
from typing import Optional

from .config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
ENGINE_LOGGER = "synthlabs"

_verbose = False


def init_verbose(settings: Settings) -> bool:
    """Set the initial flag from settings: explicit value, else on in development."""
    if settings.verbose_logging is not None:
        enabled = settings.verbose_logging
    else:
        enabled = settings.environment == "development"
    set_verbose(enabled)
    return enabled


def set_verbose(enabled: bool) -> None:
    """Enable or disable verbose engine logging at runtime."""
    global _verbose
    _verbose = bool(enabled)


def is_verbose() -> bool:
    """Check if verbose logging is currently enabled."""
    return _verbose


class VerboseFilter(logging.Filter):
    """Silence non-error engine records unless verbose mode is on."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.ERROR or _verbose:
            return True
        return not record.name.startswith(ENGINE_LOGGER)


def configure_logging(settings: Settings, level: Optional[str] = None) -> None:
    """Configure root logging once and attach the verbose filter to its handlers."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format=LOG_FORMAT,
    )
    init_verbose(settings)

    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, VerboseFilter) for f in handler.filters):
            handler.addFilter(VerboseFilter())
