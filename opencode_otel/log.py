"""
Logging setup for the plugin's own diagnostics.

Output goes to stderr under the ``opencode_otel`` logger so the host's stdout
and root logger configuration are left alone.
"""

import logging
import sys

LOGGER_NAME = "opencode_otel"

_LEVELS = {
    "TRACE": logging.DEBUG,  # Python doesn't have TRACE
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}


def get_log_level(level: str) -> int:
    """Convert a LOG_LEVEL string to a logging constant. Defaults to INFO."""
    return _LEVELS.get(level.upper(), logging.INFO)


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a stderr handler to the plugin logger. Safe to call repeatedly."""
    plugin_logger = logging.getLogger(LOGGER_NAME)
    plugin_logger.setLevel(get_log_level(level))

    if not any(getattr(h, "_opencode_otel", False) for h in plugin_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        handler._opencode_otel = True  # type: ignore[attr-defined]
        plugin_logger.addHandler(handler)

    return plugin_logger
