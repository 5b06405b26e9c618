"""
Logging configuration

decoratedmcp logs through the standard library ``logging`` module, one logger per module under the ``decoratedmcp``
namespace. configure_logging() attaches a stderr handler to that namespace, configured from the environment:

- DECORATEDMCP_LOG_LEVEL: log level name. Takes precedence over LOG_LEVEL.
- LOG_LEVEL: log level name, used when DECORATEDMCP_LOG_LEVEL is not set.
- DECORATEDMCP_LOG_PRETTY: when truthy (1, true, yes, on), log human readable lines instead of key=value lines.

Handlers never write to stdout, which carries the protocol when serving over stdio.
"""

import logging
import os
import sys
from collections.abc import Mapping

LOG_LEVEL_ENV = "DECORATEDMCP_LOG_LEVEL"
FALLBACK_LOG_LEVEL_ENV = "LOG_LEVEL"
LOG_PRETTY_ENV = "DECORATEDMCP_LOG_PRETTY"

DEFAULT_LEVEL = logging.WARNING

_TRUTHY = frozenset({"1", "true", "yes", "on"})
_PRETTY_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# Attributes every LogRecord has; anything else was passed through ``extra``
_RECORD_ATTRIBUTES = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


class KeyValueFormatter(logging.Formatter):
    """Formats records as ``key=value`` pairs, including the fields passed with ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        fields = {
            "time": self.formatTime(record),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        fields.update(
            (key, value) for key, value in vars(record).items() if key not in _RECORD_ATTRIBUTES and key not in fields
        )
        line = " ".join(f"{key}={_quote(value)}" for key, value in fields.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def log_level(environ: Mapping[str, str] | None = None) -> int:
    """Resolve the configured log level, falling back to WARNING for unset or unknown names."""
    environ = os.environ if environ is None else environ
    name = environ.get(LOG_LEVEL_ENV) or environ.get(FALLBACK_LOG_LEVEL_ENV)
    if not name:
        return DEFAULT_LEVEL
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else DEFAULT_LEVEL


def pretty_enabled(environ: Mapping[str, str] | None = None) -> bool:
    environ = os.environ if environ is None else environ
    return environ.get(LOG_PRETTY_ENV, "").strip().lower() in _TRUTHY


def configure_logging(environ: Mapping[str, str] | None = None) -> logging.Logger:
    """
    Configure the ``decoratedmcp`` logger from the environment.

    Calling this again replaces the handler installed by the previous call rather than adding another one.

    Args:
        environ: Environment to read, defaults to os.environ

    Returns:
        The configured package logger
    """
    logger = logging.getLogger("decoratedmcp")
    for handler in [h for h in logger.handlers if getattr(h, "_decoratedmcp", False)]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler._decoratedmcp = True  # type: ignore[attr-defined]
    handler.setFormatter(logging.Formatter(_PRETTY_FORMAT) if pretty_enabled(environ) else KeyValueFormatter())
    logger.addHandler(handler)
    logger.setLevel(log_level(environ))
    return logger


def _quote(value: object) -> str:
    text = str(value)
    if not text or any(c.isspace() or c in "\"=" for c in text):
        return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return text
