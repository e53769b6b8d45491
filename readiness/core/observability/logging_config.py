"""
Logging configuration — central setup for the hubctl entrypoint.

Every module that does ``logger = logging.getLogger(__name__)`` inherits
this config.  The engine logs state transitions at DEBUG, guard
rejections and completed operations at INFO, and backend failures at
WARNING.

Console records carry a short ``component`` (``provision``,
``scheduler``, ``local``...) instead of the full dotted logger name, so
``hubctl watch -v`` reads as a timeline of engine events.

Levels are resolved in precedence order:
    CLI flag  >  HUB_LOG_LEVEL env var  >  WARNING (default)

Optional file output via HUB_LOG_FILE / HUB_LOG_FILE_LEVEL env vars.
"""

from __future__ import annotations

import logging
import os
import sys

ENV_LOG_LEVEL = "HUB_LOG_LEVEL"
ENV_LOG_FILE = "HUB_LOG_FILE"
ENV_LOG_FILE_LEVEL = "HUB_LOG_FILE_LEVEL"

# Console formats, most detailed first: (max level, format, datefmt).
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s.%(msecs)03d %(levelname)-5s [%(component)s] %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(component)s] %(message)s", "%H:%M:%S"),
)
_FMT_PLAIN = "%(message)s"

_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

# Library loggers that are noisy at INFO/DEBUG
_NOISY_LOGGERS = ("asyncio",)


class _ComponentFilter(logging.Filter):
    """Attach ``record.component``: the last segment of the logger name."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.component = record.name.rsplit(".", 1)[-1]
        return True


def resolve_level(*, debug: bool = False, verbose: bool = False, quiet: bool = False) -> str:
    """Pick the console level from CLI flags, falling back to the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(ENV_LOG_LEVEL, "WARNING")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Install the console handler (and optionally a file handler) on the root logger.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional log file path.  Defaults to ``HUB_LOG_FILE``.
        log_file_level: Level for the file.  Defaults to
            ``HUB_LOG_FILE_LEVEL``, then to ``level``.
        quiet_third_party: Hold ``asyncio`` and friends at WARNING unless
            the console runs at DEBUG.
    """
    console_level = _parse_level(level)
    log_file = log_file or os.environ.get(ENV_LOG_FILE)
    log_file_level = log_file_level or os.environ.get(ENV_LOG_FILE_LEVEL)

    handlers: list[logging.Handler] = [_console_handler(console_level)]
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handlers.append(_file_handler(log_file, file_level))

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(min(h.level for h in handlers))

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def _console_handler(level: int) -> logging.Handler:
    fmt, datefmt = _FMT_PLAIN, None
    for max_level, candidate, candidate_datefmt in _CONSOLE_FORMATS:
        if level <= max_level:
            fmt, datefmt = candidate, candidate_datefmt
            break

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(_ComponentFilter())
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
    return handler


def _parse_level(level: str | None) -> int:
    """Level name to its numeric value; unknown names mean WARNING."""
    if not level:
        return logging.WARNING
    numeric = logging.getLevelName(level.upper())
    return numeric if isinstance(numeric, int) else logging.WARNING
