"""
Logging configuration — central setup for the CLI.

Called once at startup by main.py.  Every module that does
``logger = logging.getLogger(__name__)`` inherits this config.

Levels are resolved in precedence order:
    CLI flag  >  COMFYPROV_LOG_LEVEL env var  >  WARNING (default)

Optional file output via COMFYPROV_LOG_FILE / COMFYPROV_LOG_FILE_LEVEL.
A provisioning run adds its own text log with :func:`add_file_handler`.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

# ── Format strings ──────────────────────────────────────────────

# WARNING level: step markers only
_FMT_MINIMAL = "%(message)s"

# INFO level: timestamped, like the provisioning log
_FMT_VERBOSE = "[%(asctime)s] %(message)s"
_DATEFMT_VERBOSE = "%H:%M:%S"

# DEBUG level: full diagnostic with file:line
_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_DEBUG = "%H:%M:%S"

# File output
_FMT_FILE = "[%(asctime)s] %(levelname)-5s %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

_NOISY_LOGGERS = ("urllib3", "filelock")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure Python logging for the entire process.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to a log file.
        log_file_level: Optional separate level for the log file.
            Defaults to the same as ``level``.
        quiet_third_party: If True, keep noisy third-party loggers at WARNING
            unless we're at DEBUG level.
    """
    numeric_level = _parse_level(level)

    if numeric_level <= logging.DEBUG:
        fmt, datefmt = _FMT_DEBUG, _DATEFMT_DEBUG
    elif numeric_level <= logging.INFO:
        fmt, datefmt = _FMT_VERBOSE, _DATEFMT_VERBOSE
    else:
        fmt, datefmt = _FMT_MINIMAL, None

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root.setLevel(numeric_level)

    if log_file:
        add_file_handler(log_file, log_file_level or level)

    if quiet_third_party and numeric_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    # Don't propagate exceptions from logging itself
    logging.raiseExceptions = False


def add_file_handler(path: str | Path, level: str = "INFO") -> logging.Handler | None:
    """Append log records at ``level`` and above to ``path``.

    The root logger is lowered to ``level`` if needed; console output
    keeps its own level. Returns None when the file cannot be opened.
    """
    numeric_level = _parse_level(level)
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(path, encoding="utf-8")
    except OSError as e:
        logging.getLogger(__name__).warning("Cannot open log file %s: %s", path, e)
        return None

    fh.setLevel(numeric_level)
    fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))

    root = logging.getLogger()
    root.addHandler(fh)
    root.setLevel(min(root.level or logging.WARNING, numeric_level))
    return fh


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
