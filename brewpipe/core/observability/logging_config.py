"""
Logging configuration — one-time setup for the CLI.

Every module logs through ``logging.getLogger(__name__)``; this module
decides where those records go. Level precedence:

    --debug / -v / -q  >  BREWPIPE_LOG_LEVEL  >  WARNING

A second, file handler is added when BREWPIPE_LOG_FILE is set, with its
own threshold from BREWPIPE_LOG_FILE_LEVEL. This is diagnostic logging;
the per-line record of command output is the run log
(``brewpipe.core.persistence.run_log``), not this.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Stream readers run on threads named "stdout-<pid>" / "stderr-<pid>",
# so the detailed formats carry the thread name.
_FORMATS = {
    logging.DEBUG: (
        "%(asctime)s %(levelname)-5s [%(threadName)s] %(name)s:%(lineno)d  %(message)s",
        "%H:%M:%S",
    ),
    logging.INFO: ("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
}
_FMT_PLAIN = "%(message)s"
_FMT_FILE = "%(asctime)s %(levelname)-5s [%(threadName)s] %(name)s:%(lineno)d  %(message)s"

# Per-spawn / per-chunk chatter; only interesting when debugging
_CHATTY_LOGGERS = ("brewpipe.adapters.shell", "brewpipe.core.engine.bridge")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_readers: bool = True,
) -> None:
    """Configure the root logger for the whole process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ...).
        log_file: Optional diagnostic log file; parent dirs are created.
        log_file_level: File threshold; defaults to ``level``.
        quiet_readers: Hold the stream-reader and bridge loggers at
            WARNING unless some handler is at DEBUG.
    """
    console_level = _parse_level(level)
    fmt, datefmt = _console_format(console_level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(_FMT_FILE, datefmt="%Y-%m-%d %H:%M:%S"))
        root.addHandler(handler)
        root_level = min(root_level, file_level)

    root.setLevel(root_level)

    quiet = quiet_readers and root_level > logging.DEBUG
    chatty_level = logging.WARNING if quiet else logging.NOTSET
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(chatty_level)

    # A closed stream (e.g. a detached terminal) must not crash the worker
    logging.raiseExceptions = False


def _console_format(level: int) -> tuple[str, str | None]:
    for threshold in (logging.DEBUG, logging.INFO):
        if level <= threshold:
            return _FORMATS[threshold]
    return _FMT_PLAIN, None


def _parse_level(level: str | None) -> int:
    """Level name to its numeric value; unknown names mean WARNING."""
    if not level:
        return logging.WARNING
    numeric = logging.getLevelName(level.upper())
    return numeric if isinstance(numeric, int) else logging.WARNING
