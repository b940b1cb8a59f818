"""
Run log — durable, append-only record of every dispatched output line.

One timestamped text line per entry::

    [2026-10-19 09:14:02] $ /opt/homebrew/bin/brew update
    [2026-10-19 09:14:05] stdout: Already up-to-date.

Writing is best effort. A failed write never reaches the caller; the
pipeline must not stall or fail because the log volume is unavailable.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

_TIMESTAMP_FMT = "%Y-%m-%d %H:%M:%S"


class LogSink(Protocol):
    """Anything that accepts timestamped log entries."""

    def append(self, timestamp: datetime, text: str) -> None: ...


class RunLog:
    """File-backed log sink.

    Entries from both stream readers of a command arrive concurrently,
    so writes are serialized on a private lock.
    """

    def __init__(self, path: Path):
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def append(self, timestamp: datetime, text: str) -> None:
        line = f"[{timestamp.strftime(_TIMESTAMP_FMT)}] {text}\n"
        try:
            with self._lock:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with self._path.open("a", encoding="utf-8") as f:
                    f.write(line)
        except OSError as e:
            logger.debug("Run log write failed (%s): %s", self._path, e)

    def log(self, text: str) -> None:
        """Append an entry stamped with the current local time."""
        self.append(datetime.now(), text)

    def read_lines(self) -> list[str]:
        """Read all entries, oldest first."""
        if not self._path.is_file():
            return []
        try:
            return self._path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            logger.error("Failed to read run log: %s", e)
            return []


class NullLog:
    """Log sink that discards everything."""

    def append(self, timestamp: datetime, text: str) -> None:
        pass

    def log(self, text: str) -> None:
        pass
