"""
OutputLog — the ordered, append-only line sequence of one run.

Thread safety model
───────────────────
- Both stream readers of the active command append concurrently; every
  append goes through ``_lock`` so lines never interleave or get lost.
- The lock is shared with the input bridge and the executor state, so
  one discipline covers all shared mutable state of a run.
- Listeners are called after the lock is released, in append order
  per reader.

The buffer is a bounded ring (``deque(maxlen=...)``). ``cursor`` counts
every line ever appended since the last ``clear()``, so "lines since
cursor N" stays meaningful after old lines are evicted.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable

from brewpipe.core.models.output import OutputLine

logger = logging.getLogger(__name__)

LineListener = Callable[[OutputLine], None]


def split_lines(text: str) -> list[str]:
    """Split a chunk into non-empty lines, treating CR and CRLF as newlines."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return [line for line in text.split("\n") if line]


class OutputLog:
    """Bounded, thread-safe, append-only sequence of OutputLine."""

    def __init__(
        self,
        *,
        max_lines: int = 5000,
        lock: threading.RLock | None = None,
    ) -> None:
        self._lock = lock or threading.RLock()
        self._lines: deque[OutputLine] = deque(maxlen=max_lines)
        self._total = 0
        self._listeners: list[LineListener] = []

    # ── Properties ──────────────────────────────────────────────

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def cursor(self) -> int:
        """Number of lines appended since the last clear()."""
        with self._lock:
            return self._total

    @property
    def max_lines(self) -> int | None:
        return self._lines.maxlen

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)

    # ── Writing ─────────────────────────────────────────────────

    def append(self, line: OutputLine) -> None:
        with self._lock:
            self._lines.append(line)
            self._total += 1
        self._dispatch([line])

    def append_text(
        self,
        text: str,
        *,
        is_error: bool = False,
        is_prompt: bool = False,
    ) -> list[OutputLine]:
        """Split ``text`` into lines and append them as one atomic batch."""
        lines = [
            OutputLine(text=t, is_error=is_error and not is_prompt, is_prompt=is_prompt)
            for t in split_lines(text)
        ]
        if not lines:
            return lines
        with self._lock:
            self._lines.extend(lines)
            self._total += len(lines)
        self._dispatch(lines)
        return lines

    def clear(self, max_lines: int | None = None) -> None:
        """Drop all lines; optionally resize the ring."""
        with self._lock:
            if max_lines is not None and max_lines != self._lines.maxlen:
                self._lines = deque(maxlen=max_lines)
            else:
                self._lines.clear()
            self._total = 0

    # ── Reading ─────────────────────────────────────────────────

    def snapshot(self) -> list[OutputLine]:
        with self._lock:
            return list(self._lines)

    def since(self, cursor: int) -> list[OutputLine]:
        """Lines appended at or after ``cursor``.

        Lines already evicted from the ring are gone; a cursor taken
        before a clear() reads from the start.
        """
        return self.read_from(cursor)[0]

    def read_from(self, cursor: int) -> tuple[list[OutputLine], int]:
        """Return (lines since ``cursor``, new cursor) atomically."""
        with self._lock:
            if cursor > self._total:
                cursor = 0
            first_held = self._total - len(self._lines)
            start = max(0, cursor - first_held)
            lines = list(self._lines)[start:]
            return lines, self._total

    # ── Listeners ───────────────────────────────────────────────

    def subscribe(self, listener: LineListener) -> Callable[[], None]:
        """Register a per-line callback. Returns an unsubscribe function."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _dispatch(self, lines: list[OutputLine]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            for line in lines:
                try:
                    listener(line)
                except Exception:
                    logger.exception("Output listener failed")
