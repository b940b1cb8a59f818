"""
Input bridge — parks a command that asked for input until someone answers.

State machine
─────────────
::

    IDLE ──begin_step()──▶ STEP_RUNNING ──request_input()──▶ AWAITING_INPUT
      ▲                        │    ▲                              │
      └──────end_step()────────┘    └──submit() / abandon()────────┘

All transitions happen under one ``threading.Condition``; waiters park on
it and re-check their predicate, so a wakeup can be neither lost nor
double-counted.

Two parties block while a prompt is outstanding:

- the stream reader that saw the prompt (inside ``request_input``), so no
  more output is consumed from that channel until the reply is written;
- the pipeline worker (inside ``wait_resolved``), so the next step does
  not start.

Exactly one prompt is outstanding at a time. A second ``request_input``
queues behind the first instead of overwriting it.
"""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Callable

from brewpipe.core.errors import PromptAbandoned

logger = logging.getLogger(__name__)


class BridgeState(str, enum.Enum):
    IDLE = "idle"
    STEP_RUNNING = "step_running"
    AWAITING_INPUT = "awaiting_input"


class _Request:
    """One outstanding prompt and its eventual reply."""

    __slots__ = ("prompt", "reply", "abandoned", "reason", "resume_state", "owner")

    def __init__(self, prompt: str, resume_state: BridgeState, owner: object = None):
        self.prompt = prompt
        self.owner = owner
        self.reply: str | None = None
        self.abandoned = False
        self.reason = ""
        self.resume_state = resume_state

    @property
    def done(self) -> bool:
        return self.reply is not None or self.abandoned


class InputBridge:
    """Hand-off point between a prompting command and the input supplier.

    Parameters
    ----------
    lock : threading.RLock | None
        Lock shared with the output log and executor state.
    timeout : float | None
        Seconds to wait for a reply before abandoning the prompt.
        ``None`` waits forever.
    on_change : callable | None
        Called (outside the lock) whenever ``waiting`` flips.
    """

    def __init__(
        self,
        lock: threading.RLock | None = None,
        *,
        timeout: float | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._cond = threading.Condition(lock or threading.RLock())
        self._state = BridgeState.IDLE
        self._pending: _Request | None = None
        self._cancelled = False
        self._retired: dict[int, str] = {}
        self.timeout = timeout
        self._on_change = on_change

    # ── Properties ──────────────────────────────────────────────

    @property
    def state(self) -> BridgeState:
        with self._cond:
            return self._state

    @property
    def waiting(self) -> bool:
        with self._cond:
            return self._pending is not None

    @property
    def prompt_text(self) -> str:
        with self._cond:
            return self._pending.prompt if self._pending else ""

    # ── Step lifecycle (pipeline worker) ────────────────────────

    def reset(self, timeout: float | None = None) -> None:
        """Prepare for a new run: IDLE, not cancelled, new timeout."""
        with self._cond:
            if self._pending is not None:
                self._release(self._pending, reason="reset")
            self._state = BridgeState.IDLE
            self._cancelled = False
            self._retired.clear()
            self.timeout = timeout
            self._cond.notify_all()

    def begin_step(self) -> None:
        with self._cond:
            self._cond.wait_for(lambda: self._pending is None)
            self._state = BridgeState.STEP_RUNNING

    def end_step(self) -> None:
        with self._cond:
            self._cond.wait_for(lambda: self._pending is None)
            self._state = BridgeState.IDLE
            self._cond.notify_all()

    def wait_resolved(self, timeout: float | None = None) -> bool:
        """Block until no prompt is outstanding. False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._pending is None, timeout)

    # ── Prompt side (stream reader) ─────────────────────────────

    def request_input(self, prompt: str, owner: object = None) -> str:
        """Park the calling reader until input arrives for ``prompt``.

        ``owner`` identifies the command that prompted; see ``retire``.

        Returns:
            The supplied text (without line terminator).

        Raises:
            PromptAbandoned: On timeout, cancel, reset, or when ``owner``
                has been retired.
        """
        prompt = prompt.strip()
        with self._cond:
            self._cond.wait_for(lambda: self._pending is None or self._is_retired(owner))
            if self._is_retired(owner):
                raise PromptAbandoned(prompt, self._retired[id(owner)])
            if self._cancelled:
                raise PromptAbandoned(prompt, "cancelled")
            request = _Request(prompt, resume_state=self._state, owner=owner)
            self._pending = request
            self._state = BridgeState.AWAITING_INPUT
            self._cond.notify_all()
        logger.debug("Awaiting input for prompt: %r", prompt)
        self._changed()

        with self._cond:
            answered = self._cond.wait_for(lambda: request.done, self.timeout)
            if not answered:
                logger.warning("Prompt timed out after %ss: %r", self.timeout, prompt)
                self._release(request, reason="timeout")
        if not answered:
            self._changed()

        if request.abandoned:
            raise PromptAbandoned(prompt, request.reason)
        assert request.reply is not None
        return request.reply

    # ── Input side (caller / UI) ────────────────────────────────

    def submit(self, text: str) -> bool:
        """Answer the outstanding prompt. No-op (False) if none is pending."""
        with self._cond:
            request = self._pending
            if request is None:
                return False
            self._release(request, reply=text)
        self._changed()
        return True

    def abandon(self, reason: str = "cancelled") -> bool:
        """Release the outstanding prompt without input."""
        with self._cond:
            request = self._pending
            if request is None:
                return False
            self._release(request, reason=reason)
        self._changed()
        return True

    def retire(self, owner: object, reason: str) -> bool:
        """Release ``owner``'s prompt and refuse any further ones it raises.

        Used once a command has exited: nothing can read a reply any more.
        Returns True if an outstanding prompt was released.
        """
        with self._cond:
            self._retired[id(owner)] = reason
            # Wake readers of this owner queued behind another prompt
            self._cond.notify_all()
            request = self._pending
            if request is None or request.owner is not owner:
                return False
            self._release(request, reason=reason)
        self._changed()
        return True

    def forget(self, owner: object) -> None:
        with self._cond:
            self._retired.pop(id(owner), None)

    def cancel(self) -> bool:
        """Abandon the current prompt and refuse further prompts until reset()."""
        with self._cond:
            self._cancelled = True
        return self.abandon("cancelled")

    # ── Internals ───────────────────────────────────────────────

    def _release(
        self,
        request: _Request,
        *,
        reply: str | None = None,
        reason: str = "",
    ) -> None:
        # Caller holds the lock.
        if reply is None:
            request.abandoned = True
            request.reason = reason
        else:
            request.reply = reply
        if self._pending is request:
            self._pending = None
            self._state = request.resume_state
        self._cond.notify_all()

    def _is_retired(self, owner: object) -> bool:
        return owner is not None and id(owner) in self._retired

    def _changed(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change()
        except Exception:
            logger.exception("Bridge change callback failed")
