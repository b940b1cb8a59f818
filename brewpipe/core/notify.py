"""
Notifications — end-of-run summaries handed to the desktop (or terminal).

The executor calls ``notify(success, details)`` exactly once per finished
run or diagnostic. Whether a quiet success is actually shown is the
sink's business (``notify_on_success``), not the executor's.
"""

from __future__ import annotations

import logging
from typing import Protocol

from brewpipe.core.models.result import DiagnosticResult, ExecutionResult

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def notify(self, success: bool, details: str) -> None: ...


class LogNotifier:
    """Notification sink that writes summaries to the application log."""

    def __init__(self, notify_on_success: bool = True):
        self.notify_on_success = notify_on_success

    def notify(self, success: bool, details: str) -> None:
        if not should_notify(success, details, self.notify_on_success):
            return
        if success:
            logger.info("%s", details)
        else:
            logger.warning("%s", details)


class RecordingNotifier:
    """Keeps every notification in memory (front ends and tests)."""

    def __init__(self) -> None:
        self.calls: list[tuple[bool, str]] = []

    def notify(self, success: bool, details: str) -> None:
        self.calls.append((success, details))


BROKEN_CASKS_MARK = "broken cask(s)"


def should_notify(success: bool, details: str, notify_on_success: bool) -> bool:
    """Quiet successes are dropped, except ones reporting disabled casks."""
    if not success or notify_on_success:
        return True
    return BROKEN_CASKS_MARK in details


# ── Summary text ────────────────────────────────────────────────


def run_summary(result: ExecutionResult) -> str:
    """Human summary of a finished update run."""
    if result.aborted:
        return f"⚠️ Run skipped: {result.abort_reason}"
    if result.cancelled:
        return "⚠️ Run cancelled."
    if result.broken_casks:
        names = ", ".join(result.broken_casks)
        return f"✅ Done! Disabled {len(result.broken_casks)} {BROKEN_CASKS_MARK}: {names}"
    if result.any_step_failed:
        return "⚠️ Updates finished with errors."
    if result.kind == "update":
        return "✅ All updates completed & cache cleaned!"
    return "✅ Done!"


def doctor_summary(result: DiagnosticResult) -> str:
    if result.passed:
        return "✅ Your system is ready to brew!"
    if result.exit_code is None:
        return "⚠️ Could not run brew doctor."
    if not result.issues:
        return "⚠️ Issues found. Open the log for details."
    return f"⚠️ {len(result.issues)} issue(s): {' | '.join(result.issues[:2])}"


def missing_summary(result: DiagnosticResult) -> str:
    if result.exit_code is None:
        return "⚠️ Could not run brew missing."
    if not result.issues:
        return "✅ No missing dependencies found!"
    return f"⚠️ {len(result.issues)} formula(e) have missing deps. Check output window."
