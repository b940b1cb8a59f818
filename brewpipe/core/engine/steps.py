"""
Steps — the unit of work in a pipeline run.

A step is either a command (``executable`` + ``args``) handed to the
process runner, or a scripted step (``action``) that runs in-process
and returns an exit status. Steps are immutable and built fresh at the
start of every run from a Settings snapshot.

Optional steps carry a ``toggle``: the name of the boolean Settings
field that switches them on. ``plan_steps`` drops the ones switched off.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from brewpipe.core.engine.output import OutputLog
from brewpipe.core.models.result import ExecutionResult
from brewpipe.core.models.settings import Settings
from brewpipe.core.persistence.run_log import LogSink, NullLog

if TYPE_CHECKING:
    from brewpipe.core.engine.hooks import StepHook

logger = logging.getLogger(__name__)


@dataclass
class StepContext:
    """What a scripted step or hook can see and touch during a run."""

    settings: Settings
    env: dict[str, str]
    output: OutputLog
    result: ExecutionResult
    run_log: LogSink = field(default_factory=NullLog)
    scratch: dict[str, Any] = field(default_factory=dict)

    def emit(self, text: str, *, is_error: bool = False) -> None:
        """Publish a note line to the run output (and the run log)."""
        self.output.append_text(text, is_error=is_error)
        try:
            self.run_log.append(datetime.now(), text)
        except Exception as e:
            logger.debug("Run log sink failed: %s", e)


StepAction = Callable[[StepContext], int]


@dataclass(frozen=True)
class Step:
    """One ordered unit of work."""

    label: str                              # status message while running
    executable: str = ""
    args: tuple[str, ...] = ()
    optional: bool = False
    toggle: str | None = None               # Settings field enabling an optional step
    action: StepAction | None = None        # scripted step instead of a command
    hooks: tuple[StepHook, ...] = ()

    @property
    def is_scripted(self) -> bool:
        return self.action is not None

    @property
    def command(self) -> str:
        """Display form of the command (``brew upgrade --greedy``)."""
        if self.is_scripted:
            return f"[script] {self.label}"
        return " ".join([Path(self.executable).name, *self.args])

    def enabled(self, settings: Settings) -> bool:
        if not self.optional or self.toggle is None:
            return True
        return bool(getattr(settings, self.toggle))


def plan_steps(candidates: Iterable[Step], settings: Settings) -> list[Step]:
    """Concrete step list: candidates in order, minus switched-off options."""
    return [step for step in candidates if step.enabled(settings)]
