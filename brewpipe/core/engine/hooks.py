"""
Step hooks — pluggable behaviour around a step.

A hook may take a measurement before its step, and after it may emit
notes and return follow-up steps. The executor runs follow-ups right
away, with the same failure and prompt handling as any other step,
before moving on to the next hook.

These heuristics read package-manager output text. They are attached
to steps by the pipeline builders rather than hardcoded in the
executor, so a format change only touches this module.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from brewpipe.core.engine.steps import Step, StepContext
from brewpipe.core.environment import disk_free_bytes
from brewpipe.core.models.output import OutputLine
from brewpipe.core.models.result import StepRecord
from brewpipe.core.services.parsers import parse_skipped_packages

logger = logging.getLogger(__name__)


class StepHook:
    """Base hook: does nothing. Override ``before`` and/or ``after``."""

    def before(self, step: Step, ctx: StepContext) -> None:
        return None

    def after(
        self,
        step: Step,
        record: StepRecord,
        lines: Sequence[OutputLine],
        ctx: StepContext,
    ) -> list[Step]:
        return []

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


class SkippedPackageRetry(StepHook):
    """Force-upgrade packages the step reported as skipped.

    Looks for ``Warning: Skipping <pkg>: ... not installed`` in the
    step's own output. Never fires in dry-run mode.

    Args:
        label: Status label for the retry; ``{count}`` is substituted.
        then: Steps to run after the retry (e.g. a second cleanup).
    """

    def __init__(
        self,
        label: str = "Force-upgrading {count} skipped package(s)...",
        then: Sequence[Step] = (),
    ):
        self.label = label
        self.then = tuple(then)

    def after(
        self,
        step: Step,
        record: StepRecord,
        lines: Sequence[OutputLine],
        ctx: StepContext,
    ) -> list[Step]:
        if ctx.settings.dry_run:
            return []
        skipped = parse_skipped_packages(lines)
        if not skipped:
            return []

        logger.info("Retrying %d skipped package(s): %s", len(skipped), ", ".join(skipped))
        ctx.result.skipped_packages.extend(skipped)
        ctx.emit(f"🔁 Force-upgrading skipped: {', '.join(skipped)}")
        retry = Step(
            label=self.label.format(count=len(skipped)),
            executable=step.executable,
            args=("upgrade", "--force", *skipped),
        )
        return [retry, *self.then]


class DiskSpaceReport(StepHook):
    """Report disk space freed between before() and after()."""

    def __init__(self, path: str = "/"):
        self.path = path

    def before(self, step: Step, ctx: StepContext) -> None:
        ctx.scratch[self._key(step)] = disk_free_bytes(self.path)

    def after(
        self,
        step: Step,
        record: StepRecord,
        lines: Sequence[OutputLine],
        ctx: StepContext,
    ) -> list[Step]:
        before = ctx.scratch.pop(self._key(step), None)
        if before is None:
            return []
        freed = disk_free_bytes(self.path) - before
        if freed > 0:
            ctx.result.disk_freed_bytes += freed
            ctx.emit(f"🧹 Freed {freed // 1_000_000} MB")
        return []

    def _key(self, step: Step) -> str:
        return f"disk_free:{step.label}"


class ExitCodeNotice(StepHook):
    """Emit a note when the step exits with a specific code.

    With ``skip`` set, that exit code marks the step skipped instead of
    failed (e.g. an optional tool that is not installed).
    """

    def __init__(self, exit_code: int, message: str, *, skip: bool = False):
        self.exit_code = exit_code
        self.message = message
        self.skip = skip

    def after(
        self,
        step: Step,
        record: StepRecord,
        lines: Sequence[OutputLine],
        ctx: StepContext,
    ) -> list[Step]:
        if record.exit_code != self.exit_code:
            return []
        ctx.emit(self.message)
        if self.skip:
            record.status = "skipped"
            record.error = None
            ctx.result.any_step_failed = any(s.failed for s in ctx.result.steps)
        return []
