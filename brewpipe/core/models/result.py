"""
Run results — per-step records and the aggregate of one pipeline run.

Step failures never raise; they land here. The aggregate
``any_step_failed`` is the OR of every step's outcome.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from brewpipe.core.models.inventory import OutdatedPackage
from brewpipe.core.models.output import OutputLine


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    return f"run-{now}-{uuid.uuid4().hex[:6]}"


class StepRecord(BaseModel):
    """Outcome of one executed step."""

    label: str
    command: str = ""
    status: Literal["ok", "failed", "skipped"] = "ok"
    exit_code: int | None = None
    error: str | None = None
    duration_ms: int = 0
    prompt_abandoned: bool = False

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"


class ExecutionResult(BaseModel):
    """Everything one pipeline run produced."""

    run_id: str = Field(default_factory=generate_run_id)
    kind: str = "update"
    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = ""

    lines: list[OutputLine] = Field(default_factory=list)
    steps: list[StepRecord] = Field(default_factory=list)

    any_step_failed: bool = False
    aborted: bool = False
    abort_reason: str = ""
    cancelled: bool = False

    # ── Parser-derived artifacts ─────────────────────────────────
    outdated: list[OutdatedPackage] = Field(default_factory=list)
    skipped_packages: list[str] = Field(default_factory=list)
    broken_casks: list[str] = Field(default_factory=list)
    disk_freed_bytes: int = 0

    @property
    def success(self) -> bool:
        return not (self.any_step_failed or self.aborted or self.cancelled)

    @property
    def failed_steps(self) -> list[StepRecord]:
        return [s for s in self.steps if s.failed]

    def record(self, step: StepRecord) -> None:
        """Append a step record and fold it into the aggregate."""
        self.steps.append(step)
        if step.failed:
            self.any_step_failed = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "kind": self.kind,
            "success": self.success,
            "any_step_failed": self.any_step_failed,
            "aborted": self.aborted,
            "abort_reason": self.abort_reason,
            "cancelled": self.cancelled,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "steps": [s.model_dump(mode="json") for s in self.steps],
            "skipped_packages": self.skipped_packages,
            "broken_casks": self.broken_casks,
            "disk_freed_bytes": self.disk_freed_bytes,
            "line_count": len(self.lines),
        }


class DiagnosticResult(BaseModel):
    """Outcome of a standalone health or dependency check."""

    kind: str
    passed: bool = False
    summary: str = ""
    issues: list[str] = Field(default_factory=list)
    exit_code: int | None = None
    lines: list[OutputLine] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "passed": self.passed,
            "summary": self.summary,
            "issues": self.issues,
            "exit_code": self.exit_code,
        }
