"""
Engine executor — runs pipelines on a background worker.

The executor is the heartbeat of brewpipe. A front end asks it to start
a run; it takes a Settings snapshot, builds the step list, and executes
the steps strictly in order on one worker thread while the caller stays
responsive and watches ``current_state()`` / ``output_snapshot()``.

Flow:
    start_run → snapshot settings → precondition → plan steps →
    for each step: status ← label → run (prompts parked in the bridge)
    → record → hooks (may add follow-up steps) → result → notify

Policies:
    - One run (or diagnostic) at a time. Starting another while busy is
      a silent no-op, not a queue.
    - Best effort: a failed step sets ``any_step_failed`` and the run
      moves on. Only a failed precondition aborts the whole run.
    - Cancellation takes effect at step boundaries, or immediately when
      a prompt is outstanding (the prompted command is terminated).
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from brewpipe.adapters.shell.process import ProcessRunner
from brewpipe.core.engine.bridge import InputBridge
from brewpipe.core.engine.output import OutputLog
from brewpipe.core.engine.pipelines import (
    build_update_steps,
    dev_update_steps,
    doctor_step,
    missing_step,
    reinstall_steps,
    service_action_steps,
    system_update_steps,
)
from brewpipe.core.engine.prompt import detect_prompt
from brewpipe.core.engine.steps import Step, StepContext, plan_steps
from brewpipe.core.environment import is_connected, make_environment
from brewpipe.core.errors import LaunchFailure
from brewpipe.core.models.inventory import BrewService
from brewpipe.core.models.output import OutputLine, PipelineState
from brewpipe.core.models.result import DiagnosticResult, ExecutionResult, StepRecord
from brewpipe.core.models.settings import Settings
from brewpipe.core.notify import (
    LogNotifier,
    NotificationSink,
    doctor_summary,
    missing_summary,
    run_summary,
)
from brewpipe.core.persistence.run_log import LogSink, RunLog
from brewpipe.core.services.inventory import fetch_outdated, fetch_services
from brewpipe.core.services.parsers import parse_doctor_issues, parse_missing_dependencies

logger = logging.getLogger(__name__)

IDLE_STATUS = "Idle"
DIAGNOSTIC_KINDS = ("doctor", "missing")

Mode = Literal["idle", "run", "diagnostic"]
SettingsSource = Settings | Callable[[], Settings]
Job = Callable[[Settings, ProcessRunner, LogSink], tuple[bool, str]]


def default_precondition(settings: Settings) -> bool:
    """Network check before an update run (skippable via settings)."""
    if not settings.check_connectivity:
        return True
    return is_connected()


class PipelineExecutor:
    """Single-worker pipeline engine with interactive prompt hand-off.

    Args:
        settings: A Settings snapshot, or a callable returning a fresh
            one at every run start (e.g. re-reading the config file).
        notifier: End-of-run sink. Defaults to logging.
        run_log: Durable per-line sink. Defaults to ``settings.log_file``.
        precondition: Checked before update runs; False aborts the run.
        step_builder: Candidate steps for an update run.
        detector: Prompt predicate for the process runner.
        refresh_outdated: Re-query outdated packages after update runs.
        on_state_change: Called with a fresh PipelineState on changes.
    """

    def __init__(
        self,
        settings: SettingsSource | None = None,
        *,
        notifier: NotificationSink | None = None,
        run_log: LogSink | None = None,
        precondition: Callable[[Settings], bool] = default_precondition,
        step_builder: Callable[[Settings], list[Step]] = build_update_steps,
        detector: Callable[[str], bool] = detect_prompt,
        refresh_outdated: bool = True,
        on_state_change: Callable[[PipelineState], None] | None = None,
    ) -> None:
        self._settings_source: SettingsSource = settings or Settings()
        self._notifier = notifier
        self._run_log = run_log
        self._precondition = precondition
        self._step_builder = step_builder
        self._detector = detector
        self._refresh_outdated = refresh_outdated
        self._on_state_change = on_state_change

        self._lock = threading.RLock()
        self.output = OutputLog(lock=self._lock)
        self.bridge = InputBridge(self._lock, on_change=self._state_changed)

        self._mode: Mode = "idle"
        self._status = IDLE_STATUS
        self._has_issues = False
        self._cancel = threading.Event()
        self._worker: threading.Thread | None = None

        self.last_result: ExecutionResult | None = None
        self.last_diagnostic: DiagnosticResult | None = None
        self.services: list[BrewService] = []

    # ── Observation ─────────────────────────────────────────────

    def current_state(self) -> PipelineState:
        with self._lock:
            return PipelineState(
                status=self._status,
                running=self._mode != "idle",
                waiting_for_input=self.bridge.waiting,
                prompt_text=self.bridge.prompt_text,
                mode=self._mode,
                has_issues=self._has_issues,
            )

    def output_snapshot(self) -> list[OutputLine]:
        return self.output.snapshot()

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._mode != "idle"

    def snapshot_settings(self) -> Settings:
        source = self._settings_source
        return source() if callable(source) else source

    # ── Commands ────────────────────────────────────────────────

    def start_run(self, steps: Sequence[Step] | None = None) -> bool:
        """Start a full update run (or a run of the given candidate steps).

        Returns:
            False if a run or diagnostic is already active (nothing happens).
        """
        def job(settings: Settings, runner: ProcessRunner, run_log: LogSink) -> tuple[bool, str]:
            candidates = list(steps) if steps is not None else self._step_builder(settings)
            return self._run_pipeline(
                "update", candidates, settings, runner, run_log, check_precondition=True
            )

        return self._start("run", "update", job)

    def start_diagnostic(self, kind: str) -> bool:
        """Start a standalone ``doctor`` or ``missing`` check."""
        if kind not in DIAGNOSTIC_KINDS:
            raise ValueError(f"Unknown diagnostic '{kind}' (expected one of {DIAGNOSTIC_KINDS})")

        def job(settings: Settings, runner: ProcessRunner, run_log: LogSink) -> tuple[bool, str]:
            return self._run_diagnostic(kind, settings, runner, run_log)

        return self._start("diagnostic", kind, job)

    def start_reinstall(self, formulae: Sequence[str]) -> bool:
        """Reinstall packages reported by the ``missing`` diagnostic."""
        if not formulae:
            return False
        return self._start_steps("reinstall", lambda s: reinstall_steps(s, formulae))

    def start_service_action(self, action: str, service: str) -> bool:
        """Run ``brew services <action> <service>``, then re-read the services."""

        def job(settings: Settings, runner: ProcessRunner, run_log: LogSink) -> tuple[bool, str]:
            outcome = self._run_pipeline(
                "service",
                service_action_steps(settings, action, service),
                settings,
                runner,
                run_log,
                check_precondition=False,
            )
            self.refresh_services(settings)
            return outcome

        return self._start("run", "service", job)

    def start_system_update(self) -> bool:
        return self._start_steps("system-update", system_update_steps)

    def start_dev_update(self) -> bool:
        return self._start_steps("dev-update", dev_update_steps)

    def submit_input(self, text: str) -> bool:
        """Answer the outstanding prompt. No-op (False) if none is pending."""
        return self.bridge.submit(text)

    def cancel(self) -> bool:
        """Stop the active run at the next step boundary.

        An outstanding prompt is abandoned right away, which terminates
        the prompting command.
        """
        with self._lock:
            if self._mode == "idle":
                return False
            self._cancel.set()
        self.bridge.cancel()
        logger.info("Cancellation requested")
        return True

    def clear_output(self) -> bool:
        """Drop accumulated lines between runs. Refused while busy."""
        with self._lock:
            if self._mode != "idle":
                return False
            self.output.clear()
        return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the active worker finishes. True if idle afterwards."""
        worker = self._worker
        if worker is not None:
            worker.join(timeout)
        return not self.is_running

    def refresh_services(self, settings: Settings | None = None) -> list[BrewService]:
        """Re-read ``brew services list``; a service in error raises ``has_issues``.

        A clean list leaves ``has_issues`` alone: only the next doctor
        run clears it.
        """
        services = fetch_services(settings or self.snapshot_settings())
        in_error = [s.name for s in services if s.in_error]
        with self._lock:
            self.services = services
            if in_error:
                self._has_issues = True
        if in_error:
            logger.info("Services in error: %s", ", ".join(in_error))
            self._state_changed()
        return services

    # ── Worker lifecycle ────────────────────────────────────────

    def _start_steps(self, kind: str, build: Callable[[Settings], list[Step]]) -> bool:
        def job(settings: Settings, runner: ProcessRunner, run_log: LogSink) -> tuple[bool, str]:
            return self._run_pipeline(
                kind, build(settings), settings, runner, run_log, check_precondition=False
            )

        return self._start("run", kind, job)

    def _start(self, mode: Mode, kind: str, job: Job) -> bool:
        settings = self.snapshot_settings()
        with self._lock:
            if self._mode != "idle":
                logger.debug("Ignoring %s request: %s already active", kind, self._mode)
                return False
            self._mode = mode
            self._status = IDLE_STATUS
            self._cancel.clear()
            self.output.clear(max_lines=settings.max_output_lines)
            self.bridge.reset(timeout=settings.prompt_timeout)
            worker = threading.Thread(
                target=self._work,
                args=(kind, job, settings),
                name=f"brewpipe-{kind}",
                daemon=True,
            )
            self._worker = worker
        logger.info("Starting %s", kind)
        worker.start()
        self._state_changed()
        return True

    def _work(self, kind: str, job: Job, settings: Settings) -> None:
        run_log = self._run_log or RunLog(Path(settings.log_file).expanduser())
        runner = ProcessRunner(self.output, self.bridge, run_log=run_log, detector=self._detector)
        try:
            success, details = job(settings, runner, run_log)
        except Exception as e:
            logger.exception("%s worker crashed", kind)
            success, details = False, f"⚠️ {kind} failed: {e}"
        finally:
            with self._lock:
                self._mode = "idle"
                self._status = IDLE_STATUS
            self._state_changed()

        logger.info("Finished %s (success: %s)", kind, success)
        notifier = self._notifier or LogNotifier(notify_on_success=settings.notify_on_success)
        notifier.notify(success, details)

    # ── Pipeline runs ───────────────────────────────────────────

    def _run_pipeline(
        self,
        kind: str,
        candidates: Sequence[Step],
        settings: Settings,
        runner: ProcessRunner,
        run_log: LogSink,
        *,
        check_precondition: bool,
    ) -> tuple[bool, str]:
        result = ExecutionResult(kind=kind)
        ctx = StepContext(
            settings=settings,
            env=make_environment(settings.search_path),
            output=self.output,
            result=result,
            run_log=run_log,
        )
        _log(run_log, f"--- brewpipe {kind} started ---")

        if check_precondition and not self._precondition(settings):
            ctx.emit("⚠️ No internet connection. Skipping run.")
            result.aborted = True
            result.abort_reason = "No internet connection"
        else:
            for step in plan_steps(candidates, settings):
                if self._cancel.is_set():
                    result.cancelled = True
                    ctx.emit("Run cancelled.", is_error=True)
                    break
                self._execute_step(step, ctx, runner)
            if self._cancel.is_set():
                result.cancelled = True

        if kind == "update" and self._refresh_outdated and not result.aborted:
            result.outdated = fetch_outdated(settings)

        result.lines = self.output.snapshot()
        result.ended_at = datetime.now(UTC).isoformat()
        _log(run_log, f"--- brewpipe {kind} finished (success: {result.success}) ---")
        self.last_result = result
        return result.success, run_summary(result)

    def _execute_step(self, step: Step, ctx: StepContext, runner: ProcessRunner) -> StepRecord:
        with self._lock:
            self._status = step.label
        self._state_changed()
        _log(ctx.run_log, f"--- {step.label} ---")

        for hook in step.hooks:
            try:
                hook.before(step, ctx)
            except Exception:
                logger.exception("Hook %r failed before '%s'", hook, step.label)

        record = StepRecord(label=step.label, command=step.command)
        mark = self.output.cursor
        start = time.monotonic()
        self.bridge.begin_step()
        try:
            if step.action is not None:
                record.exit_code = step.action(ctx)
            else:
                outcome = runner.execute(step.executable, step.args, ctx.env)
                record.exit_code = outcome.exit_code
                record.prompt_abandoned = outcome.prompt_abandoned
            if record.exit_code != 0:
                record.status = "failed"
                record.error = f"Exited with code {record.exit_code}"
        except LaunchFailure as e:
            record.status = "failed"
            record.error = str(e)
            ctx.emit(f"✖ {e}", is_error=True)
        except Exception as e:
            logger.exception("Scripted step '%s' raised", step.label)
            record.status = "failed"
            record.error = f"{type(e).__name__}: {e}"
            ctx.emit(f"✖ {step.label} failed: {e}", is_error=True)
        finally:
            # Second suspension point: hold the pipeline while a prompt is open
            self.bridge.wait_resolved()
            self.bridge.end_step()

        record.duration_ms = int((time.monotonic() - start) * 1000)
        ctx.result.record(record)
        logger.info(
            "%s %s → %s",
            "✓" if record.ok else "✗",
            step.label,
            record.exit_code if record.error is None else record.error,
        )

        lines = self.output.since(mark)
        for hook in step.hooks:
            try:
                follow_ups = hook.after(step, record, lines, ctx)
            except Exception:
                logger.exception("Hook %r failed after '%s'", hook, step.label)
                continue
            for follow_up in follow_ups:
                if self._cancel.is_set():
                    break
                self._execute_step(follow_up, ctx, runner)
        return record

    # ── Diagnostics ─────────────────────────────────────────────

    def _run_diagnostic(
        self,
        kind: str,
        settings: Settings,
        runner: ProcessRunner,
        run_log: LogSink,
    ) -> tuple[bool, str]:
        step = doctor_step(settings) if kind == "doctor" else missing_step(settings)
        ctx = StepContext(
            settings=settings,
            env=make_environment(settings.search_path),
            output=self.output,
            result=ExecutionResult(kind=kind),
            run_log=run_log,
        )
        _log(run_log, f"--- {kind} started ---")
        record = self._execute_step(step, ctx, runner)
        lines = self.output.snapshot()

        diagnostic = DiagnosticResult(kind=kind, exit_code=record.exit_code, lines=lines)
        if kind == "doctor":
            diagnostic.passed = record.exit_code == 0
            diagnostic.issues = parse_doctor_issues(lines)
            diagnostic.summary = doctor_summary(diagnostic)
            with self._lock:
                self._has_issues = not diagnostic.passed
        else:
            diagnostic.issues = parse_missing_dependencies(lines)
            diagnostic.passed = record.exit_code is not None and not diagnostic.issues
            diagnostic.summary = missing_summary(diagnostic)

        _log(run_log, f"--- {kind} finished (passed: {diagnostic.passed}) ---")
        self.last_diagnostic = diagnostic
        return diagnostic.passed, diagnostic.summary

    # ── Internals ───────────────────────────────────────────────

    def _state_changed(self) -> None:
        if self._on_state_change is None:
            return
        try:
            self._on_state_change(self.current_state())
        except Exception:
            logger.exception("State change callback failed")


def _log(run_log: LogSink, text: str) -> None:
    try:
        run_log.append(datetime.now(), text)
    except Exception as e:
        logger.debug("Run log sink failed: %s", e)
