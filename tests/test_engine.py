"""
Tests for the pipeline executor — planning, ordering, prompts, diagnostics.

Runs go through real processes: the fake ``brew``/``mas`` scripts from
conftest.py record every invocation in ``calls.log``.
"""

import time
from pathlib import Path

import pytest

from brewpipe.core.engine import pipelines
from brewpipe.core.engine.executor import PipelineExecutor
from brewpipe.core.engine.hooks import ExitCodeNotice
from brewpipe.core.engine.steps import Step, plan_steps
from brewpipe.core.notify import RecordingNotifier
from brewpipe.core.persistence.run_log import NullLog, RunLog

SH = "/bin/sh"
PROMPT_SCRIPT = "printf 'Password:'; read reply; echo \"got $reply\""

MANDATORY_RUN = [
    "Updating Homebrew...",
    "Upgrading packages...",
    "Checking App Store updates...",
    "Upgrading App Store apps...",
    "Cleaning up Homebrew cache...",
    "Checking for broken casks...",
]


def _executor(settings, **kwargs):
    notifier = RecordingNotifier()
    kwargs.setdefault("run_log", NullLog())
    kwargs.setdefault("refresh_outdated", False)
    return PipelineExecutor(settings, notifier=notifier, **kwargs), notifier


def _run(executor, **kwargs):
    assert executor.start_run(**kwargs)
    assert executor.wait(timeout=30)
    return executor.last_result


def _wait_for_prompt(executor, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if executor.current_state().waiting_for_input:
            return True
        time.sleep(0.01)
    return False


def _labels(result):
    return [step.label for step in result.steps]


def _texts(lines):
    return [line.text for line in lines]


def _calls(calls_log: Path):
    return calls_log.read_text().splitlines() if calls_log.is_file() else []


# ── Planning ────────────────────────────────────────────────────


class TestPlanning:
    def test_default_candidates(self, settings):
        steps = plan_steps(pipelines.build_update_steps(settings), settings)
        assert [s.label for s in steps] == MANDATORY_RUN

    def test_optional_steps_switched_off(self, settings):
        settings = settings.with_overrides(
            run_app_store=False,
            run_cache_cleanup=False,
            run_broken_item_check=False,
        )
        steps = plan_steps(pipelines.build_update_steps(settings), settings)
        assert [s.label for s in steps] == ["Updating Homebrew...", "Upgrading packages..."]

    def test_scripts_and_backup(self, settings):
        settings = settings.with_overrides(
            pre_step_script="echo before",
            post_step_script="  ",
            backup_before_upgrade=True,
        )
        steps = plan_steps(pipelines.build_update_steps(settings), settings)
        labels = [s.label for s in steps]
        assert labels[0] == "Running pre-update script..."
        assert labels[2] == "Backing up package list..."
        assert "Running post-update script..." not in labels
        assert steps[2].args[-1] == f"--file={settings.backup_path}"

    def test_upgrade_flags(self, settings):
        steps = pipelines.build_update_steps(settings.with_overrides(dry_run=True))
        upgrade = next(s for s in steps if s.label == "Upgrading packages...")
        assert upgrade.args == ("upgrade", "--greedy", "--dry-run")

        steps = pipelines.build_update_steps(settings.with_overrides(greedy_upgrade=False))
        upgrade = next(s for s in steps if s.label == "Upgrading packages...")
        assert upgrade.args == ("upgrade",)

    def test_missing_tools_are_installed_first(self, settings, tmp_path):
        settings = settings.with_overrides(
            brew_path=str(tmp_path / "nowhere" / "brew"),
            mas_path=str(tmp_path / "nowhere" / "mas"),
        )
        labels = [
            s.label
            for s in plan_steps(pipelines.build_update_steps(settings), settings)
        ]
        assert labels[:3] == [
            "Installing Homebrew...",
            "Installing mas...",
            "Updating Homebrew...",
        ]

    def test_mas_install_follows_app_store_toggle(self, settings, tmp_path):
        settings = settings.with_overrides(
            mas_path=str(tmp_path / "nowhere" / "mas"),
            run_app_store=False,
        )
        labels = [
            s.label
            for s in plan_steps(pipelines.build_update_steps(settings), settings)
        ]
        assert "Installing mas..." not in labels

    def test_step_command_display(self):
        step = Step(label="x", executable="/opt/homebrew/bin/brew", args=("update",))
        assert step.command == "brew update"
        assert Step(label="y", action=lambda ctx: 0).command == "[script] y"


# ── Update runs ─────────────────────────────────────────────────


class TestUpdateRun:
    def test_mandatory_steps_in_order(self, settings, calls_log):
        executor, notifier = _executor(settings)
        result = _run(executor)

        assert _labels(result) == MANDATORY_RUN
        assert result.success
        assert _calls(calls_log) == [
            "update",
            "upgrade --greedy",
            "mas outdated",
            "mas upgrade",
            "cleanup --prune=all",
            "list --cask",
        ]
        assert notifier.calls == [(True, "✅ All updates completed & cache cleaned!")]

    def test_output_is_streamed_into_result(self, settings):
        executor, _ = _executor(settings)
        result = _run(executor)
        texts = _texts(result.lines)
        assert "$ brew update" in texts
        assert "Already up-to-date." in texts
        assert "No broken casks found." in texts
        assert _texts(executor.output_snapshot()) == texts

    def test_state_returns_to_idle(self, settings):
        executor, _ = _executor(settings)
        _run(executor)
        state = executor.current_state()
        assert state.status == "Idle"
        assert not state.running
        assert not state.waiting_for_input
        assert state.mode == "idle"

    def test_status_follows_step_labels(self, settings):
        seen = []
        executor, _ = _executor(settings, on_state_change=lambda s: seen.append(s.status))
        _run(executor)
        statuses = [s for s in seen if s != "Idle"]
        assert [s for i, s in enumerate(statuses) if s not in statuses[:i]] == MANDATORY_RUN
        assert seen[-1] == "Idle"

    def test_failing_step_does_not_stop_run(self, settings, calls_log, monkeypatch):
        monkeypatch.setenv("FAKE_UPGRADE_EXIT", "2")
        executor, notifier = _executor(settings)
        result = _run(executor)

        assert _labels(result) == MANDATORY_RUN
        assert result.any_step_failed
        assert not result.success
        failed = result.failed_steps
        assert [s.label for s in failed] == ["Upgrading packages..."]
        assert failed[0].exit_code == 2
        assert "cleanup --prune=all" in _calls(calls_log)
        assert notifier.calls == [(False, "⚠️ Updates finished with errors.")]

    def test_launch_failure_is_recorded(self, settings, tmp_path):
        executor, _ = _executor(settings)
        steps = [
            Step(label="Ghost", executable=str(tmp_path / "ghost")),
            Step(label="After", executable=SH, args=("-c", "echo after")),
        ]
        result = _run(executor, steps=steps)

        assert _labels(result) == ["Ghost", "After"]
        assert result.steps[0].failed
        assert result.steps[0].exit_code is None
        assert "Cannot launch" in result.steps[0].error
        assert "after" in _texts(result.lines)

    def test_scripted_step_exception_is_recorded(self, settings):
        def explode(ctx):
            raise RuntimeError("no casks for you")

        executor, _ = _executor(settings)
        result = _run(executor, steps=[Step(label="Scripted", action=explode)])
        assert result.any_step_failed
        assert "RuntimeError" in result.steps[0].error

    def test_pre_and_post_scripts_run(self, settings):
        settings = settings.with_overrides(
            pre_step_script="echo pre-hook",
            post_step_script="echo post-hook",
        )
        executor, _ = _executor(settings)
        result = _run(executor)
        labels = _labels(result)
        assert labels[0] == "Running pre-update script..."
        assert labels[-1] == "Running post-update script..."
        texts = _texts(result.lines)
        assert texts.index("pre-hook") < texts.index("post-hook")

    def test_backup_writes_brewfile_command(self, settings, calls_log):
        settings = settings.with_overrides(backup_before_upgrade=True)
        executor, _ = _executor(settings)
        _run(executor)
        assert f"bundle dump --force --file={settings.backup_path}" in _calls(calls_log)

    def test_run_log_records_lines(self, settings, tmp_path):
        run_log = RunLog(tmp_path / "run.log")
        executor, _ = _executor(settings, run_log=run_log)
        _run(executor)
        entries = run_log.read_lines()
        assert any(e.endswith(f"$ {settings.brew_path} update") for e in entries)
        assert any(e.endswith("stdout: Already up-to-date.") for e in entries)
        assert any(e.endswith("--- Updating Homebrew... ---") for e in entries)

    def test_outdated_refreshed_after_run(self, settings):
        executor, _ = _executor(settings, refresh_outdated=True)
        result = _run(executor)
        assert [(p.name, p.latest) for p in result.outdated] == [("wget", "1.21.4")]

    def test_settings_factory_is_read_per_run(self, settings):
        snapshots = [settings, settings.with_overrides(run_app_store=False)]
        executor, _ = _executor(lambda: snapshots.pop(0))
        first = _run(executor)
        second = _run(executor)
        assert "Checking App Store updates..." in _labels(first)
        assert "Checking App Store updates..." not in _labels(second)

    def test_output_cleared_between_runs(self, settings):
        executor, _ = _executor(settings)
        _run(executor, steps=[Step(label="One", executable=SH, args=("-c", "echo first"))])
        _run(executor, steps=[Step(label="Two", executable=SH, args=("-c", "echo second"))])
        texts = _texts(executor.output_snapshot())
        assert "second" in texts
        assert "first" not in texts

    def test_output_bounded_by_settings(self, settings):
        settings = settings.with_overrides(max_output_lines=5)
        executor, _ = _executor(settings)
        script = "for i in 1 2 3 4 5 6 7 8; do echo $i; done"
        step = Step(label="Chatty", executable=SH, args=("-c", script))
        _run(executor, steps=[step])
        assert _texts(executor.output_snapshot()) == ["4", "5", "6", "7", "8"]
        assert executor.output.cursor == 9


# ── Re-run rule ─────────────────────────────────────────────────


class TestSkippedPackageRetry:
    def test_force_upgrade_after_skip(self, settings, calls_log, monkeypatch):
        monkeypatch.setenv("FAKE_SKIP", "foo")
        executor, _ = _executor(settings)
        result = _run(executor)

        labels = _labels(result)
        upgrade_at = labels.index("Upgrading packages...")
        assert labels[upgrade_at + 1] == "Force-upgrading 1 skipped package(s)..."
        assert "upgrade --force foo" in _calls(calls_log)
        assert result.skipped_packages == ["foo"]
        assert "🔁 Force-upgrading skipped: foo" in _texts(result.lines)

    def test_no_retry_in_dry_run(self, settings, calls_log, monkeypatch):
        monkeypatch.setenv("FAKE_SKIP", "foo")
        executor, _ = _executor(settings.with_overrides(dry_run=True))
        result = _run(executor)

        assert "upgrade --greedy --dry-run" in _calls(calls_log)
        assert not any(c.startswith("upgrade --force") for c in _calls(calls_log))
        assert result.skipped_packages == []

    def test_no_retry_without_skip_warning(self, settings, calls_log):
        executor, _ = _executor(settings)
        _run(executor)
        assert not any(c.startswith("upgrade --force") for c in _calls(calls_log))


# ── Broken casks ────────────────────────────────────────────────


class TestBrokenCasks:
    def test_broken_cask_disabled(self, settings, monkeypatch):
        monkeypatch.setenv("FAKE_CASKS", "firefox ghostapp")
        monkeypatch.setenv("FAKE_BROKEN", "ghostapp")
        executor, notifier = _executor(settings)
        result = _run(executor)

        assert result.broken_casks == ["ghostapp"]
        ignored = Path(settings.ignored_casks_path).read_text()
        assert "cask 'ghostapp' do\n  disable!\nend" in ignored
        assert "firefox" not in ignored
        assert notifier.calls == [(True, "✅ Done! Disabled 1 broken cask(s): ghostapp")]

    def test_dry_run_leaves_file_alone(self, settings, monkeypatch):
        monkeypatch.setenv("FAKE_CASKS", "ghostapp")
        monkeypatch.setenv("FAKE_BROKEN", "ghostapp")
        executor, _ = _executor(settings.with_overrides(dry_run=True))
        result = _run(executor)
        assert result.broken_casks == ["ghostapp"]
        assert not Path(settings.ignored_casks_path).exists()


# ── Precondition & mutual exclusion ─────────────────────────────


class TestRunControl:
    def test_precondition_failure_aborts(self, settings, calls_log):
        executor, notifier = _executor(settings, precondition=lambda s: False)
        result = _run(executor)

        assert result.aborted
        assert result.steps == []
        assert _calls(calls_log) == []
        assert "⚠️ No internet connection. Skipping run." in _texts(result.lines)
        assert notifier.calls == [(False, "⚠️ Run skipped: No internet connection")]
        assert not executor.is_running

    def test_start_while_running_is_noop(self, settings):
        executor, notifier = _executor(settings)
        slow = [Step(label="Sleeping", executable=SH, args=("-c", "sleep 0.5"))]
        assert executor.start_run(steps=slow)
        assert executor.current_state().running

        assert executor.start_run() is False
        assert executor.start_diagnostic("doctor") is False
        assert executor.clear_output() is False

        assert executor.wait(timeout=10)
        assert _labels(executor.last_result) == ["Sleeping"]
        assert len(notifier.calls) == 1

    def test_start_while_diagnosing_is_noop(self, settings, calls_log, monkeypatch):
        monkeypatch.setenv("FAKE_DELAY", "0.5")
        executor, notifier = _executor(settings)
        assert executor.start_diagnostic("doctor")
        assert executor.current_state().mode == "diagnostic"

        assert executor.start_run() is False
        assert executor.start_service_action("start", "redis") is False

        assert executor.wait(timeout=10)
        assert executor.last_result is None
        assert _calls(calls_log) == ["doctor"]
        assert len(notifier.calls) == 1

    def test_clear_output_when_idle(self, settings):
        executor, _ = _executor(settings)
        _run(executor, steps=[Step(label="Echo", executable=SH, args=("-c", "echo hi"))])
        assert executor.clear_output()
        assert executor.output_snapshot() == []

    def test_cancel_when_idle_is_noop(self, settings):
        executor, _ = _executor(settings)
        assert executor.cancel() is False


# ── Interactive input ───────────────────────────────────────────


class TestInteractiveInput:
    def test_prompt_suspends_and_resumes(self, settings):
        executor, notifier = _executor(settings)
        steps = [
            Step(label="Asking", executable=SH, args=("-c", PROMPT_SCRIPT)),
            Step(label="Next", executable=SH, args=("-c", "echo next")),
        ]
        assert executor.start_run(steps=steps)
        assert _wait_for_prompt(executor)

        state = executor.current_state()
        assert state.waiting_for_input
        assert state.prompt_text == "Password:"
        assert state.status == "Asking"
        # The next step does not start while the prompt is open
        assert "next" not in _texts(executor.output_snapshot())

        assert executor.submit_input("hunter2") is True
        assert executor.wait(timeout=10)

        result = executor.last_result
        assert result.success
        texts = _texts(result.lines)
        assert texts.index("got hunter2") < texts.index("next")
        assert not executor.current_state().waiting_for_input
        assert len(notifier.calls) == 1
        assert notifier.calls[0][0] is True

    def test_submit_without_prompt_is_noop(self, settings):
        executor, _ = _executor(settings)
        assert executor.submit_input("hunter2") is False

    def test_cancel_while_waiting(self, settings):
        executor, notifier = _executor(settings)
        steps = [
            Step(label="Asking", executable=SH, args=("-c", PROMPT_SCRIPT)),
            Step(label="Never", executable=SH, args=("-c", "echo never")),
        ]
        assert executor.start_run(steps=steps)
        assert _wait_for_prompt(executor)

        assert executor.cancel() is True
        assert executor.wait(timeout=10)

        result = executor.last_result
        assert result.cancelled
        assert result.steps[0].prompt_abandoned
        assert _labels(result) == ["Asking"]
        assert "never" not in _texts(result.lines)
        assert notifier.calls == [(False, "⚠️ Run cancelled.")]

    def test_prompt_timeout_abandons_step(self, settings):
        executor, _ = _executor(settings.with_overrides(prompt_timeout=0.2))
        steps = [
            Step(label="Asking", executable=SH, args=("-c", PROMPT_SCRIPT + "; exit 1")),
            Step(label="Next", executable=SH, args=("-c", "echo next")),
        ]
        result = _run(executor, steps=steps)
        assert result.steps[0].prompt_abandoned
        assert result.steps[0].failed
        assert "next" in _texts(result.lines)


# ── One-shot runs ───────────────────────────────────────────────


class TestOneShotRuns:
    def test_reinstall(self, settings, calls_log):
        executor, _ = _executor(settings)
        assert executor.start_reinstall(["foo", "bar"])
        executor.wait(timeout=10)
        assert executor.last_result.kind == "reinstall"
        assert _labels(executor.last_result) == ["Reinstalling missing deps..."]
        assert "reinstall foo bar" in _calls(calls_log)

    def test_reinstall_nothing_is_noop(self, settings):
        executor, _ = _executor(settings)
        assert executor.start_reinstall([]) is False

    def test_service_action(self, settings, calls_log):
        executor, _ = _executor(settings)
        assert executor.start_service_action("restart", "postgresql")
        executor.wait(timeout=10)
        assert _labels(executor.last_result) == ["Restarting postgresql…"]
        assert "services restart postgresql" in _calls(calls_log)

    def test_service_action_refreshes_services(self, settings, calls_log):
        executor, _ = _executor(settings)
        assert not executor.current_state().has_issues
        assert executor.start_service_action("start", "nginx")
        executor.wait(timeout=10)

        assert _calls(calls_log) == ["services start nginx", "services list"]
        assert [(s.name, s.status) for s in executor.services] == [
            ("postgresql", "started"),
            ("nginx", "error"),
        ]
        assert executor.current_state().has_issues

    def test_refresh_services_when_idle(self, settings):
        changes = []
        executor, _ = _executor(settings, on_state_change=changes.append)
        services = executor.refresh_services()
        assert [s.name for s in services if s.in_error] == ["nginx"]
        assert executor.current_state().has_issues
        assert changes[-1].has_issues

    def test_update_skips_precondition_only_for_update(self, settings):
        executor, _ = _executor(settings, precondition=lambda s: False)
        assert executor.start_service_action("start", "redis")
        executor.wait(timeout=10)
        assert not executor.last_result.aborted

    def test_exit_code_notice_marks_skipped(self, settings):
        step = Step(
            label="Optional tool",
            executable=SH,
            args=("-c", "exit 1"),
            hooks=(ExitCodeNotice(1, "tool not found, skipping.", skip=True),),
        )
        executor, _ = _executor(settings)
        result = _run(executor, steps=[step])
        assert result.steps[0].status == "skipped"
        assert not result.any_step_failed
        assert "tool not found, skipping." in _texts(result.lines)


# ── Diagnostics ─────────────────────────────────────────────────


class TestDiagnostics:
    def _diagnose(self, executor, kind):
        assert executor.start_diagnostic(kind)
        assert executor.wait(timeout=10)
        return executor.last_diagnostic

    def test_doctor_healthy(self, settings):
        executor, notifier = _executor(settings)
        result = self._diagnose(executor, "doctor")
        assert result.passed
        assert result.issues == []
        assert not executor.current_state().has_issues
        assert notifier.calls == [(True, "✅ Your system is ready to brew!")]

    def test_doctor_with_issues(self, settings, monkeypatch):
        monkeypatch.setenv("FAKE_DOCTOR_ISSUE", "Unbrewed header files were found")
        executor, notifier = _executor(settings)
        result = self._diagnose(executor, "doctor")
        assert not result.passed
        assert result.exit_code == 1
        assert result.issues == ["Warning: Unbrewed header files were found"]
        assert executor.current_state().has_issues
        assert notifier.calls[0][0] is False

    def test_missing_dependencies(self, settings, monkeypatch):
        monkeypatch.setenv("FAKE_MISSING", "imagemagick")
        executor, notifier = _executor(settings)
        result = self._diagnose(executor, "missing")
        assert result.issues == ["imagemagick"]
        assert not result.passed
        assert notifier.calls == [
            (False, "⚠️ 1 formula(e) have missing deps. Check output window.")
        ]

    def test_missing_none(self, settings):
        executor, notifier = _executor(settings)
        result = self._diagnose(executor, "missing")
        assert result.passed
        assert notifier.calls == [(True, "✅ No missing dependencies found!")]

    def test_missing_when_brew_cannot_launch(self, settings, tmp_path):
        settings = settings.with_overrides(brew_path=str(tmp_path / "no-brew"))
        executor, notifier = _executor(settings)
        result = self._diagnose(executor, "missing")
        assert result.exit_code is None
        assert not result.passed
        assert result.issues == []
        assert notifier.calls == [(False, "⚠️ Could not run brew missing.")]

    def test_doctor_when_brew_cannot_launch(self, settings, tmp_path):
        settings = settings.with_overrides(brew_path=str(tmp_path / "no-brew"))
        executor, notifier = _executor(settings)
        result = self._diagnose(executor, "doctor")
        assert not result.passed
        assert notifier.calls == [(False, "⚠️ Could not run brew doctor.")]

    def test_diagnostic_leaves_run_result_alone(self, settings, monkeypatch):
        monkeypatch.setenv("FAKE_DOCTOR_ISSUE", "broken")
        executor, _ = _executor(settings)
        self._diagnose(executor, "doctor")
        assert executor.last_result is None

    def test_diagnostic_mode_in_state(self, settings):
        modes = []
        executor, _ = _executor(settings, on_state_change=lambda s: modes.append(s.mode))
        self._diagnose(executor, "doctor")
        assert "diagnostic" in modes
        assert modes[-1] == "idle"

    def test_unknown_kind(self, settings):
        executor, _ = _executor(settings)
        with pytest.raises(ValueError):
            executor.start_diagnostic("fsck")


# ── End to end ──────────────────────────────────────────────────


class TestEndToEnd:
    def test_mandatory_only_dry_run(self, settings, calls_log, tmp_path):
        settings = settings.with_overrides(
            run_app_store=False,
            run_cache_cleanup=False,
            run_broken_item_check=False,
            backup_before_upgrade=False,
            dry_run=True,
        )
        run_log = RunLog(tmp_path / "e2e.log")
        executor, notifier = _executor(settings, run_log=run_log)
        result = _run(executor)

        assert _labels(result) == ["Updating Homebrew...", "Upgrading packages..."]
        assert result.any_step_failed is False
        assert _calls(calls_log) == ["update", "upgrade --greedy --dry-run"]
        entries = run_log.read_lines()
        for label in ("Updating Homebrew...", "Upgrading packages..."):
            assert any(e.endswith(f"--- {label} ---") for e in entries)
        assert notifier.calls[0][0] is True

    def test_start_run_is_noop_while_waiting(self, settings, calls_log):
        executor, _ = _executor(settings)
        steps = [Step(label="Asking", executable=SH, args=("-c", PROMPT_SCRIPT))]
        assert executor.start_run(steps=steps)
        assert _wait_for_prompt(executor)

        assert executor.start_run() is False
        assert executor.current_state().waiting_for_input

        assert executor.submit_input("secret") is True
        assert not executor.current_state().waiting_for_input
        assert executor.submit_input("secret") is False
        assert executor.wait(timeout=10)

        assert "got secret" in _texts(executor.last_result.lines)
        assert _calls(calls_log) == []
