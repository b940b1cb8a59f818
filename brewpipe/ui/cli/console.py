"""
Terminal front end for the pipeline engine.

Shared by the CLI commands: load settings, build an executor whose
notifications print to the terminal, then follow the run while relaying
output and asking for hidden input when a command prompts.
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import click

from brewpipe.core.models.output import OutputLine
from brewpipe.core.models.settings import Settings
from brewpipe.core.notify import should_notify


class EchoNotifier:
    """Notification sink that prints the end-of-run summary."""

    def __init__(self, notify_on_success: bool = True, err: bool = False):
        self.notify_on_success = notify_on_success
        self.err = err

    def notify(self, success: bool, details: str) -> None:
        if not should_notify(success, details, self.notify_on_success):
            return
        click.echo(err=self.err)
        click.secho(details, fg="green" if success else "yellow", bold=True, err=self.err)


def load_settings_or_exit(ctx: click.Context, **overrides: object) -> Settings:
    """Load the settings snapshot for a command, or exit 1 on config errors."""
    from brewpipe.core.config.loader import ConfigError, load_settings

    config_path: Path | None = ctx.obj.get("config_path")
    try:
        settings = load_settings(config_path)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)
    return settings.with_overrides(**overrides)


def make_executor(settings: Settings, *, as_json: bool = False):
    """Executor bound to ``settings`` with terminal notifications."""
    from brewpipe.core.engine.executor import PipelineExecutor
    from brewpipe.core.notify import RecordingNotifier

    notifier = (
        RecordingNotifier()
        if as_json
        else EchoNotifier(notify_on_success=settings.notify_on_success)
    )
    return PipelineExecutor(settings, notifier=notifier)


def echo_line(line: OutputLine) -> None:
    if line.is_prompt:
        click.secho(line.text, fg="yellow")
    elif line.is_error:
        click.secho(line.text, fg="red")
    elif line.text.startswith("$ "):
        click.secho(line.text, fg="cyan")
    else:
        click.echo(line.text)


def ask_for_input(prompt: str, *, err: bool = False) -> str | None:
    """Hidden prompt on the terminal. None if the user aborts (Ctrl-C/EOF)."""
    try:
        return click.prompt(
            prompt.rstrip(": ") or "Input",
            hide_input=True,
            default="",
            show_default=False,
            err=err,
        )
    except click.Abort:
        return None


def follow_run(executor, start: Callable[[], bool], *, as_json: bool = False) -> None:
    """Start a run and follow it to completion in the terminal."""
    from brewpipe.core.use_cases.follow import follow

    if not start():
        click.secho("⚠️  Another run is already in progress.", fg="yellow", err=True)
        sys.exit(1)

    on_line = (lambda line: None) if as_json else echo_line
    try:
        follow(executor, on_line, lambda prompt: ask_for_input(prompt, err=as_json))
    except KeyboardInterrupt:
        executor.cancel()
        executor.wait()
        click.secho("\n⚠️  Cancelled.", fg="yellow", err=True)
        sys.exit(130)
