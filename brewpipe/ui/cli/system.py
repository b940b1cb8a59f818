"""
CLI commands for updates outside Homebrew (macOS, developer tools).
"""

from __future__ import annotations

import sys

import click

from brewpipe.ui.cli.console import follow_run, load_settings_or_exit, make_executor


@click.command("system-update")
@click.pass_context
def system_update(ctx: click.Context) -> None:
    """Install all available macOS software updates."""
    settings = load_settings_or_exit(ctx)
    executor = make_executor(settings)
    follow_run(executor, executor.start_system_update)
    result = executor.last_result
    if result is None or not result.success:
        sys.exit(1)


@click.command("dev-update")
@click.pass_context
def dev_update(ctx: click.Context) -> None:
    """Update global npm packages and pip."""
    settings = load_settings_or_exit(ctx)
    executor = make_executor(settings)
    follow_run(executor, executor.start_dev_update)
    result = executor.last_result
    if result is None or not result.success:
        sys.exit(1)
