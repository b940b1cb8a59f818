"""
CLI commands for package and service inventory.

``outdated`` and ``services list`` are quiet captured queries;
``services start|stop|restart`` go through the pipeline so prompts and
live output work as for a full run.
"""

from __future__ import annotations

import json
import sys

import click

from brewpipe.ui.cli.console import follow_run, load_settings_or_exit, make_executor


@click.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def outdated(ctx: click.Context, as_json: bool) -> None:
    """List packages with a newer version available."""
    from brewpipe.core.services.inventory import fetch_outdated

    settings = load_settings_or_exit(ctx)
    packages = fetch_outdated(settings)

    if as_json:
        click.echo(json.dumps([p.model_dump() for p in packages], indent=2))
        return

    if not packages:
        click.secho("✅ Everything is up to date", fg="green")
        return

    click.secho(f"📦 Outdated: {len(packages)}", fg="cyan", bold=True)
    width = max(len(p.name) for p in packages)
    for package in packages:
        click.echo(f"   {package.name:<{width}}  {package.current} → {package.latest}")


# ── Services ────────────────────────────────────────────────────


@click.group()
def services() -> None:
    """Services — list, start, stop, restart."""


@services.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def services_list(ctx: click.Context, as_json: bool) -> None:
    """Show managed services and their status."""
    from brewpipe.core.services.inventory import fetch_services

    settings = load_settings_or_exit(ctx)
    found = fetch_services(settings)

    if as_json:
        click.echo(json.dumps([s.model_dump() for s in found], indent=2))
        return

    if not found:
        click.secho("⚠️  No services running", fg="yellow")
        return

    for service in found:
        color = "red" if service.in_error else None
        click.secho(f"   {service.status_icon} {service.name} ({service.status})", fg=color)

    if any(s.in_error for s in found):
        sys.exit(1)


def _service_action(ctx: click.Context, action: str, name: str) -> None:
    settings = load_settings_or_exit(ctx)
    executor = make_executor(settings)
    follow_run(executor, lambda: executor.start_service_action(action, name))
    for service in executor.services:
        if service.name == name:
            click.secho(
                f"   {service.status_icon} {service.name} ({service.status})",
                fg="red" if service.in_error else None,
            )
    result = executor.last_result
    if result is None or not result.success:
        sys.exit(1)


@services.command("start")
@click.argument("name")
@click.pass_context
def services_start(ctx: click.Context, name: str) -> None:
    """Start a service."""
    _service_action(ctx, "start", name)


@services.command("stop")
@click.argument("name")
@click.pass_context
def services_stop(ctx: click.Context, name: str) -> None:
    """Stop a service."""
    _service_action(ctx, "stop", name)


@services.command("restart")
@click.argument("name")
@click.pass_context
def services_restart(ctx: click.Context, name: str) -> None:
    """Restart a service."""
    _service_action(ctx, "restart", name)
