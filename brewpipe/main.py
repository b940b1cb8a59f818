"""
brewpipe — CLI entrypoint.

Usage:
    python -m brewpipe.main --help
    python -m brewpipe.main run
    python -m brewpipe.main config check
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from brewpipe import __version__
from brewpipe.core.observability.logging_config import setup_logging
from brewpipe.ui.cli.console import follow_run, load_settings_or_exit, make_executor


@click.group()
@click.version_option(version=__version__, prog_name="brewpipe")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to brewpipe.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """brewpipe — keep Homebrew and App Store apps up to date."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("BREWPIPE_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("BREWPIPE_LOG_FILE"),
        log_file_level=os.environ.get("BREWPIPE_LOG_FILE_LEVEL"),
        quiet_readers=not debug,
    )


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--dry-run", is_flag=True, default=None, help="Pass --dry-run to brew upgrade.")
@click.option(
    "--app-store/--no-app-store",
    "app_store",
    default=None,
    help="Include or skip the App Store steps (default: from config).",
)
@click.option(
    "--skip-connectivity-check",
    is_flag=True,
    default=None,
    help="Run even when the network probe fails.",
)
@click.pass_context
def run(
    ctx: click.Context,
    as_json: bool,
    dry_run: bool | None,
    app_store: bool | None,
    skip_connectivity_check: bool | None,
) -> None:
    """Run the full update pipeline.

    Examples:

        brewpipe run

        brewpipe run --dry-run --no-app-store
    """
    settings = load_settings_or_exit(
        ctx,
        dry_run=dry_run or None,
        run_app_store=app_store,
        check_connectivity=False if skip_connectivity_check else None,
    )
    executor = make_executor(settings, as_json=as_json)

    if not as_json and not ctx.obj.get("quiet"):
        mode_label = "[dry-run] " if settings.dry_run else ""
        click.secho(f"\n🍺 {mode_label}brewpipe update", fg="cyan", bold=True)
        click.echo()

    follow_run(executor, executor.start_run, as_json=as_json)

    result = executor.last_result
    if result is None:
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    elif ctx.obj.get("verbose"):
        click.echo()
        for step in result.steps:
            icon, color = {"ok": ("✓", "green"), "failed": ("✗", "red")}.get(
                step.status, ("⊘", "yellow")
            )
            click.secho(f"   {icon} {step.label}", fg=color, nl=False)
            click.echo(f" ({step.duration_ms}ms)")
            if step.error:
                click.echo(f"     │ {step.error}")

    if not result.success:
        sys.exit(1)


@cli.group()
def config() -> None:
    """Configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate brewpipe.yml configuration."""
    from brewpipe.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)
        return

    if result.valid:
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        source = result.config_path or "defaults"
        click.echo(f"   Source: {source}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


@config.command("show")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_show(ctx: click.Context, as_json: bool) -> None:
    """Print the effective settings snapshot."""
    settings = load_settings_or_exit(ctx)
    data = settings.model_dump()

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    width = max(len(key) for key in data)
    for key, value in data.items():
        click.echo(f"   {key:<{width}}  {value}")


# ── Register sub-commands ───────────────────────────────────────

from brewpipe.ui.cli.diagnose import doctor, missing
from brewpipe.ui.cli.packages import outdated, services
from brewpipe.ui.cli.system import dev_update, system_update

cli.add_command(doctor)
cli.add_command(missing)
cli.add_command(outdated)
cli.add_command(services)
cli.add_command(system_update)
cli.add_command(dev_update)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
