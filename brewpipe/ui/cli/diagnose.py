"""
CLI commands for the standalone diagnostics.

Thin wrappers over ``PipelineExecutor.start_diagnostic``.
"""

from __future__ import annotations

import json
import sys

import click

from brewpipe.ui.cli.console import follow_run, load_settings_or_exit, make_executor


def _echo_issues(issues: list[str], title: str) -> None:
    click.echo()
    click.secho(f"   {title}: {len(issues)}", fg="yellow", bold=True)
    for issue in issues:
        click.echo(f"     • {issue}")


@click.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def doctor(ctx: click.Context, as_json: bool) -> None:
    """Run brew doctor and summarise warnings and errors."""
    settings = load_settings_or_exit(ctx)
    executor = make_executor(settings, as_json=as_json)

    follow_run(executor, lambda: executor.start_diagnostic("doctor"), as_json=as_json)

    result = executor.last_diagnostic
    if result is None:
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    elif result.issues and ctx.obj.get("verbose"):
        _echo_issues(result.issues, "Issues")

    if not result.passed:
        sys.exit(1)


@click.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option(
    "--reinstall/--no-reinstall",
    default=None,
    help="Reinstall formulae with missing dependencies (default: ask).",
)
@click.pass_context
def missing(ctx: click.Context, as_json: bool, reinstall: bool | None) -> None:
    """Find formulae with missing dependencies and optionally reinstall them."""
    settings = load_settings_or_exit(ctx)
    executor = make_executor(settings, as_json=as_json)

    follow_run(executor, lambda: executor.start_diagnostic("missing"), as_json=as_json)

    result = executor.last_diagnostic
    if result is None:
        sys.exit(1)
    formulae = result.issues

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    elif formulae:
        _echo_issues(formulae, "Formulae with missing dependencies")

    if not formulae:
        if not result.passed:
            sys.exit(1)
        return

    if reinstall is None:
        reinstall = not as_json and click.confirm(
            f"\nReinstall {len(formulae)} formula(e)?", default=False
        )
    if not reinstall:
        sys.exit(1)

    follow_run(executor, lambda: executor.start_reinstall(formulae), as_json=as_json)
    run_result = executor.last_result
    if run_result is None or not run_result.success:
        sys.exit(1)
