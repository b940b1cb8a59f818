"""
Pipeline builders — the candidate step lists for each kind of run.

Builders parameterize steps from the Settings snapshot (flags such as
``--greedy``/``--dry-run``, script text, file locations) and mark the
optional ones with their toggle. ``plan_steps`` does the filtering.

Update run, in order:
    pre-update script · install brew · install mas · update · backup ·
    upgrade · App Store · cleanup · broken casks · post-update script
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from brewpipe.core.engine.hooks import DiskSpaceReport, ExitCodeNotice, SkippedPackageRetry
from brewpipe.core.engine.steps import Step, StepContext
from brewpipe.core.models.settings import Settings
from brewpipe.core.services.inventory import find_broken_casks, ignore_broken_casks

BASH = "/bin/bash"
SOFTWAREUPDATE = "/usr/sbin/softwareupdate"

HOMEBREW_INSTALL = (
    '/bin/bash -c "$(curl -fsSL '
    'https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh)"'
)

# ── Labels (shown verbatim as status and in the run log) ────────

PRE_SCRIPT = "Running pre-update script..."
INSTALL_BREW = "Installing Homebrew..."
INSTALL_MAS = "Installing mas..."
UPDATE = "Updating Homebrew..."
BACKUP = "Backing up package list..."
UPGRADE = "Upgrading packages..."
MAS_OUTDATED = "Checking App Store updates..."
MAS_UPGRADE = "Upgrading App Store apps..."
CLEANUP = "Cleaning up Homebrew cache..."
BROKEN_CASKS = "Checking for broken casks..."
POST_SCRIPT = "Running post-update script..."

DOCTOR = "Running brew doctor..."
MISSING = "Finding missing dependencies..."
REINSTALL = "Reinstalling missing deps..."
SYSTEM_UPDATE = "Running macOS Software Update…"

_SERVICE_VERBS = {
    "start": "Starting",
    "stop": "Stopping",
    "restart": "Restarting",
    "run": "Running",
    "kill": "Killing",
}


def build_update_steps(settings: Settings) -> list[Step]:
    """Candidate steps for a full update run."""
    brew = settings.brew_path
    mas = settings.mas_path
    steps: list[Step] = []

    pre = settings.pre_step_script.strip()
    if pre:
        steps.append(Step(label=PRE_SCRIPT, executable=BASH, args=("-c", pre)))

    if not Path(brew).exists():
        steps.append(Step(label=INSTALL_BREW, executable=BASH, args=("-c", HOMEBREW_INSTALL)))

    if not Path(mas).exists():
        steps.append(
            Step(
                label=INSTALL_MAS,
                executable=brew,
                args=("install", "mas"),
                optional=True,
                toggle="run_app_store",
            )
        )

    steps.append(Step(label=UPDATE, executable=brew, args=("update",)))

    steps.append(
        Step(
            label=BACKUP,
            executable=brew,
            args=("bundle", "dump", "--force", f"--file={settings.backup_path}"),
            optional=True,
            toggle="backup_before_upgrade",
        )
    )

    upgrade_args = ["upgrade"]
    if settings.greedy_upgrade:
        upgrade_args.append("--greedy")
    if settings.dry_run:
        upgrade_args.append("--dry-run")
    steps.append(
        Step(
            label=UPGRADE,
            executable=brew,
            args=tuple(upgrade_args),
            hooks=(SkippedPackageRetry(),),
        )
    )

    steps.append(
        Step(label=MAS_OUTDATED, executable=mas, args=("outdated",), optional=True, toggle="run_app_store")
    )
    steps.append(
        Step(label=MAS_UPGRADE, executable=mas, args=("upgrade",), optional=True, toggle="run_app_store")
    )

    recleanup = Step(label=CLEANUP, executable=brew, args=("cleanup", "--prune=all"))
    steps.append(
        Step(
            label=CLEANUP,
            executable=brew,
            args=("cleanup", "--prune=all"),
            optional=True,
            toggle="run_cache_cleanup",
            hooks=(
                SkippedPackageRetry(
                    label="Force-upgrading {count} package(s) skipped in cleanup...",
                    then=(recleanup,),
                ),
                DiskSpaceReport(),
            ),
        )
    )

    steps.append(
        Step(
            label=BROKEN_CASKS,
            action=check_broken_casks,
            optional=True,
            toggle="run_broken_item_check",
        )
    )

    post = settings.post_step_script.strip()
    if post:
        steps.append(Step(label=POST_SCRIPT, executable=BASH, args=("-c", post)))

    return steps


def check_broken_casks(ctx: StepContext) -> int:
    """Scripted step: disable installed casks whose metadata lookup fails."""
    broken = find_broken_casks(ctx.settings, ctx.env)
    if not broken:
        ctx.emit("No broken casks found.")
        return 0
    ctx.emit(f"Disabling {len(broken)} broken cask(s): {', '.join(broken)}")
    if ctx.settings.dry_run:
        ctx.emit("Dry run: ignored-casks file left unchanged.")
    else:
        ignore_broken_casks(broken, Path(ctx.settings.ignored_casks_path))
    ctx.result.broken_casks.extend(broken)
    return 0


# ── One-shot runs ───────────────────────────────────────────────


def doctor_step(settings: Settings) -> Step:
    return Step(label=DOCTOR, executable=settings.brew_path, args=("doctor",))


def missing_step(settings: Settings) -> Step:
    return Step(label=MISSING, executable=settings.brew_path, args=("missing",))


def reinstall_steps(settings: Settings, formulae: Sequence[str]) -> list[Step]:
    if not formulae:
        return []
    return [Step(label=REINSTALL, executable=settings.brew_path, args=("reinstall", *formulae))]


def service_action_steps(settings: Settings, action: str, service: str) -> list[Step]:
    verb = _SERVICE_VERBS.get(action, action.capitalize())
    return [
        Step(
            label=f"{verb} {service}…",
            executable=settings.brew_path,
            args=("services", action, service),
        )
    ]


def system_update_steps(settings: Settings) -> list[Step]:
    return [Step(label=SYSTEM_UPDATE, executable=SOFTWAREUPDATE, args=("--install", "--all"))]


def dev_update_steps(settings: Settings) -> list[Step]:
    """Global npm packages and pip itself; a missing tool is skipped with a note."""
    return [
        Step(
            label="Updating npm globals…",
            executable=BASH,
            args=("-c", "which npm && npm update -g"),
            hooks=(ExitCodeNotice(1, "npm not found, skipping.", skip=True),),
        ),
        Step(
            label="Updating pip3…",
            executable=BASH,
            args=("-c", "which pip3 && pip3 install --upgrade pip"),
            hooks=(ExitCodeNotice(1, "pip3 not found, skipping.", skip=True),),
        ),
    ]
