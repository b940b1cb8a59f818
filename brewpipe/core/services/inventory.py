"""
Inventory — quiet, captured queries against the package manager.

These run outside the streaming pipeline: output is captured to
completion and parsed, nothing is shown to the observer. Used for the
outdated-package list, service list, and the broken-cask probe.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path

from brewpipe.core.environment import make_environment
from brewpipe.core.models.inventory import BrewService, OutdatedPackage
from brewpipe.core.models.settings import Settings
from brewpipe.core.services.parsers import lines_from_text, parse_outdated, parse_services

logger = logging.getLogger(__name__)


def capture(
    args: Sequence[str],
    env: Mapping[str, str] | None = None,
    timeout: int = 120,
) -> subprocess.CompletedProcess[str] | None:
    """Run a command and capture its output. None if it could not run."""
    try:
        return subprocess.run(
            list(args),
            capture_output=True,
            text=True,
            timeout=timeout,
            env=dict(env) if env is not None else None,
        )
    except subprocess.TimeoutExpired:
        logger.warning("Timed out after %ss: %s", timeout, " ".join(args))
        return None
    except OSError as e:
        logger.debug("Cannot run %s: %s", args[0], e)
        return None


def fetch_outdated(settings: Settings) -> list[OutdatedPackage]:
    """Packages with a newer version available (empty if brew is missing)."""
    if not Path(settings.brew_path).exists():
        return []
    result = capture(
        [settings.brew_path, "outdated", "--verbose"],
        env=make_environment(settings.search_path),
    )
    if result is None:
        return []
    return parse_outdated(lines_from_text(result.stdout))


def fetch_services(settings: Settings) -> list[BrewService]:
    """Managed services with a status other than ``none``."""
    if not Path(settings.brew_path).exists():
        return []
    result = capture(
        [settings.brew_path, "services", "list"],
        env=make_environment(settings.search_path),
    )
    if result is None:
        return []
    return parse_services(lines_from_text(result.stdout))


def find_broken_casks(settings: Settings, env: Mapping[str, str] | None = None) -> list[str]:
    """Installed casks whose ``info --cask`` lookup fails."""
    env = env if env is not None else make_environment(settings.search_path)
    listing = capture([settings.brew_path, "list", "--cask"], env=env)
    if listing is None or listing.returncode != 0:
        return []

    casks = [line.strip() for line in listing.stdout.split("\n") if line.strip()]
    broken = []
    for cask in casks:
        check = capture([settings.brew_path, "info", "--cask", cask], env=env)
        if check is None or check.returncode != 0:
            broken.append(cask)
    return broken


def ignore_broken_casks(casks: Sequence[str], path: Path) -> None:
    """Append a ``disable!`` stanza for each cask to the ignored-casks file."""
    if not casks:
        return
    stanzas = "\n".join(f"cask '{cask}' do\n  disable!\nend" for cask in casks)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(stanzas + "\n")
    logger.info("Disabled broken casks: %s", ", ".join(casks))
