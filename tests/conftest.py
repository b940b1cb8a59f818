"""
Shared test fixtures and configuration.

The engine is exercised against real processes: ``brew`` and ``mas``
are small shell scripts written into ``tmp_path``. Each appends its
arguments to ``calls.log`` and reacts to a few ``FAKE_*`` environment
variables (the runner passes the inherited environment through).
"""

import os
import textwrap
from pathlib import Path

import pytest

from brewpipe.core.models.settings import Settings

FAKE_BREW = """\
#!/bin/sh
echo "$*" >> "{calls}"
if [ -n "$FAKE_DELAY" ]; then sleep "$FAKE_DELAY"; fi
case "$1" in
  update)
    echo "Already up-to-date."
    ;;
  upgrade)
    if [ "$2" = "--force" ]; then
      echo "==> Force-upgrading $3"
      exit 0
    fi
    if [ -n "$FAKE_SKIP" ]; then
      echo "Warning: Skipping $FAKE_SKIP: most recent version 2.0 not installed" >&2
    fi
    echo "==> Upgrading 0 outdated packages"
    exit "${{FAKE_UPGRADE_EXIT:-0}}"
    ;;
  cleanup)
    echo "Removing: /tmp/cache/old.tar.gz"
    ;;
  bundle)
    echo "Dumped Brewfile"
    ;;
  doctor)
    if [ -n "$FAKE_DOCTOR_ISSUE" ]; then
      echo "Warning: $FAKE_DOCTOR_ISSUE" >&2
      exit 1
    fi
    echo "Your system is ready to brew."
    ;;
  missing)
    if [ -n "$FAKE_MISSING" ]; then
      echo "$FAKE_MISSING: libfoo libbar"
    fi
    ;;
  reinstall)
    shift
    echo "==> Reinstalling $*"
    ;;
  outdated)
    echo "wget (1.21.3) < 1.21.4"
    echo "short line"
    ;;
  list)
    for cask in $FAKE_CASKS; do echo "$cask"; done
    ;;
  info)
    if [ "$3" = "$FAKE_BROKEN" ]; then
      echo "Error: Cask '$3' is unreadable" >&2
      exit 1
    fi
    echo "$3: 1.0"
    ;;
  services)
    if [ "$2" = "list" ]; then
      echo "Name       Status  User File"
      echo "postgresql started me   ~/Library/LaunchAgents/postgresql.plist"
      echo "redis      none"
      echo "nginx      error   root /Library/LaunchDaemons/nginx.plist"
    else
      echo "==> Successfully ran $2 for $3"
    fi
    ;;
  *)
    echo "Error: Unknown command: $1" >&2
    exit 1
    ;;
esac
"""

FAKE_MAS = """\
#!/bin/sh
echo "mas $*" >> "{calls}"
case "$1" in
  outdated) echo "497799835 Xcode (15.0 -> 15.1)" ;;
  upgrade) echo "==> Upgrading 1 outdated application" ;;
esac
"""


def write_script(path: Path, body: str) -> Path:
    path.write_text(textwrap.dedent(body))
    os.chmod(path, 0o755)
    return path


@pytest.fixture
def calls_log(tmp_path: Path) -> Path:
    return tmp_path / "calls.log"


@pytest.fixture
def fake_brew(tmp_path: Path, calls_log: Path) -> Path:
    return write_script(tmp_path / "brew", FAKE_BREW.format(calls=calls_log))


@pytest.fixture
def fake_mas(tmp_path: Path, calls_log: Path) -> Path:
    return write_script(tmp_path / "mas", FAKE_MAS.format(calls=calls_log))


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tests away from the real home directory and FAKE_* leftovers."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.delenv("BREWPIPE_CONFIG", raising=False)
    for name in list(os.environ):
        if name.startswith("FAKE_"):
            monkeypatch.delenv(name)


@pytest.fixture
def settings(tmp_path: Path, fake_brew: Path, fake_mas: Path) -> Settings:
    """Settings pointing at the fake tools, with no network probe."""
    return Settings(
        brew_path=str(fake_brew),
        mas_path=str(fake_mas),
        check_connectivity=False,
        prompt_timeout=10,
        backup_path=str(tmp_path / "Brewfile.bak"),
        ignored_casks_path=str(tmp_path / "ignored-casks.rb"),
        log_file=str(tmp_path / "logs" / "brewpipe.log"),
    )

