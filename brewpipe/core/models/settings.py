"""
Settings — the immutable configuration snapshot a run executes against.

Loaded from YAML by ``brewpipe.core.config.loader``. The executor takes
one snapshot at run start, so editing the file mid-run never produces
a torn read.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_SEARCH_PATH = "/opt/homebrew/bin:/usr/local/bin:/usr/bin:/bin:/usr/sbin:/sbin"


def _home_path(*parts: str) -> str:
    return str(Path.home().joinpath(*parts))


class Settings(BaseModel):
    """User preferences that select and parameterize pipeline steps."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # ── Optional steps ───────────────────────────────────────────
    run_app_store: bool = True
    run_cache_cleanup: bool = True
    run_broken_item_check: bool = True
    backup_before_upgrade: bool = False

    # ── Upgrade parameters ───────────────────────────────────────
    dry_run: bool = False
    greedy_upgrade: bool = True

    # ── User scripts (blank = skipped) ───────────────────────────
    pre_step_script: str = ""
    post_step_script: str = ""

    # ── Behaviour ────────────────────────────────────────────────
    notify_on_success: bool = True
    check_connectivity: bool = True
    prompt_timeout: float | None = Field(default=300.0, gt=0)
    max_output_lines: int = Field(default=5000, ge=1)

    # ── Locations ────────────────────────────────────────────────
    brew_path: str = "/opt/homebrew/bin/brew"
    mas_path: str = "/opt/homebrew/bin/mas"
    search_path: str = DEFAULT_SEARCH_PATH
    backup_path: str = Field(
        default_factory=lambda: _home_path(".config", "homebrew", "Brewfile.bak")
    )
    ignored_casks_path: str = Field(
        default_factory=lambda: _home_path(".config", "homebrew", "ignored-casks.rb")
    )
    log_file: str = Field(
        default_factory=lambda: _home_path("Library", "Logs", "brewpipe", "brewpipe.log")
    )

    def with_overrides(self, **changes: object) -> Settings:
        """Return a validated copy with some fields replaced."""
        data = self.model_dump()
        data.update({k: v for k, v in changes.items() if v is not None})
        return Settings.model_validate(data)
