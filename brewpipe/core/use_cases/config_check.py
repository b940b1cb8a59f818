"""
Config check use case — validate brewpipe.yml and report issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from brewpipe.core.config.loader import ConfigError, find_config_file, load_settings
from brewpipe.core.models.settings import Settings


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    settings: Settings | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "settings": self.settings.model_dump() if self.settings else None,
        }


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate the configuration and flag settings that will not work.

    A missing config file is valid (defaults apply) but reported as a
    warning.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_config_file()
        if config_path is None:
            result.warnings.append("No config file found; using defaults.")

    result.config_path = config_path

    try:
        settings = load_settings(config_path, search=False)
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    result.settings = settings
    result.valid = True

    # Semantic checks
    if not Path(settings.brew_path).exists():
        result.warnings.append(
            f"brew not found at {settings.brew_path}; a run will install Homebrew first."
        )

    if settings.run_app_store and not Path(settings.mas_path).exists():
        result.warnings.append(
            f"mas not found at {settings.mas_path}; a run will install it first."
        )

    if settings.prompt_timeout is None:
        result.warnings.append(
            "prompt_timeout is unset; a run waits forever on an unanswered prompt."
        )

    if settings.dry_run and settings.backup_before_upgrade:
        result.warnings.append("backup_before_upgrade still writes the backup in dry-run mode.")

    return result
