"""
Inventory models — outdated packages and background services.
"""

from __future__ import annotations

from pydantic import BaseModel

_SERVICE_ICONS = {
    "started": "🟢",
    "error": "🔴",
    "stopped": "⚫",
}


class OutdatedPackage(BaseModel):
    """A package with a newer version available."""

    name: str
    current: str
    latest: str


class BrewService(BaseModel):
    """A managed background service and its status."""

    name: str
    status: str  # started, stopped, error, none, ...

    @property
    def status_icon(self) -> str:
        return _SERVICE_ICONS.get(self.status, "⚪")

    @property
    def in_error(self) -> bool:
        return self.status == "error"
