"""
Output parsers — pure text extraction over captured output lines.

Every function here is a pure function of its input: no I/O, no state,
same order in as out. A parser that finds nothing well-formed returns
an empty list; that is not an error.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from brewpipe.core.models.inventory import BrewService, OutdatedPackage
from brewpipe.core.models.output import OutputLine

COMMAND_ECHO = "$"
SKIP_WARNING = "Warning: Skipping"
SKIP_CUE = "Skipping "
NOT_INSTALLED = "not installed"
SERVICE_NONE = "none"
ISSUE_PREFIXES = ("Warning:", "Error:")


def lines_from_text(text: str, *, is_error: bool = False) -> list[OutputLine]:
    """Wrap raw captured text as OutputLines (empty lines dropped)."""
    return [
        OutputLine(text=line, is_error=is_error)
        for line in text.split("\n")
        if line.strip()
    ]


def parse_outdated(lines: Iterable[OutputLine]) -> list[OutdatedPackage]:
    """Extract outdated packages from ``outdated --verbose`` style lines.

    A line qualifies with at least four whitespace tokens::

        foo (1.0) < 2.0   →   name=foo, current=1.0, latest=2.0

    The latest version is always the *last* token.
    """
    packages = []
    for line in lines:
        tokens = line.text.split()
        if len(tokens) < 4:
            continue
        packages.append(
            OutdatedPackage(
                name=tokens[0],
                current=tokens[1].strip("()"),
                latest=tokens[-1],
            )
        )
    return packages


def parse_services(lines: Sequence[OutputLine]) -> list[BrewService]:
    """Extract services from a ``services list`` table (header skipped).

    Entries whose status is ``none`` are dropped.
    """
    services = []
    for line in lines[1:]:
        tokens = line.text.split()
        if len(tokens) < 2:
            continue
        if tokens[1] == SERVICE_NONE:
            continue
        services.append(BrewService(name=tokens[0], status=tokens[1]))
    return services


def parse_skipped_packages(lines: Sequence[OutputLine], since: int = 0) -> list[str]:
    """Packages reported as skipped because their latest version is not installed.

    Matches lines like::

        Warning: Skipping foo: most recent version 2.0 not installed
    """
    names = []
    for line in lines[since:]:
        text = line.text
        if SKIP_WARNING not in text or NOT_INSTALLED not in text:
            continue
        _, _, rest = text.partition(SKIP_CUE)
        name = rest.split(":", 1)[0].strip()
        if name:
            names.append(name)
    return names


def parse_missing_dependencies(lines: Iterable[OutputLine]) -> list[str]:
    """Packages with missing dependencies from ``missing`` output.

    Each qualifying stdout line reads ``<package>: <dep> <dep> ...``.
    Command echo lines (``$ ...``) and stderr are ignored.
    """
    names = []
    for line in lines:
        if line.is_error or line.text.startswith(COMMAND_ECHO):
            continue
        if ":" not in line.text:
            continue
        name = line.text.split(":", 1)[0].strip()
        if name:
            names.append(name)
    return names


def parse_doctor_issues(lines: Iterable[OutputLine]) -> list[str]:
    """Lines that open a doctor warning or error."""
    return [line.text for line in lines if line.text.startswith(ISSUE_PREFIXES)]
