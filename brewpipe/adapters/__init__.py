"""Adapters — bindings to the processes brewpipe drives.

Public re-exports for convenient access.
"""

from brewpipe.adapters.shell.process import ProcessOutcome, ProcessRunner

__all__ = [
    "ProcessOutcome",
    "ProcessRunner",
]
