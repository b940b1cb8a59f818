"""
Engine exceptions.

Step failures are recorded on the run result, never raised. These
exceptions only cross the seams where a caller must react: a command
that could not be spawned, or a prompt nobody answered.
"""

from __future__ import annotations


class BrewpipeError(Exception):
    """Base class for brewpipe errors."""


class LaunchFailure(BrewpipeError):
    """The executable is missing or could not be spawned."""

    def __init__(self, executable: str, reason: str):
        super().__init__(f"Cannot launch {executable}: {reason}")
        self.executable = executable
        self.reason = reason


class PromptAbandoned(BrewpipeError):
    """An interactive prompt was released without input (timeout or cancel)."""

    def __init__(self, prompt: str, reason: str = "cancelled"):
        super().__init__(f"Prompt abandoned ({reason}): {prompt}")
        self.prompt = prompt
        self.reason = reason
