"""
Prompt detection — is this output chunk asking for input?

Plain substring cues, no protocol parsing. A package literally named
"1password" will trip the detector; that false positive is accepted.
"""

from __future__ import annotations

from collections.abc import Iterable

# Case-sensitive cues: password prompts and sudo's own messages
DEFAULT_CUES: tuple[str, ...] = ("password", "Password", "sudo:")


class PromptDetector:
    """Stateless predicate over freshly decoded text chunks."""

    def __init__(self, cues: Iterable[str] = DEFAULT_CUES):
        self.cues = tuple(cues)

    def __call__(self, text: str) -> bool:
        return any(cue in text for cue in self.cues)


def detect_prompt(text: str) -> bool:
    """True if ``text`` matches one of the default prompt cues."""
    return any(cue in text for cue in DEFAULT_CUES)
