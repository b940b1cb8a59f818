"""
OutputLine and PipelineState — what observers see of a running pipeline.

Both are plain value objects. The executor is the only writer; readers
receive copies (snapshots) and never mutate them.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict


class OutputLine(BaseModel):
    """One line of command output, tagged by origin."""

    model_config = ConfigDict(frozen=True)

    text: str
    is_error: bool = False      # stderr origin (prompts are never errors)
    is_prompt: bool = False     # interactive input request


class PipelineState(BaseModel):
    """Point-in-time view of the executor.

    ``waiting_for_input`` is true exactly while one command is parked
    in the input bridge; ``prompt_text`` holds that prompt.
    """

    status: str = "Idle"
    running: bool = False
    waiting_for_input: bool = False
    prompt_text: str = ""
    mode: Literal["idle", "run", "diagnostic"] = "idle"
    has_issues: bool = False
