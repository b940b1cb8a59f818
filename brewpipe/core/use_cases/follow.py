"""
Follow use case — drive a started pipeline from a front end.

A front end that cannot be called back (a terminal, a test) starts a
run and then follows it: it polls the output sequence by cursor, relays
new lines, and answers the input prompt whenever the pipeline parks on
one. The executor does the work; this loop only watches and replies.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from brewpipe.core.engine.executor import PipelineExecutor
from brewpipe.core.models.output import OutputLine

logger = logging.getLogger(__name__)

PromptHandler = Callable[[str], "str | None"]


@dataclass
class FollowResult:
    """What happened while following one run."""

    lines_seen: int = 0
    prompts_answered: int = 0
    prompts_declined: int = 0
    finished: bool = False


def follow(
    executor: PipelineExecutor,
    on_line: Callable[[OutputLine], None],
    on_prompt: PromptHandler,
    *,
    poll_interval: float = 0.05,
    timeout: float | None = None,
) -> FollowResult:
    """Relay output and answer prompts until the executor goes idle.

    Args:
        executor: A PipelineExecutor with a run already started.
        on_line: Called once per output line, in order.
        on_prompt: Called with the prompt text; returns the reply, or
            None to decline (which cancels the run).
        poll_interval: Seconds between polls.
        timeout: Give up following after this many seconds (the run
            keeps going).

    Returns:
        FollowResult; ``finished`` is False only on timeout.
    """
    result = FollowResult()
    cursor = 0
    deadline = None if timeout is None else time.monotonic() + timeout

    while True:
        cursor = _relay(executor, cursor, on_line, result)

        state = executor.current_state()
        if state.waiting_for_input:
            reply = on_prompt(state.prompt_text)
            if reply is None:
                logger.info("Prompt declined, cancelling run")
                result.prompts_declined += 1
                executor.cancel()
            elif executor.submit_input(reply):
                result.prompts_answered += 1
            continue

        if not state.running:
            break
        if deadline is not None and time.monotonic() >= deadline:
            logger.warning("Stopped following after %ss; run still active", timeout)
            return result
        time.sleep(poll_interval)

    executor.wait()
    _relay(executor, cursor, on_line, result)
    result.finished = True
    return result


def _relay(
    executor: PipelineExecutor,
    cursor: int,
    on_line: Callable[[OutputLine], None],
    result: FollowResult,
) -> int:
    lines, cursor = executor.output.read_from(cursor)
    for line in lines:
        on_line(line)
    result.lines_seen += len(lines)
    return cursor
