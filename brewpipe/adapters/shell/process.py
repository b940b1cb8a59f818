"""
Process runner — spawn one command and stream its output live.

This is the single place where pipeline commands are spawned. Output
is never buffered to completion: each channel has its own reader
thread that publishes lines as soon as the bytes arrive, so observers
see ``brew upgrade`` progress while it happens.

Per chunk, a reader:
    decode → prompt check → publish lines (+ mirror to run log)
    └─ prompt? → park in the input bridge → write reply + "\\n" to stdin

Non-zero exit is reported, not raised. Only a failed spawn raises
(``LaunchFailure``).
"""

from __future__ import annotations

import codecs
import logging
import subprocess
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import IO

from brewpipe.core.engine.bridge import InputBridge
from brewpipe.core.engine.output import OutputLog
from brewpipe.core.engine.prompt import detect_prompt
from brewpipe.core.errors import LaunchFailure, PromptAbandoned
from brewpipe.core.persistence.run_log import LogSink, NullLog

logger = logging.getLogger(__name__)

_READ_SIZE = 4096
_EXITED = "command exited"


@dataclass
class ProcessOutcome:
    """Result of one runner invocation."""

    exit_code: int
    duration_ms: int = 0
    prompt_abandoned: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class _Invocation:
    """Per-command state shared by its two reader threads."""

    def __init__(self, proc: subprocess.Popen[bytes]):
        self.proc = proc
        self.prompt_abandoned = False
        self.stdin_lock = threading.Lock()

    def write_input(self, text: str) -> None:
        stdin = self.proc.stdin
        if stdin is None:
            return
        with self.stdin_lock:
            try:
                stdin.write((text + "\n").encode("utf-8"))
                stdin.flush()
            except (OSError, ValueError) as e:
                # Command already exited or closed its stdin
                logger.debug("Could not forward input to pid %s: %s", self.proc.pid, e)

    def abort(self) -> None:
        """Close stdin (EOF) and terminate the command."""
        self.prompt_abandoned = True
        with self.stdin_lock:
            try:
                if self.proc.stdin is not None:
                    self.proc.stdin.close()
            except OSError as e:
                logger.debug("Closing stdin of pid %s failed: %s", self.proc.pid, e)
        try:
            self.proc.terminate()
        except ProcessLookupError:
            logger.debug("pid %s already gone", self.proc.pid)


class ProcessRunner:
    """Run commands with live, prompt-aware output streaming.

    Args:
        output: Line sequence the lines are published to.
        bridge: Input bridge used when a prompt is detected.
        run_log: Durable sink every line is mirrored to.
        detector: Prompt predicate applied to each decoded chunk.
    """

    def __init__(
        self,
        output: OutputLog,
        bridge: InputBridge,
        run_log: LogSink | None = None,
        detector: Callable[[str], bool] = detect_prompt,
    ):
        self._output = output
        self._bridge = bridge
        self._run_log = run_log or NullLog()
        self._detector = detector

    def run(
        self,
        executable: str,
        args: Sequence[str] = (),
        env: Mapping[str, str] | None = None,
    ) -> int:
        """Run to completion and return the exit code."""
        return self.execute(executable, args, env).exit_code

    def execute(
        self,
        executable: str,
        args: Sequence[str] = (),
        env: Mapping[str, str] | None = None,
    ) -> ProcessOutcome:
        """Run to completion and return the full outcome.

        Raises:
            LaunchFailure: If the process cannot be spawned.
        """
        args = list(args)
        display = " ".join([Path(executable).name, *args])
        self._output.append_text(f"$ {display}")
        self._log(f"$ {' '.join([executable, *args])}")

        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                [executable, *args],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=dict(env) if env is not None else None,
            )
        except OSError as e:
            self._log(f"launch failed: {e}")
            raise LaunchFailure(executable, e.strerror or str(e)) from e

        logger.debug("Spawned pid %s: %s", proc.pid, display)
        invocation = _Invocation(proc)
        readers = [
            threading.Thread(
                target=self._pump,
                args=(invocation, proc.stdout, False),
                name=f"stdout-{proc.pid}",
                daemon=True,
            ),
            threading.Thread(
                target=self._pump,
                args=(invocation, proc.stderr, True),
                name=f"stderr-{proc.pid}",
                daemon=True,
            ),
        ]
        for reader in readers:
            reader.start()

        exit_code = proc.wait()
        # Nobody can read a reply any more; release a prompt still parked
        # (typically a false positive such as "Upgrading 1password")
        if self._bridge.retire(invocation, _EXITED):
            logger.debug("pid %s exited with a prompt outstanding", proc.pid)
        for reader in readers:
            reader.join()
        self._bridge.forget(invocation)

        if proc.stdin is not None:
            try:
                proc.stdin.close()
            except OSError as e:
                logger.debug("Closing stdin of pid %s failed: %s", proc.pid, e)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        self._log(f"exit: {exit_code}")
        logger.debug("pid %s exited %s after %dms", proc.pid, exit_code, elapsed_ms)
        return ProcessOutcome(
            exit_code=exit_code,
            duration_ms=elapsed_ms,
            prompt_abandoned=invocation.prompt_abandoned,
        )

    # ── Stream reading ──────────────────────────────────────────

    def _pump(
        self,
        invocation: _Invocation,
        stream: IO[bytes] | None,
        is_error: bool,
    ) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        partial = ""
        while True:
            try:
                data = stream.read1(_READ_SIZE)  # type: ignore[attr-defined]
            except (OSError, ValueError) as e:
                logger.debug("Reader for pid %s stopped: %s", invocation.proc.pid, e)
                data = b""
            text = decoder.decode(data, final=not data)

            if text and self._detector(text):
                prompt = partial + text
                partial = ""
                self._publish(prompt, is_error=is_error, is_prompt=True)
                self._answer(invocation, prompt)
            elif text:
                combined = (partial + text).replace("\r\n", "\n").replace("\r", "\n")
                complete, _, partial = combined.rpartition("\n")
                if complete:
                    self._publish(complete, is_error=is_error)

            if not data:
                break

        if partial:
            self._publish(partial, is_error=is_error)
        stream.close()

    def _answer(self, invocation: _Invocation, prompt: str) -> None:
        try:
            reply = self._bridge.request_input(prompt, owner=invocation)
        except PromptAbandoned as e:
            if e.reason == _EXITED:
                return
            self._publish(
                f"✖ No input supplied ({e.reason}); stopping command.",
                is_error=True,
            )
            invocation.abort()
            return
        invocation.write_input(reply)
        self._log("stdin: [input supplied]")

    def _publish(self, text: str, *, is_error: bool, is_prompt: bool = False) -> None:
        lines = self._output.append_text(text, is_error=is_error, is_prompt=is_prompt)
        channel = "stderr" if is_error else "stdout"
        for line in lines:
            self._log(f"{channel}: {line.text}")

    def _log(self, text: str) -> None:
        try:
            self._run_log.append(datetime.now(), text)
        except Exception as e:
            logger.debug("Run log sink failed: %s", e)
