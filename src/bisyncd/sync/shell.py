"""Subprocess runner with line streaming, timeouts and cancellation.

This module provides:
- CommandResult: Outcome of one external command
- run_command: Run an argv list, streaming stdout/stderr lines to callbacks
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import IO

from bisyncd.core.errors import CommandError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0  # seconds, for short auxiliary calls
TERMINATE_GRACE = 5.0  # seconds between SIGTERM and SIGKILL
POLL_INTERVAL = 0.1

LineCallback = Callable[[str], None]


@dataclass
class CommandResult:
    """Outcome of an external command.

    Attributes:
        command: Printable command line.
        exit_code: Process exit code (-1 when timed out or cancelled).
        stdout: Full standard output, stripped.
        stderr: Full standard error, stripped.
        timed_out: The timeout expired and the process was terminated.
        cancelled: The cancel event fired and the process was terminated.
        duration: Wall-clock seconds.
    """

    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    cancelled: bool = False
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        """Check if the command exited cleanly."""
        return self.exit_code == 0 and not self.timed_out and not self.cancelled

    @property
    def output(self) -> str:
        """Error-oriented output: stderr, or stdout when stderr is empty."""
        return self.stderr or self.stdout

    @property
    def combined(self) -> str:
        """Both streams, stderr first."""
        return "\n".join(part for part in (self.stderr, self.stdout) if part)


def _pump(stream: IO[str], sink: list[str], callback: LineCallback | None) -> None:
    """Read lines from a pipe until EOF."""
    for raw in iter(stream.readline, ""):
        line = raw.rstrip("\r\n")
        sink.append(line)
        if callback is not None:
            try:
                callback(line)
            except Exception:
                logger.exception("Output callback failed")
    stream.close()


def _terminate(proc: subprocess.Popen[str]) -> None:
    """Terminate a process, escalating to kill after a grace period."""
    proc.terminate()
    try:
        proc.wait(timeout=TERMINATE_GRACE)
    except subprocess.TimeoutExpired:
        logger.warning("Process %d ignored SIGTERM, killing", proc.pid)
        proc.kill()
        proc.wait()


def run_command(
    args: list[str],
    timeout: float | None = DEFAULT_TIMEOUT,
    on_stdout: LineCallback | None = None,
    on_stderr: LineCallback | None = None,
    cancel_event: threading.Event | None = None,
    env: dict[str, str] | None = None,
    cwd: str | None = None,
) -> CommandResult:
    """Run an external command to completion.

    Args:
        args: Program and arguments (no shell involved).
        timeout: Seconds before the process is terminated; None or 0 = no limit.
        on_stdout: Called with each stdout line as it arrives.
        on_stderr: Called with each stderr line as it arrives.
        cancel_event: Terminates the process when set.
        env: Environment for the child process.
        cwd: Working directory for the child process.

    Returns:
        CommandResult with exit code and captured output.

    Raises:
        CommandError: If the process could not be started.
    """
    command = shlex.join(args)
    logger.debug("Running: %s", command)
    start = time.monotonic()

    try:
        proc = subprocess.Popen(
            args,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            env=env,
            cwd=cwd,
        )
    except OSError as e:
        raise CommandError(command, str(e)) from e

    stdout_lines: list[str] = []
    stderr_lines: list[str] = []
    readers = [
        threading.Thread(
            target=_pump, args=(proc.stdout, stdout_lines, on_stdout), daemon=True
        ),
        threading.Thread(
            target=_pump, args=(proc.stderr, stderr_lines, on_stderr), daemon=True
        ),
    ]
    for reader in readers:
        reader.start()

    deadline = start + timeout if timeout else None
    timed_out = False
    cancelled = False

    while True:
        try:
            proc.wait(timeout=POLL_INTERVAL)
            break
        except subprocess.TimeoutExpired:
            pass
        if cancel_event is not None and cancel_event.is_set():
            logger.info("Cancelling: %s", command)
            cancelled = True
            _terminate(proc)
            break
        if deadline is not None and time.monotonic() >= deadline:
            logger.warning("Command timed out after %.0fs: %s", timeout, command)
            timed_out = True
            _terminate(proc)
            break

    for reader in readers:
        reader.join()

    exit_code = -1 if (timed_out or cancelled) else proc.returncode
    result = CommandResult(
        command=command,
        exit_code=exit_code,
        stdout="\n".join(stdout_lines).strip(),
        stderr="\n".join(stderr_lines).strip(),
        timed_out=timed_out,
        cancelled=cancelled,
        duration=time.monotonic() - start,
    )
    logger.debug("Exit %d after %.1fs: %s", result.exit_code, result.duration, command)
    return result
