"""Subprocess runner for toolchain, git and flashing commands.

This module handles:
- A BuildContext carrying a cancellation event and optional deadline
- Executing commands with combined stdout/stderr capture
- Killing the child and its descendants when its context is cancelled
  or expires

Every external command in the pipeline goes through run_command() so
that timeouts behave the same for every toolchain.
"""

from __future__ import annotations

import logging
import os
import shlex
import signal
import subprocess
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from firmware_codegen.errors import BuildCancelledError, CommandExecutionError

logger = logging.getLogger(__name__)

# How often a running child is checked against its context (seconds)
POLL_INTERVAL = 0.2

# How long to wait for output after killing a process group (seconds)
KILL_GRACE = 2.0


class BuildContext:
    """Cancellation scope shared by all subprocesses of one request.

    A context is cancelled explicitly with cancel() or implicitly once
    its deadline passes. Child contexts share the parent's cancel event
    and never outlive the parent's deadline.
    """

    def __init__(
        self,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
        deadline: float | None = None,
    ) -> None:
        if timeout is not None:
            timeout_deadline = time.monotonic() + timeout
            deadline = (
                timeout_deadline if deadline is None else min(deadline, timeout_deadline)
            )
        self.deadline = deadline
        self._cancel_event = cancel_event or threading.Event()

    def child(self, timeout: float | None = None) -> BuildContext:
        """Derive a context with a tighter (never looser) deadline."""
        return BuildContext(
            timeout=timeout,
            cancel_event=self._cancel_event,
            deadline=self.deadline,
        )

    def cancel(self) -> None:
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    @property
    def done(self) -> bool:
        return self.cancelled or self.expired

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None without one."""
        if self.deadline is None:
            return None
        return max(self.deadline - time.monotonic(), 0.0)

    def raise_if_done(self, what: str = "operation") -> None:
        """Raise BuildCancelledError if the context is no longer live."""
        if self.cancelled:
            raise BuildCancelledError(f"{what} cancelled")
        if self.expired:
            raise BuildCancelledError(f"{what} timed out")


@dataclass(frozen=True)
class CommandResult:
    """Result of a finished command.

    Attributes:
        command: The argv that was executed.
        returncode: Process exit code.
        output: Combined stdout and stderr.
        duration: Wall-clock run time in seconds.
    """

    command: tuple[str, ...]
    returncode: int
    output: str
    duration: float

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command_str(self) -> str:
        return shlex.join(self.command)


def run_command(
    command: Sequence[str],
    ctx: BuildContext,
    cwd: Path | None = None,
    env_override: dict[str, str] | None = None,
    poll_interval: float = POLL_INTERVAL,
) -> CommandResult:
    """Run a command to completion, bound to a build context.

    A non-zero exit status is reported in the result, not raised;
    callers decide whether the failure is fatal.

    Args:
        command: Command as list of strings.
        ctx: Build context; cancelling it kills the child.
        cwd: Working directory for the command.
        env_override: Optional environment variable overrides.
        poll_interval: Seconds between cancellation checks.

    Returns:
        CommandResult with exit code and combined output.

    Raises:
        BuildCancelledError: If the context is cancelled or expires.
        CommandExecutionError: If the command cannot be started.
    """
    argv = [str(part) for part in command]
    cmd_str = shlex.join(argv)
    ctx.raise_if_done(argv[0])

    env: dict[str, str] | None = None
    if env_override:
        env = dict(os.environ)
        env.update(env_override)

    logger.debug("Executing: %s (cwd=%s)", cmd_str, cwd)
    started = time.monotonic()

    try:
        proc = subprocess.Popen(
            argv,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            text=True,
            errors="replace",
            env=env,
            # Own process group, so compiler and git helpers die with the child
            start_new_session=True,
        )
    except OSError as e:
        message = f"Failed to execute {argv[0]}: {e}"
        logger.error(message)
        raise CommandExecutionError(message, command=cmd_str) from e

    while True:
        wait = poll_interval
        remaining = ctx.remaining()
        if remaining is not None:
            wait = min(wait, remaining)
        try:
            output, _ = proc.communicate(timeout=wait)
            break
        except subprocess.TimeoutExpired:
            if not ctx.done:
                continue
            _kill_process_group(proc)
            reason = "cancelled" if ctx.cancelled else "timed out"
            logger.warning("Command %s after %.1fs: %s", reason, time.monotonic() - started, cmd_str)
            raise BuildCancelledError(f"{argv[0]} {reason}") from None

    duration = time.monotonic() - started
    logger.debug("Command exited with %d after %.1fs: %s", proc.returncode, duration, cmd_str)

    return CommandResult(
        command=tuple(argv),
        returncode=proc.returncode,
        output=output or "",
        duration=duration,
    )


def _kill_process_group(proc: subprocess.Popen) -> None:
    """Kill a child started in its own session, descendants included."""
    if hasattr(os, "killpg"):
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
    else:
        proc.kill()

    try:
        proc.communicate(timeout=KILL_GRACE)
    except subprocess.TimeoutExpired:
        # A descendant escaped the group and still holds the pipe
        logger.warning("Output pipe of pid %d still open after kill, abandoning it", proc.pid)
        if proc.stdout is not None:
            proc.stdout.close()
        proc.wait()


def tail_output(output: str, max_len: int = 500) -> str:
    """Return the last max_len characters of command output.

    Compiler errors are usually at the end of the log.
    """
    if len(output) > max_len:
        return output[-max_len:]
    return output


__all__ = [
    "KILL_GRACE",
    "POLL_INTERVAL",
    "BuildContext",
    "CommandResult",
    "run_command",
    "tail_output",
]
