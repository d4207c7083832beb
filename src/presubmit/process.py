"""
External command execution for presubmit stages.

This module provides the CommandRunner that every stage launches child
processes through. It:
- Runs argv lists directly (no shell), one segment per pipe stage
- Applies pipefail semantics: a pipe fails if ANY segment exits non-zero
- Logs each command before it runs and records it in the run's trace
- Maps launch problems to the usual shell exit codes
"""

from __future__ import annotations

import os
import re
import signal
import subprocess
import sys
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import IO, Any

from presubmit.errors import UnboundReferenceError
from presubmit.logging import get_logger
from presubmit.models.run import Command, CommandTrace, format_command
from presubmit.tracing import mark_failed, trace_command

logger = get_logger(__name__)

# Shell conventions for statuses that have no child process behind them.
EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127
EXIT_SIGNAL_BASE = 128
EXIT_TIMEOUT = 124

_PLACEHOLDER = re.compile(r"\$(?:\$|\{([A-Za-z_][A-Za-z0-9_]*)\})")


@dataclass(frozen=True)
class CommandResult:
    """
    Outcome of one command.

    Attributes:
        returncode: Pipe status (rightmost non-zero segment, else 0)
        segment_codes: Status of each pipe segment, left to right
        stdout: Captured output of the last segment, if requested
        error: Launch or timeout problem, if any
    """

    returncode: int
    segment_codes: tuple[int, ...] = ()
    stdout: bytes | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def as_command(command: Command | Sequence[str]) -> Command:
    """Accept either a plain argv or pipe segments."""
    if command and isinstance(command[0], str):
        return (tuple(command),)  # type: ignore[arg-type]
    return tuple(tuple(segment) for segment in command)  # type: ignore[union-attr]


def expand_placeholders(command: Command, environ: Mapping[str, str]) -> Command:
    """Substitute ${NAME} placeholders with environment values.

    ``$$`` stands for a literal ``$``. Anything else, braces included, is
    passed through untouched.

    Raises:
        UnboundReferenceError: If a placeholder names an unset variable

    Example:
        >>> expand_placeholders((("echo", "${HOME}", "$${HOME}"),), {"HOME": "/root"})
        (('echo', '/root', '${HOME}'),)
    """

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name is None:
            return "$"
        if name not in environ:
            raise UnboundReferenceError(name)
        return environ[name]

    return tuple(tuple(_PLACEHOLDER.sub(substitute, arg) for arg in segment) for segment in command)


def normalize_returncode(returncode: int) -> int:
    """Report death-by-signal N as 128+N, as a shell would."""
    if returncode < 0:
        return EXIT_SIGNAL_BASE - returncode
    return returncode


def pipe_status(codes: Sequence[int]) -> int:
    """Status of a pipe under pipefail: the rightmost non-zero code, else 0."""
    for code in reversed(codes):
        if code != 0:
            return code
    return 0


def _launch_failure_code(error: OSError) -> int:
    if isinstance(error, FileNotFoundError):
        return EXIT_NOT_FOUND
    return EXIT_NOT_EXECUTABLE


def _kill_process_group(proc: subprocess.Popen[bytes]) -> None:
    """Kill a timed-out child together with everything it started."""
    if sys.platform == "win32":
        if proc.poll() is None:
            proc.kill()
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        # The whole group has already exited.
        pass


class CommandRunner:
    """
    Run external commands for one pipeline run.

    Every command is synchronous: run() returns only after all of its pipe
    segments have exited. Commands inherit stdout/stderr unless output is
    captured.

    Attributes:
        cwd: Working directory for every command
        env: Child environment (None inherits the parent's)
        timeout: Seconds before a command is killed (None waits forever).
            With a timeout each command gets its own process group, and a
            timeout kills the whole group.
        trace: Commands executed so far, in order
        stage: Name of the stage currently running, stamped on traces
    """

    def __init__(
        self,
        cwd: str | os.PathLike[str],
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        trace: list[CommandTrace] | None = None,
    ) -> None:
        self.cwd = os.fspath(cwd)
        self.env = dict(env) if env is not None else None
        self.timeout = timeout
        self.trace: list[CommandTrace] = trace if trace is not None else []
        self.stage: str | None = None

    def run(self, command: Command | Sequence[str], capture_output: bool = False) -> CommandResult:
        """Run a command (or pipe) to completion and record it."""
        segments = as_command(command)
        display = format_command(segments)
        logger.info(
            "command.exec",
            command=display,
            argv=[list(segment) for segment in segments],
            stage=self.stage,
            cwd=self.cwd,
        )

        with trace_command([display], cwd=self.cwd) as span:
            result = self._execute(segments, capture_output)
            span.set_attribute("command.exit_code", result.returncode)
            if not result.ok:
                mark_failed(span, result.error or f"exit status {result.returncode}")

        if result.error:
            logger.error("command.failed", command=display, error=result.error, exit_code=result.returncode)
        else:
            logger.debug("command.exited", command=display, exit_code=result.returncode)

        self.trace.append(
            CommandTrace(
                stage=self.stage,
                command=segments,
                cwd=self.cwd,
                exit_code=result.returncode,
            )
        )
        return result

    def _execute(self, segments: Command, capture_output: bool) -> CommandResult:
        procs: list[subprocess.Popen[bytes] | None] = []
        codes: list[int | None] = []
        errors: list[str] = []
        upstream: IO[bytes] | None = None

        for index, argv in enumerate(segments):
            last = index == len(segments) - 1
            stdout: Any = subprocess.PIPE if (capture_output or not last) else None
            if upstream is not None:
                stdin: Any = upstream
            else:
                stdin = subprocess.DEVNULL if index > 0 else None

            proc: subprocess.Popen[bytes] | None
            try:
                proc = subprocess.Popen(
                    list(argv),
                    cwd=self.cwd,
                    env=self.env,
                    start_new_session=self.timeout is not None,
                    stdin=stdin,
                    stdout=stdout,
                )
            except OSError as e:
                proc = None
                codes.append(_launch_failure_code(e))
                errors.append(f"{argv[0]}: {e.strerror or e}")
            else:
                codes.append(None)
            finally:
                # The child holds its own copy of the read end now.
                if upstream is not None:
                    upstream.close()

            upstream = proc.stdout if (proc is not None and not last) else None
            procs.append(proc)

        deadline = time.monotonic() + self.timeout if self.timeout is not None else None
        output: bytes | None = None
        try:
            # Drain from the right so the last segment's output pipe never fills up
            # while an earlier segment is still writing into it.
            for index, proc in reversed(list(enumerate(procs))):
                if proc is None:
                    continue
                remaining = None if deadline is None else max(deadline - time.monotonic(), 0.0)
                if index == len(procs) - 1 and capture_output:
                    output, _ = proc.communicate(timeout=remaining)
                else:
                    proc.wait(timeout=remaining)
                codes[index] = normalize_returncode(proc.returncode)
        except subprocess.TimeoutExpired:
            for proc in procs:
                if proc is not None:
                    _kill_process_group(proc)
            for proc in procs:
                if proc is not None:
                    proc.wait()
            return CommandResult(
                returncode=EXIT_TIMEOUT,
                segment_codes=tuple(EXIT_TIMEOUT if c is None else c for c in codes),
                error=f"Command timed out after {self.timeout}s",
            )

        final = tuple(c if c is not None else 0 for c in codes)
        return CommandResult(
            returncode=pipe_status(final),
            segment_codes=final,
            stdout=output,
            error="; ".join(errors) or None,
        )
