"""Async subprocess execution with line-level output capture.

Workspace test commands can run for minutes and print thousands of lines, so
stdout and stderr are read concurrently line by line and every line is
stamped with the time it was captured.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

STDOUT = "stdout"
STDERR = "stderr"


@dataclass(frozen=True)
class CapturedLine:
    """One line of process output."""

    stream: str
    """``stdout`` or ``stderr``."""

    text: str

    timestamp: str
    """ISO 8601 UTC capture time."""


@dataclass
class SubprocessResult:
    """Result of subprocess execution."""

    returncode: int
    """Exit code of the process (``-1`` when killed or never started)."""

    lines: list[CapturedLine] = field(default_factory=list)
    """Output lines of both streams in capture order."""

    timed_out: bool = False

    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def stdout(self) -> str:
        return "\n".join(line.text for line in self.lines if line.stream == STDOUT)

    @property
    def stderr(self) -> str:
        return "\n".join(line.text for line in self.lines if line.stream == STDERR)


class SubprocessError(Exception):
    """Raised when a command cannot be executed."""

    def __init__(self, message: str, result: SubprocessResult) -> None:
        super().__init__(message)
        self.result = result


def _now() -> str:
    return datetime.now(UTC).isoformat()


async def _pump(
    reader: asyncio.StreamReader | None,
    stream: str,
    sink: list[CapturedLine],
) -> None:
    if reader is None:
        return
    while True:
        raw = await reader.readline()
        if not raw:
            return
        text = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        sink.append(CapturedLine(stream=stream, text=text, timestamp=_now()))


async def run_subprocess(
    command: Sequence[str],
    *,
    cwd: Path | None = None,
    timeout: float = 600.0,
    env: dict[str, str] | None = None,
) -> SubprocessResult:
    """Run *command* and capture its output line by line.

    A non-zero exit is reported through the result, not raised. On timeout
    the process is killed and ``timed_out`` is set.

    Args:
        command: Program and arguments.
        cwd: Working directory. Defaults to the current directory.
        timeout: Seconds to wait before killing the process.
        env: Extra environment variables, merged over ``os.environ``.

    Raises:
        ValueError: If *command* is empty, *timeout* is not positive or
            *cwd* does not exist.
        SubprocessError: If the program cannot be started.
    """
    if not command:
        raise ValueError("Command cannot be empty")
    if timeout <= 0:
        raise ValueError(f"Timeout must be positive, got {timeout}")

    work_dir = cwd.resolve() if cwd else Path.cwd()
    if not work_dir.is_dir():
        raise ValueError(f"Working directory does not exist: {work_dir}")

    full_env = {**os.environ, **env} if env else None
    display = " ".join(str(part) for part in command)
    logger.debug("Running subprocess: %s (cwd=%s, timeout=%s)", display, work_dir, timeout)

    start = time.perf_counter()
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=work_dir,
            env=full_env,
        )
    except OSError as exc:
        logger.error("Failed to start %s: %s", command[0], exc)
        result = SubprocessResult(
            returncode=-1,
            lines=[CapturedLine(stream=STDERR, text=str(exc), timestamp=_now())],
        )
        raise SubprocessError(f"Command not found or not executable: {command[0]}", result) from exc

    lines: list[CapturedLine] = []
    timed_out = False
    try:
        await asyncio.wait_for(
            asyncio.gather(
                _pump(process.stdout, STDOUT, lines),
                _pump(process.stderr, STDERR, lines),
                process.wait(),
            ),
            timeout=timeout,
        )
    except TimeoutError:
        logger.warning("Subprocess timed out after %s seconds: %s", timeout, display)
        timed_out = True
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()
        lines.append(
            CapturedLine(
                stream=STDERR,
                text=f"Process timed out after {timeout} seconds and was killed",
                timestamp=_now(),
            )
        )

    duration_ms = (time.perf_counter() - start) * 1000
    returncode = -1 if timed_out or process.returncode is None else process.returncode

    logger.debug(
        "Subprocess completed: returncode=%d, duration=%.2fms, lines=%d",
        returncode,
        duration_ms,
        len(lines),
    )
    return SubprocessResult(
        returncode=returncode,
        lines=lines,
        timed_out=timed_out,
        duration_ms=duration_ms,
    )
