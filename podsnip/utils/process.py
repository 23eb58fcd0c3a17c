"""Async subprocess runner for external audio tools.

Both stdout and stderr are drained concurrently, line by line, so a child
that fills one pipe while we wait on the other can never stall. Callers
receive lines as they arrive through optional callbacks. On cancellation
or timeout the child is terminated, then killed after a grace period.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from podsnip.utils.errors import ProcessSpawnError

logger = logging.getLogger(__name__)

LineCallback = Callable[[str], None]

STREAM_LIMIT_BYTES = 1024 * 1024
STDERR_TAIL_LINES = 20
TERMINATE_GRACE_SECONDS = 5.0


@dataclass
class ProcessResult:
    """Outcome of a finished child process."""

    exit_code: int
    stdout: str
    stderr_tail: str


class ProcessRunner:
    """Spawns a child process and streams its output.

    This is the seam the transcoder and recognizer are tested through:
    any object with a compatible async ``run`` can stand in for it.
    """

    def __init__(
        self,
        stderr_tail_lines: int = STDERR_TAIL_LINES,
        terminate_grace_seconds: float = TERMINATE_GRACE_SECONDS,
    ) -> None:
        self._stderr_tail_lines = stderr_tail_lines
        self._terminate_grace_seconds = terminate_grace_seconds

    async def run(
        self,
        args: Sequence[str],
        on_stdout_line: LineCallback | None = None,
        on_stderr_line: LineCallback | None = None,
        capture_stdout: bool = True,
        timeout: float | None = None,
    ) -> ProcessResult:
        """Run a command to completion.

        Args:
            args: Program path followed by its arguments.
            on_stdout_line: Called with each stdout line as it arrives.
            on_stderr_line: Called with each stderr line as it arrives.
            capture_stdout: Accumulate stdout into the result. Lines are
                still drained (and passed to the callback) when False.
            timeout: Optional ceiling in seconds for the whole run.

        Returns:
            ProcessResult with exit code, captured stdout, and stderr tail.

        Raises:
            ProcessSpawnError: If the program cannot be launched.
            TimeoutError: If the timeout elapses; the child is terminated.
        """
        program = args[0]
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT_BYTES,
            )
        except OSError as exc:
            raise ProcessSpawnError(
                f"Failed to launch {program}: {exc}", binary=program
            ) from exc

        logger.debug("Spawned %s (pid %s)", program, proc.pid)

        stdout_lines: list[str] = []
        stderr_tail: deque[str] = deque(maxlen=self._stderr_tail_lines)

        def _collect_stdout(line: str) -> None:
            if capture_stdout:
                stdout_lines.append(line)
            if on_stdout_line is not None:
                on_stdout_line(line)

        def _collect_stderr(line: str) -> None:
            stderr_tail.append(line)
            if on_stderr_line is not None:
                on_stderr_line(line)

        async def _communicate() -> int:
            await asyncio.gather(
                _drain(proc.stdout, _collect_stdout),
                _drain(proc.stderr, _collect_stderr),
            )
            return await proc.wait()

        try:
            async with asyncio.timeout(timeout):
                exit_code = await _communicate()
        except BaseException:
            await self._terminate(proc, program)
            raise

        return ProcessResult(
            exit_code=exit_code,
            stdout="\n".join(stdout_lines),
            stderr_tail="\n".join(stderr_tail),
        )

    async def _terminate(self, proc: asyncio.subprocess.Process, program: str) -> None:
        """Terminate a child that is still running, escalating to kill."""
        if proc.returncode is not None:
            return
        logger.warning("Terminating %s (pid %s)", program, proc.pid)
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(
                asyncio.shield(proc.wait()), self._terminate_grace_seconds
            )
        except TimeoutError:
            logger.warning("Killing %s (pid %s)", program, proc.pid)
            try:
                proc.kill()
            except ProcessLookupError:
                return
            await asyncio.shield(proc.wait())


async def _drain(
    stream: asyncio.StreamReader | None, on_line: LineCallback
) -> None:
    """Read a stream to EOF, handing each decoded line to ``on_line``."""
    if stream is None:
        return
    while True:
        raw = await stream.readline()
        if not raw:
            break
        on_line(raw.decode("utf-8", errors="replace").rstrip("\r\n"))
