"""Shared test doubles for the transcription pipeline."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import pytest

from podsnip.utils.process import LineCallback, ProcessResult


class FakeProcessRunner:
    """Stands in for ProcessRunner without spawning anything.

    Replays scripted stdout/stderr lines through the callbacks, records
    every command, and optionally writes files to mimic tool side effects.
    """

    def __init__(
        self,
        exit_code: int = 0,
        stdout_lines: Sequence[str] = (),
        stderr_lines: Sequence[str] = (),
        creates: Sequence[tuple[str, bytes]] = (),
        raises: BaseException | None = None,
    ) -> None:
        self.exit_code = exit_code
        self.stdout_lines = list(stdout_lines)
        self.stderr_lines = list(stderr_lines)
        self.creates = list(creates)
        self.raises = raises
        self.calls: list[list[str]] = []

    async def run(
        self,
        args: Sequence[str],
        on_stdout_line: LineCallback | None = None,
        on_stderr_line: LineCallback | None = None,
        capture_stdout: bool = True,
        timeout: float | None = None,
    ) -> ProcessResult:
        self.calls.append(list(args))
        if self.raises is not None:
            raise self.raises
        for path, data in self.creates:
            with open(path, "wb") as f:
                f.write(data)
        for line in self.stdout_lines:
            if on_stdout_line is not None:
                on_stdout_line(line)
        for line in self.stderr_lines:
            if on_stderr_line is not None:
                on_stderr_line(line)
        return ProcessResult(
            exit_code=self.exit_code,
            stdout="\n".join(self.stdout_lines) if capture_stdout else "",
            stderr_tail="\n".join(self.stderr_lines[-20:]),
        )


@pytest.fixture
def fake_runner_factory():
    return FakeProcessRunner


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """setup_logging() binds handlers to whatever sys.stdout is current."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
