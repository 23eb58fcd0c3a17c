"""whisper.cpp recognition runner.

Invokes the engine on a 16kHz mono WAV and streams its output. This is
the longest step of the pipeline; stdout lines are handed to the caller
as they arrive and engine progress lines are decoded into percentages.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Callable

from podsnip.engine.interface import EngineInfo
from podsnip.utils.errors import RecognitionError
from podsnip.utils.process import ProcessRunner

logger = logging.getLogger(__name__)

# whisper.cpp --print-progress: "whisper_print_progress_callback: progress =  42%"
_PROGRESS_LINE = re.compile(r"progress\s*=\s*(\d{1,3})\s*%")


def parse_progress(line: str) -> int | None:
    """Extract an engine progress percentage from a log line, if present."""
    match = _PROGRESS_LINE.search(line)
    if not match:
        return None
    return min(int(match.group(1)), 100)


def sidecar_csv_path(audio_path: str) -> str:
    """Path of the CSV file whisper.cpp writes next to its input."""
    return f"{audio_path}.csv"


class RecognitionRunner:
    """Runs whisper.cpp as a subprocess.

    Args:
        process_runner: Subprocess seam (defaults to a real ProcessRunner).
        threads: Worker thread count passed as ``-t``. Falls back to the
            WHISPER_THREADS environment variable; unset leaves the engine
            default.
        timeout: Optional ceiling in seconds. None waits indefinitely.
    """

    def __init__(
        self,
        process_runner: ProcessRunner | None = None,
        threads: int | None = None,
        timeout: float | None = None,
    ) -> None:
        self._process_runner = process_runner or ProcessRunner()
        if threads is None:
            env_threads = os.environ.get("WHISPER_THREADS", "")
            threads = int(env_threads) if env_threads else None
        self._threads = threads
        self._timeout = timeout

    def build_command(self, engine: EngineInfo, audio_path: str) -> list[str]:
        """Build the engine command line."""
        cmd = [
            engine.binary_path,
            "-m",
            engine.model_path,
            "-f",
            audio_path,
            "--output-csv",
            "--print-progress",
        ]
        if self._threads:
            cmd.extend(["-t", str(self._threads)])
        return cmd

    async def run(
        self,
        engine: EngineInfo,
        audio_path: str,
        on_output_line: Callable[[str], None] | None = None,
        on_progress: Callable[[int], None] | None = None,
    ) -> str:
        """Transcribe a WAV file and return the engine's raw stdout.

        Args:
            engine: Located binary and model.
            audio_path: Path to a 16kHz mono 16-bit PCM WAV.
            on_output_line: Called with each stdout line as it arrives.
            on_progress: Called with engine-reported progress (0-100).

        Returns:
            The complete stdout text, possibly empty.

        Raises:
            ProcessSpawnError: If the engine binary cannot be launched.
            RecognitionError: On non-zero exit or timeout. Empty output on a
                zero exit is returned as-is; the parser decides what it holds.
        """
        def _handle_stdout(line: str) -> None:
            if on_output_line is not None:
                on_output_line(line)
            _report_progress(line)

        def _report_progress(line: str) -> None:
            if on_progress is None:
                return
            percent = parse_progress(line)
            if percent is not None:
                on_progress(percent)

        cmd = self.build_command(engine, audio_path)
        logger.info("Running whisper.cpp with model %s", engine.model_path)

        try:
            result = await self._process_runner.run(
                cmd,
                on_stdout_line=_handle_stdout,
                on_stderr_line=_report_progress,
                timeout=self._timeout,
            )
        except TimeoutError as exc:
            raise RecognitionError(
                f"Whisper transcription timed out after {self._timeout} seconds"
            ) from exc

        if result.exit_code != 0:
            raise RecognitionError(
                f"Whisper transcription failed (exit code {result.exit_code}): "
                f"{result.stderr_tail}",
                exit_code=result.exit_code,
                stderr_tail=result.stderr_tail,
            )

        return result.stdout
