"""Audio to 16kHz WAV transcoder using ffmpeg.

Converts staged episode audio (typically MP3 or M4A) to the exact input
format whisper.cpp requires: 16kHz mono 16-bit PCM WAV. These parameters
are fixed; any other format degrades or breaks recognition.
"""

from __future__ import annotations

import logging
import os
import shutil
import wave
from dataclasses import dataclass
from pathlib import Path

from podsnip.utils.errors import ProcessSpawnError, TranscodeError
from podsnip.utils.process import ProcessRunner

logger = logging.getLogger(__name__)

TARGET_SAMPLE_RATE = 16000
TARGET_CHANNELS = 1
TARGET_SAMPLE_WIDTH = 2  # 16-bit = 2 bytes
TARGET_CODEC = "pcm_s16le"
OUTPUT_SUFFIX = ".16k.wav"

TRANSCODE_TIMEOUT_SECONDS = 900


@dataclass
class TranscodeResult:
    """Result of a successful transcode operation."""

    input_path: str
    output_path: str
    input_size_bytes: int
    output_size_bytes: int
    duration_seconds: float


def output_path_for(input_path: str) -> str:
    """Return the WAV path written for a given input file."""
    input_file = Path(input_path)
    return str(input_file.with_name(f"{input_file.stem}{OUTPUT_SUFFIX}"))


def _read_wav_duration(wav_path: str) -> float:
    """Read duration from a WAV file header.

    Args:
        wav_path: Path to the WAV file.

    Returns:
        Duration in seconds.
    """
    with wave.open(wav_path, "rb") as wf:
        frames = wf.getnframes()
        rate = wf.getframerate()
        return frames / rate


class AudioTranscoder:
    """Runs ffmpeg to normalize staged audio.

    Args:
        process_runner: Subprocess seam (defaults to a real ProcessRunner).
        ffmpeg_path: Explicit ffmpeg binary; looked up on PATH when omitted.
        timeout: Ceiling in seconds for one conversion.
    """

    def __init__(
        self,
        process_runner: ProcessRunner | None = None,
        ffmpeg_path: str | None = None,
        timeout: float = TRANSCODE_TIMEOUT_SECONDS,
    ) -> None:
        self._process_runner = process_runner or ProcessRunner()
        self._ffmpeg_path = ffmpeg_path
        self._timeout = timeout

    def _resolve_ffmpeg(self) -> str:
        """Return the ffmpeg binary path.

        Raises:
            ProcessSpawnError: If ffmpeg is not found.
        """
        if self._ffmpeg_path:
            return self._ffmpeg_path
        ffmpeg_path = shutil.which("ffmpeg")
        if ffmpeg_path is None:
            raise ProcessSpawnError(
                "ffmpeg binary not found on PATH", binary="ffmpeg"
            )
        return ffmpeg_path

    def build_command(self, ffmpeg_path: str, input_path: str, output_path: str) -> list[str]:
        """Build the ffmpeg command line for the fixed target format."""
        return [
            ffmpeg_path,
            "-nostdin",
            "-hide_banner",
            "-i",
            input_path,
            "-ar",
            str(TARGET_SAMPLE_RATE),
            "-ac",
            str(TARGET_CHANNELS),
            "-c:a",
            TARGET_CODEC,
            "-y",
            output_path,
        ]

    async def convert(
        self, input_path: str, output_path: str | None = None
    ) -> TranscodeResult:
        """Transcode an audio file to 16kHz mono 16-bit PCM WAV.

        Args:
            input_path: Path to the staged audio file.
            output_path: Optional output path. Defaults to output_path_for().

        Returns:
            TranscodeResult with paths, sizes, and duration.

        Raises:
            ProcessSpawnError: If ffmpeg is missing or cannot be launched.
            TranscodeError: If the input is missing, ffmpeg exits non-zero,
                times out, or writes no usable output.
        """
        input_file = Path(input_path)
        if not input_file.exists():
            raise TranscodeError(
                f"Input file does not exist: {input_path}",
                input_path=input_path,
            )

        ffmpeg_path = self._resolve_ffmpeg()
        if output_path is None:
            output_path = output_path_for(input_path)

        cmd = self.build_command(ffmpeg_path, input_path, output_path)
        logger.info("Converting %s to 16kHz WAV", input_path)

        try:
            result = await self._process_runner.run(
                cmd, capture_stdout=False, timeout=self._timeout
            )
        except TimeoutError as exc:
            raise TranscodeError(
                f"ffmpeg transcode timed out after {self._timeout} seconds",
                input_path=input_path,
            ) from exc

        if result.exit_code != 0:
            raise TranscodeError(
                f"FFmpeg conversion failed (exit code {result.exit_code}): "
                f"{result.stderr_tail}",
                exit_code=result.exit_code,
                stderr_tail=result.stderr_tail,
                input_path=input_path,
            )

        if not os.path.exists(output_path):
            raise TranscodeError(
                f"ffmpeg produced no output file: {output_path}",
                exit_code=result.exit_code,
                stderr_tail=result.stderr_tail,
                input_path=input_path,
            )

        try:
            duration = _read_wav_duration(output_path)
        except (wave.Error, EOFError) as exc:
            raise TranscodeError(
                f"ffmpeg output is not a readable WAV file: {exc}",
                exit_code=result.exit_code,
                stderr_tail=result.stderr_tail,
                input_path=input_path,
            ) from exc

        return TranscodeResult(
            input_path=input_path,
            output_path=output_path,
            input_size_bytes=input_file.stat().st_size,
            output_size_bytes=os.path.getsize(output_path),
            duration_seconds=duration,
        )
