"""Transcription pipeline orchestrator.

Turns a remote episode audio URL into stored, time-aligned transcript
segments: check existing -> locate engine -> stage -> transcode ->
recognize -> parse -> persist -> clean up.

Progress schedule (percent, label) reported to the caller:

    Checking for existing transcript      0
    Locating transcription engine         0
    Downloading audio                     0
    Converting audio                     20
    Transcribing                         30, then 40-95 as the engine advances
    Parsing transcript                   95
    Saving transcript                    97
    Complete                            100

An episode that already has a transcript reports (100, "Transcript
already exists") and does no other work. Staged files are removed on
every exit path.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from podsnip.audio.stager import AudioStager
from podsnip.audio.transcode import AudioTranscoder, output_path_for
from podsnip.engine.interface import (
    EngineAvailability,
    EngineInfo,
    EngineUnavailable,
    TranscriptSegment,
)
from podsnip.engine.locator import EngineLocator
from podsnip.engine.parser import PLACEHOLDER_CONFIDENCE, parse_line, parse_segments
from podsnip.engine.runner import RecognitionRunner, sidecar_csv_path
from podsnip.observability.metrics import AttemptMetrics, StageTimer, log_attempt_metrics
from podsnip.progress import ProgressCallback, ProgressReporter
from podsnip.storage.interface import TranscriptStore
from podsnip.utils.errors import (
    EngineUnavailableError,
    NoSegmentsExtractedError,
    PipelineCancelledError,
    PipelineError,
)

logger = logging.getLogger(__name__)

RECOGNITION_START_PERCENT = 30
RECOGNITION_MIN_PERCENT = 40
RECOGNITION_MAX_PERCENT = 95


class PipelineState(str, Enum):
    """Stages of one transcription attempt."""

    IDLE = "idle"
    CHECKING_EXISTING = "checking_existing"
    LOCATING_ENGINE = "locating_engine"
    STAGING = "staging"
    TRANSCODING = "transcoding"
    RECOGNIZING = "recognizing"
    PARSING = "parsing"
    PERSISTING = "persisting"
    CLEANING = "cleaning"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PipelineAttempt:
    """Transient state of one transcribe() call. Never persisted."""

    episode_id: int
    audio_url: str
    state: PipelineState = PipelineState.IDLE
    raw_path: str | None = None
    wav_path: str | None = None
    sidecar_path: str | None = None
    failed_stage: str | None = None
    staged_audio_size_bytes: int = 0
    audio_duration_seconds: float = 0.0
    stage_timings: dict[str, float] = field(default_factory=dict)

    def temp_paths(self) -> list[str]:
        """Every temporary file this attempt may have created."""
        return [
            p for p in (self.raw_path, self.wav_path, self.sidecar_path) if p
        ]


@dataclass
class TranscriptionFailure:
    """Details about a failed or cancelled attempt.

    ``instructions`` carries the installation guide when the engine is
    missing, and is empty otherwise.
    """

    stage: str
    kind: str
    message: str
    exception_type: str
    instructions: str = ""


@dataclass
class TranscriptionResult:
    """Outcome of transcribe()."""

    status: Literal["completed", "already_transcribed", "failed", "cancelled"]
    episode_id: int
    segment_count: int = 0
    metrics: AttemptMetrics | None = None
    error: TranscriptionFailure | None = None

    @property
    def ok(self) -> bool:
        return self.status in ("completed", "already_transcribed")


class _RecognitionProgress:
    """Maps engine output onto the 40-95% recognition band.

    Engine progress lines take precedence; segment end times relative to
    the audio duration are used when the engine prints none.
    """

    def __init__(self, reporter: ProgressReporter, duration_seconds: float) -> None:
        self._reporter = reporter
        self._duration = duration_seconds

    def _report(self, fraction: float) -> None:
        fraction = min(max(fraction, 0.0), 1.0)
        span = RECOGNITION_MAX_PERCENT - RECOGNITION_MIN_PERCENT
        self._reporter.report(
            RECOGNITION_MIN_PERCENT + int(fraction * span), "Transcribing"
        )

    def on_engine_progress(self, percent: int) -> None:
        self._report(percent / 100)

    def on_output_line(self, line: str) -> None:
        if self._duration <= 0:
            return
        parsed = parse_line(line)
        if parsed is not None:
            self._report(parsed[1] / self._duration)


@dataclass
class _EpisodeLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class TranscriptionPipeline:
    """Single entry point for local episode transcription.

    Collaborators are injected; defaults are built from the environment.
    Different episodes may be transcribed concurrently. Calls for the same
    episode are serialized, so the second one finds the first one's
    transcript and short-circuits.

    Args:
        store: Transcript persistence.
        locator: Engine discovery.
        stager: Audio download.
        transcoder: ffmpeg conversion.
        recognizer: whisper.cpp invocation.
        confidence_score: Placeholder confidence stored on every segment.
    """

    def __init__(
        self,
        store: TranscriptStore,
        locator: EngineLocator | None = None,
        stager: AudioStager | None = None,
        transcoder: AudioTranscoder | None = None,
        recognizer: RecognitionRunner | None = None,
        confidence_score: float = PLACEHOLDER_CONFIDENCE,
    ) -> None:
        self.store = store
        self.locator = locator or EngineLocator()
        self.stager = stager or AudioStager()
        self.transcoder = transcoder or AudioTranscoder()
        self.recognizer = recognizer or RecognitionRunner()
        self.confidence_score = confidence_score
        self._locks: dict[int, _EpisodeLock] = {}
        self._active: dict[int, asyncio.Task[int | None]] = {}

    def check_availability(self) -> EngineAvailability:
        """Report whether local transcription can run."""
        return self.locator.check_availability()

    def is_running(self, episode_id: int) -> bool:
        task = self._active.get(episode_id)
        return task is not None and not task.done()

    def cancel(self, episode_id: int) -> bool:
        """Cancel the in-flight attempt for an episode.

        Returns:
            True if an attempt was running and has been asked to stop.
        """
        task = self._active.get(episode_id)
        if task is None or task.done():
            return False
        logger.info("Cancelling transcription", extra={"episode_id": episode_id})
        task.cancel()
        return True

    async def transcribe(
        self,
        episode_id: int,
        audio_url: str,
        progress_callback: ProgressCallback | None = None,
    ) -> TranscriptionResult:
        """Transcribe an episode and store its segments.

        Never raises for pipeline failures: every error is mapped to a
        failed (or cancelled) result after cleanup has run. If the calling
        task itself is cancelled, cleanup still runs and CancelledError
        propagates.

        Args:
            episode_id: Episode to transcribe.
            audio_url: Remote audio location.
            progress_callback: Receives ``(percent, stage)`` updates.

        Returns:
            TranscriptionResult describing the outcome.
        """
        async with self._episode_lock(episode_id):
            return await self._transcribe_locked(
                episode_id, audio_url, progress_callback
            )

    @asynccontextmanager
    async def _episode_lock(self, episode_id: int) -> AsyncIterator[None]:
        entry = self._locks.get(episode_id)
        if entry is None:
            entry = self._locks[episode_id] = _EpisodeLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._locks.pop(episode_id, None)

    async def _transcribe_locked(
        self,
        episode_id: int,
        audio_url: str,
        progress_callback: ProgressCallback | None,
    ) -> TranscriptionResult:
        wall_start = time.monotonic()
        reporter = ProgressReporter(episode_id, progress_callback)
        attempt = PipelineAttempt(episode_id=episode_id, audio_url=audio_url)

        task = asyncio.create_task(self._run_attempt(attempt, reporter))
        self._active[episode_id] = task
        try:
            segment_count = await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                self._transition(attempt, PipelineState.FAILED)
                raise
            return self._failure(
                attempt,
                PipelineCancelledError("Transcription cancelled", episode_id),
                "cancelled",
                wall_start,
            )
        except Exception as exc:
            return self._failure(attempt, exc, "failed", wall_start)
        finally:
            self._active.pop(episode_id, None)

        self._transition(attempt, PipelineState.DONE)

        if segment_count is None:
            reporter.report(100, "Transcript already exists")
            logger.info(
                "Transcript already exists, nothing to do",
                extra={"episode_id": episode_id},
            )
            return TranscriptionResult(
                status="already_transcribed", episode_id=episode_id
            )

        reporter.report(100, "Complete")
        metrics = self._build_metrics(attempt, "completed", wall_start, segment_count)
        log_attempt_metrics(metrics)
        logger.info(
            "Local transcription complete: %d segments",
            segment_count,
            extra={
                "episode_id": episode_id,
                "duration_seconds": metrics.processing_wall_time_seconds,
            },
        )
        return TranscriptionResult(
            status="completed",
            episode_id=episode_id,
            segment_count=segment_count,
            metrics=metrics,
        )

    async def _run_attempt(
        self, attempt: PipelineAttempt, reporter: ProgressReporter
    ) -> int | None:
        """Run every stage, then clean up whatever the stages staged."""
        try:
            return await self._execute(attempt, reporter)
        except BaseException:
            attempt.failed_stage = attempt.state.value
            raise
        finally:
            self._cleanup(attempt)

    async def _execute(
        self, attempt: PipelineAttempt, reporter: ProgressReporter
    ) -> int | None:
        """Stage sequence. Returns the segment count, or None if already done."""
        episode_id = attempt.episode_id
        timings = attempt.stage_timings

        self._transition(attempt, PipelineState.CHECKING_EXISTING)
        reporter.report(0, "Checking for existing transcript")
        if await asyncio.to_thread(self.store.exists, episode_id):
            return None

        self._transition(attempt, PipelineState.LOCATING_ENGINE)
        reporter.report(0, "Locating transcription engine")
        engine = self._locate_engine(episode_id)

        self._transition(attempt, PipelineState.STAGING)
        reporter.report(0, "Downloading audio")
        attempt.raw_path = self.stager.build_path(episode_id, attempt.audio_url)
        with StageTimer("staging", timings):
            await self.stager.stage(
                episode_id, attempt.audio_url, dest_path=attempt.raw_path
            )
        attempt.staged_audio_size_bytes = os.path.getsize(attempt.raw_path)

        self._transition(attempt, PipelineState.TRANSCODING)
        reporter.report(20, "Converting audio")
        attempt.wav_path = output_path_for(attempt.raw_path)
        attempt.sidecar_path = sidecar_csv_path(attempt.wav_path)
        with StageTimer("transcoding", timings):
            transcoded = await self.transcoder.convert(
                attempt.raw_path, attempt.wav_path
            )
        attempt.audio_duration_seconds = transcoded.duration_seconds

        self._transition(attempt, PipelineState.RECOGNIZING)
        reporter.report(RECOGNITION_START_PERCENT, "Transcribing")
        ramp = _RecognitionProgress(reporter, transcoded.duration_seconds)
        with StageTimer("recognition", timings):
            raw_output = await self.recognizer.run(
                engine,
                attempt.wav_path,
                on_output_line=ramp.on_output_line,
                on_progress=ramp.on_engine_progress,
            )

        self._transition(attempt, PipelineState.PARSING)
        reporter.report(RECOGNITION_MAX_PERCENT, "Parsing transcript")
        with StageTimer("parsing", timings):
            segments = self._parse(attempt, raw_output)

        self._transition(attempt, PipelineState.PERSISTING)
        reporter.report(97, "Saving transcript")
        with StageTimer("persisting", timings):
            await asyncio.to_thread(self.store.persist, episode_id, segments)

        return len(segments)

    def _locate_engine(self, episode_id: int) -> EngineInfo:
        located = self.locator.locate()
        if isinstance(located, EngineUnavailable):
            raise EngineUnavailableError(
                f"Whisper.cpp not available: {located.reason}",
                episode_id=episode_id,
                instructions=located.instructions,
            )
        logger.info(
            "Using model: %s",
            located.model_path,
            extra={"episode_id": episode_id, "stage": "locating_engine"},
        )
        return located

    def _parse(
        self, attempt: PipelineAttempt, raw_output: str
    ) -> list[TranscriptSegment]:
        """Parse stdout, falling back to the CSV file the engine wrote."""
        try:
            return parse_segments(raw_output, self.confidence_score)
        except NoSegmentsExtractedError:
            sidecar = attempt.sidecar_path
            if not sidecar or not os.path.exists(sidecar):
                raise
            logger.info(
                "No segments on stdout, reading %s",
                sidecar,
                extra={"episode_id": attempt.episode_id, "stage": "parsing"},
            )
            with open(sidecar, encoding="utf-8", errors="replace") as f:
                return parse_segments(f.read(), self.confidence_score)

    def _cleanup(self, attempt: PipelineAttempt) -> None:
        """Best-effort removal of staged files. Failures are only logged."""
        self._transition(attempt, PipelineState.CLEANING)
        for path in attempt.temp_paths():
            try:
                os.remove(path)
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning(
                    "Failed to delete temporary file %s",
                    path,
                    extra={
                        "episode_id": attempt.episode_id,
                        "stage": "cleaning",
                        "error": str(exc),
                    },
                )

    def _transition(self, attempt: PipelineAttempt, state: PipelineState) -> None:
        attempt.state = state
        logger.info(
            "Pipeline state: %s",
            state.value,
            extra={"episode_id": attempt.episode_id, "stage": state.value},
        )

    def _failure(
        self,
        attempt: PipelineAttempt,
        exc: Exception,
        status: Literal["failed", "cancelled"],
        wall_start: float,
    ) -> TranscriptionResult:
        self._transition(attempt, PipelineState.FAILED)
        if isinstance(exc, PipelineError):
            if exc.episode_id is None:
                exc.episode_id = attempt.episode_id
            kind = exc.kind
        else:
            kind = "unexpected"

        stage = attempt.failed_stage or PipelineState.IDLE.value
        message = str(exc)
        instructions = (
            exc.instructions if isinstance(exc, EngineUnavailableError) else ""
        )
        if status == "cancelled":
            logger.warning(
                "Transcription cancelled during %s",
                stage,
                extra={"episode_id": attempt.episode_id, "stage": stage},
            )
        else:
            logger.error(
                "Pipeline failed at stage '%s': %s",
                stage,
                message,
                extra={"episode_id": attempt.episode_id, "stage": stage, "error": kind},
                exc_info=exc,
            )

        metrics = self._build_metrics(
            attempt, status, wall_start, 0, error_stage=stage, error_message=message
        )
        log_attempt_metrics(metrics)

        return TranscriptionResult(
            status=status,
            episode_id=attempt.episode_id,
            metrics=metrics,
            error=TranscriptionFailure(
                stage=stage,
                kind=kind,
                message=message,
                exception_type=type(exc).__name__,
                instructions=instructions,
            ),
        )

    def _build_metrics(
        self,
        attempt: PipelineAttempt,
        status: str,
        wall_start: float,
        segment_count: int,
        error_stage: str | None = None,
        error_message: str | None = None,
    ) -> AttemptMetrics:
        return AttemptMetrics(
            episode_id=attempt.episode_id,
            status=status,
            processing_wall_time_seconds=time.monotonic() - wall_start,
            audio_duration_seconds=attempt.audio_duration_seconds,
            staged_audio_size_bytes=attempt.staged_audio_size_bytes,
            segment_count=segment_count,
            stage_timings=dict(attempt.stage_timings),
            error_stage=error_stage,
            error_message=error_message,
        )
