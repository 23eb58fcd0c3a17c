"""Transcription attempt metrics collection and reporting.

Provides the AttemptMetrics dataclass for structured observability data,
a StageTimer context manager for measuring pipeline stage durations,
and log_attempt_metrics() for emitting metrics as a JSON line to stdout.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime


@dataclass
class AttemptMetrics:
    """All metrics collected for a single transcription attempt."""

    episode_id: int
    status: str
    processing_wall_time_seconds: float
    audio_duration_seconds: float = 0.0
    staged_audio_size_bytes: int = 0
    segment_count: int = 0
    stage_timings: dict[str, float] = field(default_factory=dict)
    error_stage: str | None = None
    error_message: str | None = None


class StageTimer:
    """Context manager that records wall-clock duration of a pipeline stage.

    When given a ``timings`` dict, the elapsed time is stored under the
    stage name on exit, whether or not the stage raised.

    Usage:
        timer = StageTimer("transcoding")
        with timer:
            do_work()
        print(timer.duration_seconds)
    """

    def __init__(
        self, stage_name: str, timings: dict[str, float] | None = None
    ) -> None:
        self.stage_name = stage_name
        self.start_time: datetime | None = None
        self.end_time: datetime | None = None
        self.duration_seconds: float = 0.0
        self._timings = timings
        self._mono_start: float = 0.0

    def __enter__(self) -> StageTimer:
        self.start_time = datetime.now(UTC)
        self._mono_start = time.monotonic()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        elapsed = time.monotonic() - self._mono_start
        self.end_time = datetime.now(UTC)
        self.duration_seconds = elapsed
        if self._timings is not None:
            self._timings[self.stage_name] = elapsed


def log_attempt_metrics(metrics: AttemptMetrics) -> None:
    """Emit attempt metrics as a single structured JSON line to stdout.

    Args:
        metrics: Populated AttemptMetrics dataclass.
    """
    entry = {
        "timestamp": datetime.now(UTC).isoformat(),
        "severity": "INFO",
        "metric_type": "transcription_attempt",
        **asdict(metrics),
    }
    print(json.dumps(entry))
