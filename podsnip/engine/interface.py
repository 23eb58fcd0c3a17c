"""Data models shared by the recognition engine components."""

from dataclasses import dataclass


@dataclass(frozen=True)
class TranscriptSegment:
    """One time-bounded span of recognized speech.

    Times are in seconds. ``confidence_score`` is a fixed placeholder for
    local engines, which report no per-segment confidence.
    """

    segment_index: int
    start_time: float
    end_time: float
    text: str
    confidence_score: float


@dataclass(frozen=True)
class EngineInfo:
    """A usable recognition engine: binary plus acoustic model."""

    binary_path: str
    model_path: str


@dataclass(frozen=True)
class EngineUnavailable:
    """Locator outcome when the binary or model is missing."""

    reason: str
    instructions: str
    binary_path: str | None = None


@dataclass(frozen=True)
class EngineAvailability:
    """Answer to the settings screen's availability query."""

    available: bool
    instructions: str
