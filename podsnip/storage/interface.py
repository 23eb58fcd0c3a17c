"""Abstract transcript store interface.

The note-taking and player layers read transcripts through this contract;
only the pipeline's persistence step writes them.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from podsnip.engine.interface import TranscriptSegment


@dataclass(frozen=True)
class StoredSegment:
    """A persisted transcript row."""

    id: int
    episode_id: int
    segment_index: int
    start_time: float
    end_time: float
    text: str
    confidence_score: float


class TranscriptStore(ABC):
    """Persistence for per-episode transcripts.

    Subclasses must make persist() all-or-nothing: readers either see
    every segment of an attempt or none of them.
    """

    @abstractmethod
    def exists(self, episode_id: int) -> bool:
        """Return True if any segment is stored for the episode."""

    @abstractmethod
    def persist(
        self, episode_id: int, segments: Sequence[TranscriptSegment]
    ) -> None:
        """Store all segments for an episode as one unit."""

    @abstractmethod
    def get_transcript(self, episode_id: int) -> list[StoredSegment]:
        """Return the episode's segments ordered by segment index."""
