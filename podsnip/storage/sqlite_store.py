"""SQLite-backed transcript store."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

from podsnip.engine.interface import TranscriptSegment
from podsnip.storage.interface import StoredSegment, TranscriptStore
from podsnip.utils.errors import TranscriptStoreError

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS transcripts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    episode_id INTEGER NOT NULL,
    segment_index INTEGER NOT NULL,
    start_time REAL NOT NULL,
    end_time REAL NOT NULL,
    text TEXT NOT NULL,
    confidence_score REAL DEFAULT 0.0,
    UNIQUE (episode_id, segment_index)
);
CREATE INDEX IF NOT EXISTS idx_transcripts_episode ON transcripts(episode_id);
"""


class SQLiteTranscriptStore(TranscriptStore):
    """Transcript store on a local SQLite file.

    Opens a short-lived connection per call, so instances are safe to use
    from worker threads.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        if not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.initialize()

    @contextmanager
    def connect(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Yield a connection; errors surface as TranscriptStoreError."""
        try:
            connection = sqlite3.connect(self.db_path, isolation_level=None)
        except sqlite3.Error as exc:
            raise TranscriptStoreError(
                f"Cannot open transcript database {self.db_path}: {exc}",
                operation=operation,
            ) from exc
        connection.row_factory = sqlite3.Row
        try:
            yield connection
        except sqlite3.Error as exc:
            if connection.in_transaction:
                connection.rollback()
            raise TranscriptStoreError(
                f"Transcript database {operation} failed: {exc}",
                operation=operation,
            ) from exc
        finally:
            connection.close()

    def initialize(self) -> None:
        """Create the transcripts table if it does not exist."""
        with self.connect("initialize") as connection:
            connection.executescript(SCHEMA)

    def exists(self, episode_id: int) -> bool:
        with self.connect("exists") as connection:
            row = connection.execute(
                "SELECT 1 FROM transcripts WHERE episode_id = ? LIMIT 1",
                (episode_id,),
            ).fetchone()
            return row is not None

    def persist(
        self, episode_id: int, segments: Sequence[TranscriptSegment]
    ) -> None:
        """Insert all segments in one immediate transaction.

        If another writer stored a transcript for the episode first, the
        insert is skipped so an episode never holds two segment sets.
        """
        with self.connect("persist") as connection:
            connection.execute("BEGIN IMMEDIATE")
            existing = connection.execute(
                "SELECT 1 FROM transcripts WHERE episode_id = ? LIMIT 1",
                (episode_id,),
            ).fetchone()
            if existing is not None:
                connection.rollback()
                logger.warning(
                    "Transcript already stored, skipping insert",
                    extra={"episode_id": episode_id, "stage": "persisting"},
                )
                return
            connection.executemany(
                "INSERT INTO transcripts "
                "(episode_id, segment_index, start_time, end_time, text, confidence_score) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                [
                    (
                        episode_id,
                        segment.segment_index,
                        segment.start_time,
                        segment.end_time,
                        segment.text,
                        segment.confidence_score,
                    )
                    for segment in segments
                ],
            )
            connection.commit()

    def get_transcript(self, episode_id: int) -> list[StoredSegment]:
        with self.connect("get_transcript") as connection:
            rows = connection.execute(
                "SELECT id, episode_id, segment_index, start_time, end_time, "
                "text, confidence_score FROM transcripts "
                "WHERE episode_id = ? ORDER BY segment_index",
                (episode_id,),
            ).fetchall()
        return [StoredSegment(**dict(row)) for row in rows]
