"""Parser for whisper.cpp CSV output.

Each meaningful line has the form ``<startMillis>,<endMillis>,<text>``.
Anything else (headers, model loading chatter, progress lines) is skipped.
"""

from __future__ import annotations

import logging
import re

from podsnip.engine.interface import TranscriptSegment
from podsnip.utils.errors import NoSegmentsExtractedError

logger = logging.getLogger(__name__)

# whisper.cpp CSV output carries no confidence; every segment gets this value.
PLACEHOLDER_CONFIDENCE = 0.9

_SEGMENT_LINE = re.compile(r"^(\d+),(\d+),(.+)$")


def _unquote(text: str) -> str:
    """Strip CSV quoting (``"..."`` with doubled inner quotes)."""
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        return text[1:-1].replace('""', '"')
    return text


def parse_line(line: str) -> tuple[float, float, str] | None:
    """Parse one output line into ``(start_seconds, end_seconds, text)``.

    Returns None for lines that are not segment lines. Text is trimmed and
    may be empty.
    """
    match = _SEGMENT_LINE.match(line.lstrip().rstrip("\r\n"))
    if not match:
        return None
    start_ms, end_ms, text = match.groups()
    return int(start_ms) / 1000, int(end_ms) / 1000, _unquote(text.strip()).strip()


def parse_segments(
    raw_output: str, confidence_score: float = PLACEHOLDER_CONFIDENCE
) -> list[TranscriptSegment]:
    """Convert raw engine output into ordered, densely indexed segments.

    Indices count only lines that produced a segment, so dropped lines
    never leave a gap. Output order is preserved.

    Args:
        raw_output: Full stdout (or CSV sidecar) text from the engine.
        confidence_score: Value stored on every segment.

    Returns:
        Segments indexed 0..n-1.

    Raises:
        NoSegmentsExtractedError: If no line yields a usable segment.
    """
    segments: list[TranscriptSegment] = []

    for line in raw_output.splitlines():
        if not line.strip():
            continue
        parsed = parse_line(line)
        if parsed is None:
            continue
        start_time, end_time, text = parsed
        if not text:
            continue
        if end_time <= start_time:
            logger.debug("Skipping zero-length segment line: %s", line)
            continue
        segments.append(
            TranscriptSegment(
                segment_index=len(segments),
                start_time=start_time,
                end_time=end_time,
                text=text,
                confidence_score=confidence_score,
            )
        )

    if not segments:
        raise NoSegmentsExtractedError("No transcript segments were extracted")

    return segments
