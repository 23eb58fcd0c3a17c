"""Progress reporting for transcription attempts.

A ProgressReporter wraps the caller's ``(percent, stage)`` callback and
guarantees the percent sequence never decreases within one attempt.
ProgressChannel adapts the callback contract to an async iterator for
callers that prefer to consume updates from a queue.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]


@dataclass(frozen=True)
class ProgressUpdate:
    """One progress notification."""

    episode_id: int
    percent: int
    stage: str


class ProgressReporter:
    """Monotonic progress sink for a single attempt.

    Exceptions raised by the callback are logged and otherwise ignored.
    """

    def __init__(
        self, episode_id: int, callback: ProgressCallback | None = None
    ) -> None:
        self.episode_id = episode_id
        self._callback = callback
        self._last_percent = 0
        self._last_stage: str | None = None

    @property
    def percent(self) -> int:
        return self._last_percent

    def report(self, percent: int, stage: str) -> None:
        """Send an update, clamped to [last reported, 100]."""
        percent = min(max(int(percent), self._last_percent), 100)
        if percent == self._last_percent and stage == self._last_stage:
            return
        self._last_percent = percent
        self._last_stage = stage

        logger.debug(
            "Progress %d%% %s",
            percent,
            stage,
            extra={"episode_id": self.episode_id, "stage": stage, "percent": percent},
        )
        if self._callback is None:
            return
        try:
            self._callback(percent, stage)
        except Exception:
            logger.warning(
                "Progress callback raised",
                extra={"episode_id": self.episode_id, "stage": stage},
                exc_info=True,
            )


class ProgressChannel:
    """Queue-backed progress sink usable as a pipeline callback.

    Calls are safe from any thread: updates are handed to the owning event
    loop with ``call_soon_threadsafe``. Iterate with ``async for`` until
    close() is called.

    Usage:
        channel = ProgressChannel(episode_id)
        task = asyncio.create_task(pipeline.transcribe(7, url, channel))
        task.add_done_callback(lambda _: channel.close())
        async for update in channel:
            render(update)
    """

    _CLOSED = object()

    def __init__(
        self, episode_id: int, loop: asyncio.AbstractEventLoop | None = None
    ) -> None:
        self.episode_id = episode_id
        self._loop = loop or asyncio.get_running_loop()
        self._queue: asyncio.Queue[object] = asyncio.Queue()

    def __call__(self, percent: int, stage: str) -> None:
        self._put(ProgressUpdate(self.episode_id, percent, stage))

    def close(self) -> None:
        """Signal that no further updates will arrive."""
        self._put(self._CLOSED)

    def _put(self, item: object) -> None:
        self._loop.call_soon_threadsafe(self._queue.put_nowait, item)

    async def __aiter__(self) -> AsyncIterator[ProgressUpdate]:
        while True:
            item = await self._queue.get()
            if item is self._CLOSED:
                return
            yield item  # type: ignore[misc]
