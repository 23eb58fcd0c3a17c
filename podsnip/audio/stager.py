"""Episode audio download into local temporary storage.

The stager only creates files. Deleting them is the orchestrator's job so
that every exit path is covered by a single cleanup step.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import time
from urllib.parse import urlparse

import httpx

from podsnip.utils.errors import NetworkError, StagingError

logger = logging.getLogger(__name__)

DEFAULT_DOWNLOAD_TIMEOUT_SECONDS = 300.0
DEFAULT_AUDIO_SUFFIX = ".mp3"
CHUNK_SIZE_BYTES = 64 * 1024
FILE_PREFIX = "podsnip"


class AudioStager:
    """Downloads episode audio with a fixed overall time ceiling.

    Reads configuration from environment variables:
        PODSNIP_TEMP_DIR, PODSNIP_DOWNLOAD_TIMEOUT

    Args:
        temp_dir: Directory for staged files (default: system temp dir).
        timeout: Ceiling in seconds for the whole download.
        transport: Optional httpx transport, mainly for tests.
    """

    def __init__(
        self,
        temp_dir: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.temp_dir = (
            temp_dir
            or os.environ.get("PODSNIP_TEMP_DIR", "")
            or tempfile.gettempdir()
        )
        if timeout is None:
            timeout = float(
                os.environ.get(
                    "PODSNIP_DOWNLOAD_TIMEOUT", DEFAULT_DOWNLOAD_TIMEOUT_SECONDS
                )
            )
        self.timeout = timeout
        self._transport = transport

    def build_path(self, episode_id: int, audio_url: str) -> str:
        """Return a staging path unique to this episode and moment.

        Never raises on a malformed URL; the suffix falls back to .mp3 and
        the download itself reports the bad URL.
        """
        try:
            url_path = urlparse(audio_url).path
        except ValueError:
            url_path = ""
        suffix = os.path.splitext(url_path)[1].lower()
        if not suffix or len(suffix) > 5:
            suffix = DEFAULT_AUDIO_SUFFIX
        timestamp_ms = int(time.time() * 1000)
        return os.path.join(
            self.temp_dir, f"{FILE_PREFIX}-{episode_id}-{timestamp_ms}{suffix}"
        )

    async def stage(
        self, episode_id: int, audio_url: str, dest_path: str | None = None
    ) -> str:
        """Download the full response body to a local file.

        Args:
            episode_id: Episode the audio belongs to.
            audio_url: Remote audio location.
            dest_path: Target path; built with build_path() when omitted.

        Returns:
            Path of the staged file.

        Raises:
            NetworkError: On HTTP errors, connection failures, a malformed
                URL, or timeout.
            StagingError: If the file cannot be written.
        """
        path = dest_path or self.build_path(episode_id, audio_url)

        logger.info(
            "Downloading audio from %s",
            audio_url,
            extra={"episode_id": episode_id, "stage": "staging"},
        )

        try:
            async with asyncio.timeout(self.timeout):
                size = await self._download(audio_url, path)
        except TimeoutError as exc:
            raise NetworkError(
                f"Audio download timed out after {self.timeout:.0f} seconds",
                episode_id=episode_id,
                url=audio_url,
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise NetworkError(
                f"Audio download failed: HTTP {exc.response.status_code}",
                episode_id=episode_id,
                url=audio_url,
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(
                f"Audio download failed: {exc}",
                episode_id=episode_id,
                url=audio_url,
            ) from exc
        except (httpx.InvalidURL, ValueError) as exc:
            raise NetworkError(
                f"Invalid audio URL {audio_url!r}: {exc}",
                episode_id=episode_id,
                url=audio_url,
            ) from exc
        except OSError as exc:
            raise StagingError(
                f"Failed to write staged audio to {path}: {exc}",
                episode_id=episode_id,
                path=path,
            ) from exc

        logger.info(
            "Staged %d bytes to %s",
            size,
            path,
            extra={"episode_id": episode_id, "stage": "staging"},
        )
        return path

    async def _download(self, audio_url: str, path: str) -> int:
        """Stream the response body to ``path`` and return its size."""
        size = 0
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
        ) as client:
            async with client.stream("GET", audio_url) as response:
                response.raise_for_status()
                with open(path, "wb") as f:
                    async for chunk in response.aiter_bytes(CHUNK_SIZE_BYTES):
                        f.write(chunk)
                        size += len(chunk)
        return size
