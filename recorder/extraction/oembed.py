"""
Degraded producer: oEmbed metadata + silent track.

When every downloader has been blocked, YouTube's oEmbed endpoint usually
still answers. It confirms the video exists and is public, and gives us
its title; the artifact itself is a silent track labelled with it.
"""

from __future__ import annotations

from pathlib import Path

import httpx

from recorder.core.errors import (
    RetryableStrategyError,
    TerminalJobError,
    TerminalStrategyError,
)
from recorder.extraction.base import StrategyExecutor
from recorder.extraction.placeholder import write_silence
from recorder.schemas.job import ArtifactRef, JobInput
from recorder.utils.logging import get_logger

logger = get_logger("recorder.extraction.oembed")


class OEmbedPreviewStrategy(StrategyExecutor):
    name = "oembed_preview"

    def __init__(
        self,
        downloads_dir: str | Path,
        *,
        endpoint: str = "https://www.youtube.com/oembed",
        duration: float = 1.0,
        sample_rate: int = 8000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(downloads_dir)
        self.endpoint = endpoint
        self.duration = duration
        self.sample_rate = sample_rate
        self._transport = transport

    async def fetch_title(self, url: str) -> str:
        """
        Ask the oEmbed endpoint for the video's title.

        Raises:
            RetryableStrategyError: network fault, 429 or 5xx
            TerminalJobError: 403/404 (private, removed)
            TerminalStrategyError: 401 (embedding disabled), anything else unexpected
        """
        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
                response = await client.get(self.endpoint, params={"url": url, "format": "json"})
        except httpx.TransportError as e:
            raise RetryableStrategyError(f"oEmbed request failed: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise RetryableStrategyError(f"oEmbed returned {response.status_code}")
        # Embedding disabled says nothing about whether the video can be downloaded
        if response.status_code == 401:
            raise TerminalStrategyError("oEmbed refused the video (embedding disabled)")
        if response.status_code in (403, 404):
            raise TerminalJobError(f"Video is not publicly available (oEmbed {response.status_code})")
        if response.status_code != 200:
            raise TerminalStrategyError(f"oEmbed returned {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise TerminalStrategyError(f"oEmbed returned invalid JSON: {e}") from e

        title = (data.get("title") or "").strip()
        if not title:
            raise TerminalStrategyError("oEmbed response had no title")
        return title

    async def _produce(self, job_input: JobInput) -> ArtifactRef:
        title = await self.fetch_title(job_input.source_url)
        logger.info("[%s] Resolved title: %s", self.name, title)

        path = self._new_stem().with_suffix(".wav")
        try:
            write_silence(path, self.duration, self.sample_rate)
        except OSError as e:
            path.unlink(missing_ok=True)
            raise TerminalStrategyError(f"could not write preview track: {e}") from e

        return ArtifactRef.from_file(path, media_type="audio/wav", title=title)
