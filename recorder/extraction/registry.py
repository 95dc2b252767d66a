"""
Builds the ordered strategy list from settings.

Order runs from highest fidelity / least reliable to lowest fidelity /
most reliable. The last entry must be the guaranteed producer.
"""

from __future__ import annotations

from recorder.core.config import Settings
from recorder.extraction.base import StrategyExecutor
from recorder.extraction.oembed import OEmbedPreviewStrategy
from recorder.extraction.placeholder import SilentPlaceholderStrategy
from recorder.extraction.ytdlp import YtDlpStrategy
from recorder.schemas.strategy import StrategyDescriptor

StrategyList = list[tuple[StrategyDescriptor, StrategyExecutor]]


def build_strategies(settings: Settings) -> StrategyList:
    downloads = settings.downloads_dir

    preferred = YtDlpStrategy(
        downloads,
        name="ytdlp_audio",
        binary=settings.ytdlp_binary,
        format_selector="bestaudio",
    )
    fallback = YtDlpStrategy(
        downloads,
        name="ytdlp_compat",
        binary=settings.ytdlp_binary,
        format_selector="bestaudio/best",
        extra_args=["--extractor-args", f"youtube:player_client={settings.ytdlp_compat_player_client}"],
    )
    degraded = OEmbedPreviewStrategy(
        downloads,
        endpoint=settings.oembed_endpoint,
        duration=settings.placeholder_duration_seconds,
        sample_rate=settings.placeholder_sample_rate,
    )
    guaranteed = SilentPlaceholderStrategy(
        downloads,
        duration=settings.placeholder_duration_seconds,
        sample_rate=settings.placeholder_sample_rate,
    )

    return [
        (
            StrategyDescriptor(
                name=preferred.name,
                ordinal=0,
                max_retries=settings.ytdlp_audio_max_retries,
                retry_backoff=settings.ytdlp_audio_retry_backoff_seconds,
                timeout=settings.ytdlp_audio_timeout_seconds,
            ),
            preferred,
        ),
        (
            StrategyDescriptor(
                name=fallback.name,
                ordinal=1,
                max_retries=settings.ytdlp_compat_max_retries,
                retry_backoff=settings.ytdlp_compat_retry_backoff_seconds,
                timeout=settings.ytdlp_compat_timeout_seconds,
            ),
            fallback,
        ),
        (
            StrategyDescriptor(
                name=degraded.name,
                ordinal=2,
                max_retries=settings.oembed_max_retries,
                retry_backoff=settings.oembed_retry_backoff_seconds,
                timeout=settings.oembed_timeout_seconds,
            ),
            degraded,
        ),
        (
            StrategyDescriptor(
                name=guaranteed.name,
                ordinal=3,
                max_retries=0,
                timeout=settings.placeholder_timeout_seconds,
            ),
            guaranteed,
        ),
    ]
