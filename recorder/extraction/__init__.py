"""
Extraction strategies.

Each strategy is one way of turning a YouTube URL into an audio file,
behind the common ``StrategyExecutor`` contract:

- ytdlp_audio: yt-dlp, best audio stream (preferred)
- ytdlp_compat: yt-dlp with an alternate player client (fallback)
- oembed_preview: oEmbed title + silent track (degraded)
- silent_placeholder: silent WAV, no external dependency (guaranteed)
"""

from recorder.extraction.base import StrategyExecutor
from recorder.extraction.oembed import OEmbedPreviewStrategy
from recorder.extraction.placeholder import SilentPlaceholderStrategy
from recorder.extraction.registry import build_strategies
from recorder.extraction.ytdlp import YtDlpStrategy

__all__ = [
    "StrategyExecutor",
    "OEmbedPreviewStrategy",
    "SilentPlaceholderStrategy",
    "YtDlpStrategy",
    "build_strategies",
]
