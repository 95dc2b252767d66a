from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Beat Recorder"
    environment: str = "development"
    host: str = "127.0.0.1"
    port: int = 3000
    cors_allow_origins: list[str] = ["*"]  # In production, specify your frontend domain
    # Produced artifacts live here until downloaded or expired
    downloads_dir: str = "./downloads"

    # ── Queue / admission ────────────────────────────────────────────
    max_concurrent: int = 3  # Jobs processed in parallel
    max_queue_depth: int = 20  # Waiting jobs before enqueue is rejected
    queue_timeout_seconds: int = 1800  # Queued jobs older than this are dropped
    retention_timeout_seconds: int = 1800  # Finished jobs / unclaimed artifacts kept this long
    claimed_retention_seconds: int = 300  # Grace window after download (0 = delete right away)
    sweep_interval_seconds: int = 600  # Background cleanup cadence
    orphan_max_age_seconds: int = 3600  # Untracked files in downloads_dir older than this are deleted

    # ── Preferred strategy: yt-dlp best audio ────────────────────────
    ytdlp_binary: str = "yt-dlp"
    ytdlp_audio_timeout_seconds: int = 180
    ytdlp_audio_max_retries: int = 2
    ytdlp_audio_retry_backoff_seconds: float = 5.0

    # ── Fallback strategy: yt-dlp with alternate player client ───────
    ytdlp_compat_timeout_seconds: int = 240
    ytdlp_compat_max_retries: int = 1
    ytdlp_compat_retry_backoff_seconds: float = 10.0
    ytdlp_compat_player_client: str = "android"

    # ── Degraded strategy: oEmbed metadata + silent track ────────────
    oembed_endpoint: str = "https://www.youtube.com/oembed"
    oembed_timeout_seconds: int = 15
    oembed_max_retries: int = 1
    oembed_retry_backoff_seconds: float = 2.0

    # ── Guaranteed producer: silent placeholder ──────────────────────
    placeholder_timeout_seconds: int = 10
    placeholder_duration_seconds: float = 1.0
    placeholder_sample_rate: int = 8000

    class Config:
        env_file = ".env"
        extra = "ignore"  # Ignore extra environment variables that aren't in the Settings class


settings = Settings()
