"""
yt-dlp backed strategies.

The preferred strategy downloads the best audio-only stream. The fallback
runs the same binary with an alternate player client, which often gets
through when the default web client is throttled or bot-checked.

yt-dlp reports everything on stderr; ``classify_stderr`` maps its
messages onto the strategy error taxonomy.
"""

from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path
from typing import Sequence

from recorder.core.errors import (
    RetryableStrategyError,
    StrategyError,
    TerminalJobError,
    TerminalStrategyError,
)
from recorder.extraction.base import StrategyExecutor
from recorder.schemas.job import ArtifactRef, JobInput
from recorder.utils.logging import get_logger

logger = get_logger("recorder.extraction.ytdlp")

MEDIA_TYPES = {
    ".webm": "audio/webm",
    ".m4a": "audio/mp4",
    ".mp4": "audio/mp4",
    ".opus": "audio/ogg",
    ".ogg": "audio/ogg",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
}

# YouTube throttling dressed up as an availability error
_THROTTLED = (
    "try again later",
    "content isn't available",
)
# Nothing will ever download this video
_JOB_TERMINAL = (
    "private video",
    "has been removed",
    "copyright",
    "confirm your age",
    "members-only",
    "not available in your country",
)
# Upstream pushed back; the same call may work after a pause
_RETRYABLE = (
    "http error 429",
    "too many requests",
    "timed out",
    "connection reset",
    "temporary failure in name resolution",
    "http error 500",
    "http error 502",
    "http error 503",
    "unable to download webpage",
)
# This client/format cannot do it, another method might
_STRATEGY_TERMINAL = (
    "not a bot",
    "unsupported url",
    "requested format is not available",
    "no video formats found",
)


def classify_stderr(stderr: str) -> StrategyError:
    """Map yt-dlp's error output to a strategy error."""
    text = stderr.lower()
    last_line = next(
        (line for line in reversed(stderr.strip().splitlines()) if line.strip()),
        "yt-dlp failed",
    )

    # A bot check is a property of the client, not of the video
    if any(marker in text for marker in _STRATEGY_TERMINAL):
        return TerminalStrategyError(last_line)
    if any(marker in text for marker in _THROTTLED):
        return RetryableStrategyError(last_line)
    if any(marker in text for marker in _JOB_TERMINAL):
        return TerminalJobError(last_line)
    if any(marker in text for marker in _RETRYABLE):
        return RetryableStrategyError(last_line)
    return TerminalStrategyError(last_line)


class YtDlpStrategy(StrategyExecutor):
    def __init__(
        self,
        downloads_dir: str | Path,
        *,
        name: str = "ytdlp_audio",
        binary: str = "yt-dlp",
        format_selector: str = "bestaudio",
        extra_args: Sequence[str] = (),
    ):
        super().__init__(downloads_dir)
        self.name = name
        self.binary = binary
        self.format_selector = format_selector
        self.extra_args = list(extra_args)

    def build_command(self, url: str, stem: Path) -> list[str]:
        return [
            self.binary,
            "--no-playlist",
            "--no-progress",
            "--no-simulate",
            "--print", "after_move:title",
            "-f", self.format_selector,
            "-o", f"{stem}.%(ext)s",
            *self.extra_args,
            url,
        ]

    async def _produce(self, job_input: JobInput) -> ArtifactRef:
        stem = self._new_stem()
        cmd = self.build_command(job_input.source_url, stem)
        produced = False
        try:
            returncode, stdout, stderr = await _run(cmd)
            if returncode != 0:
                raise classify_stderr(stderr)

            output = _find_output(stem)
            if output is None:
                raise TerminalStrategyError(f"{self.name}: yt-dlp exited cleanly but wrote no file")

            title = stdout.strip().splitlines()[0] if stdout.strip() else None
            artifact = ArtifactRef.from_file(
                output,
                media_type=MEDIA_TYPES.get(output.suffix.lower(), "application/octet-stream"),
                title=title,
            )
            produced = True
            logger.info("[%s] Saved %s (%d KB)", self.name, output.name, artifact.size_kb)
            return artifact
        finally:
            if not produced:
                _remove_partials(stem)


async def _run(cmd: list[str]) -> tuple[int, str, str]:
    """Run a command, killing it if the awaiting task is cancelled."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise TerminalStrategyError(f"{cmd[0]} is not installed") from e

    try:
        stdout, stderr = await proc.communicate()
    finally:
        if proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()

    return (
        proc.returncode,
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
    )


def _find_output(stem: Path) -> Path | None:
    for candidate in sorted(stem.parent.glob(f"{stem.name}.*")):
        if candidate.suffix not in (".part", ".ytdl", ".tmp"):
            return candidate
    return None


def _remove_partials(stem: Path) -> None:
    for leftover in stem.parent.glob(f"{stem.name}.*"):
        with contextlib.suppress(FileNotFoundError):
            leftover.unlink()
