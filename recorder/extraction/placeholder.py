"""
Guaranteed-success producer.

Synthesises a short silent WAV from nothing but the job input. It has no
external dependency; the only way it fails is the disk refusing the write.
"""

from __future__ import annotations

import wave
from pathlib import Path

from recorder.core.errors import TerminalStrategyError
from recorder.extraction.base import StrategyExecutor
from recorder.schemas.job import ArtifactRef, JobInput


def write_silence(path: Path, duration: float, sample_rate: int) -> Path:
    """Write a mono 16-bit PCM WAV of ``duration`` seconds of silence."""
    frames = max(1, int(duration * sample_rate))
    with wave.open(str(path), "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(b"\x00\x00" * frames)
    return path


class SilentPlaceholderStrategy(StrategyExecutor):
    name = "silent_placeholder"

    def __init__(self, downloads_dir: str | Path, *, duration: float = 1.0, sample_rate: int = 8000):
        super().__init__(downloads_dir)
        self.duration = duration
        self.sample_rate = sample_rate

    async def _produce(self, job_input: JobInput) -> ArtifactRef:
        path = self._new_stem().with_suffix(".wav")
        try:
            write_silence(path, self.duration, self.sample_rate)
        except OSError as e:
            path.unlink(missing_ok=True)
            raise TerminalStrategyError(f"could not write placeholder: {e}") from e

        title = f"Placeholder for {job_input.video_id or job_input.source_url}"
        return ArtifactRef.from_file(path, media_type="audio/wav", title=title)
