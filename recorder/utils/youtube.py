"""YouTube URL helpers and artifact naming."""

from __future__ import annotations

import re
import secrets
import time

_URL_RE = re.compile(r"^(https?://)?(www\.|m\.)?(youtube\.com/watch\?v=|youtu\.be/)[\w-]{11}")
_VIDEO_ID_RE = re.compile(r"(?:v=|youtu\.be/)([\w-]{11})")


def is_youtube_url(url: str | None) -> bool:
    return bool(url) and bool(_URL_RE.match(url.strip()))


def extract_video_id(url: str) -> str | None:
    m = _VIDEO_ID_RE.search(url or "")
    return m.group(1) if m else None


def generate_token(prefix: str) -> str:
    """``<prefix>_<epoch ms>_<8 hex chars>``."""
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def artifact_basename() -> str:
    """File stem for a new artifact; the producing strategy adds the extension."""
    return generate_token("beat")
