"""Configuration helpers for the synthesis proxy and render service."""
from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from functools import lru_cache


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off", ""}


def _env_str(name: str, default: str) -> str:
    return (os.getenv(name) or "").strip() or default


@dataclass
class Settings:
    """Centralized environment-driven configuration.

    Values are read once per process through `get_settings()`. Tests build
    their own instances instead of mutating the cached one.
    """

    # VOICEVOX-compatible speech-synthesis engine.
    voicevox_base: str = _env_str("VOICEVOX_BASE", "http://127.0.0.1:50021")
    voicevox_default_speaker: str = _env_str("VOICEVOX_DEFAULT_SPEAKER", "3")
    voicevox_request_timeout_seconds: float = float(os.getenv("VOICEVOX_REQUEST_TIMEOUT_SECONDS", "30"))
    voicevox_interrogative_upspeak: bool = _env_bool("VOICEVOX_INTERROGATIVE_UPSPEAK", True)

    # Still-image encoder. FFMPEG_PATH may be a bare name resolved on PATH.
    ffmpeg_path: str = _env_str("FFMPEG_PATH", "ffmpeg")
    render_video_width: int = int(os.getenv("RENDER_VIDEO_WIDTH", "1280"))
    render_audio_bitrate: str = _env_str("RENDER_AUDIO_BITRATE", "192k")
    # 0 disables the encoder deadline.
    render_encoder_timeout_seconds: float = float(os.getenv("RENDER_ENCODER_TIMEOUT_SECONDS", "300"))
    render_work_root: str = _env_str("RENDER_WORK_ROOT", tempfile.gettempdir())
    image_fetch_timeout_seconds: float = float(os.getenv("IMAGE_FETCH_TIMEOUT_SECONDS", "20"))

    log_level: str = _env_str("LOG_LEVEL", "INFO")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance to avoid repeated environment reads."""

    return Settings()
