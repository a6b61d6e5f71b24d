from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from stillcast.config import Settings, get_settings
from stillcast.logging_utils import get_logger
from stillcast.services.errors import EncoderError, EncoderTimeoutError

logger = get_logger(__name__, get_settings().log_level)

_STDERR_TAIL_CHARS = 800


@dataclass(frozen=True, slots=True)
class EncoderConfig:
    """Parameters for one ffmpeg installation.

    Passed to each encoder instance so several configurations (for example a
    test binary next to the production one) can live in the same process.
    """

    ffmpeg_path: str = "ffmpeg"
    video_width: int = 1280
    audio_bitrate: str = "192k"
    timeout_seconds: Optional[float] = 300.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "EncoderConfig":
        timeout = settings.render_encoder_timeout_seconds
        return cls(
            ffmpeg_path=settings.ffmpeg_path,
            video_width=settings.render_video_width,
            audio_bitrate=settings.render_audio_bitrate,
            timeout_seconds=timeout if timeout > 0 else None,
        )


class StillImageEncoder(Protocol):
    """Encoder protocol: write an MP4 of `image_path` lasting as long as `audio_path`."""

    async def encode(self, *, image_path: Path, audio_path: Path, output_path: Path) -> None:
        raise NotImplementedError


def build_still_video_command(
    config: EncoderConfig, *, image_path: Path, audio_path: Path, output_path: Path
) -> list[str]:
    """Return the ffmpeg argv that loops one frame for the length of the audio."""
    return [
        config.ffmpeg_path,
        "-y",
        "-hide_banner",
        "-loglevel",
        "error",
        # Input 1: the still frame, repeated forever.
        "-loop",
        "1",
        "-i",
        str(image_path),
        # Input 2: the narration.
        "-i",
        str(audio_path),
        "-c:v",
        "libx264",
        "-tune",
        "stillimage",
        "-c:a",
        "aac",
        "-b:a",
        config.audio_bitrate,
        "-pix_fmt",
        "yuv420p",
        # The looped image never ends, so this stops at the end of the audio.
        "-shortest",
        "-movflags",
        "+faststart",
        # libx264 with yuv420p needs an even height.
        "-vf",
        f"scale={config.video_width}:-2",
        str(output_path),
    ]


async def _reap(proc: asyncio.subprocess.Process) -> None:
    """Kill the child if it is still running and wait for it to exit."""
    if proc.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
    await proc.wait()


class FfmpegStillEncoder:
    """Runs ffmpeg as a child process and waits for it to exit."""

    def __init__(self, config: Optional[EncoderConfig] = None) -> None:
        self._config = config or EncoderConfig()

    async def encode(self, *, image_path: Path, audio_path: Path, output_path: Path) -> None:
        cmd = build_still_video_command(
            self._config,
            image_path=image_path,
            audio_path=audio_path,
            output_path=output_path,
        )
        started = time.perf_counter()
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise EncoderError(f"ffmpeg executable not found: {self._config.ffmpeg_path}") from exc
        except PermissionError as exc:
            raise EncoderError(f"ffmpeg executable is not runnable: {self._config.ffmpeg_path}") from exc

        try:
            _stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self._config.timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            await _reap(proc)
            raise EncoderTimeoutError(
                f"ffmpeg did not finish within {self._config.timeout_seconds:g}s and was killed"
            ) from exc
        except BaseException:
            # Cancellation included: ffmpeg must not outlive its working directory.
            await _reap(proc)
            raise

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", "ignore").strip()[-_STDERR_TAIL_CHARS:]
            raise EncoderError(f"ffmpeg failed with exit code {proc.returncode}: {detail}")
        if not output_path.exists():
            raise EncoderError("ffmpeg reported success but output file is missing.")

        logger.info(
            "Encoded %s in %.2fs (%d bytes)",
            output_path.name,
            time.perf_counter() - started,
            output_path.stat().st_size,
        )
