from __future__ import annotations

import asyncio
import os
import shutil
import subprocess
import sys
from pathlib import Path

import pytest

from conftest import make_png, make_wav
from stillcast.config import Settings
from stillcast.services.compositor import MediaCompositor
from stillcast.services.encoder import (
    EncoderConfig,
    FfmpegStillEncoder,
    _reap,
    build_still_video_command,
)
from stillcast.services.errors import EncoderError, EncoderTimeoutError


def _run(coro):  # noqa: ANN001
    return asyncio.run(coro)


def _ffmpeg_with_x264() -> str | None:
    path = shutil.which("ffmpeg")
    if path is None:
        return None
    listing = subprocess.run([path, "-hide_banner", "-encoders"], capture_output=True, text=True, check=False)
    return path if "libx264" in listing.stdout else None


FFMPEG = _ffmpeg_with_x264()
posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses /bin/sh stand-ins for ffmpeg")


def _fake_ffmpeg(tmp_path: Path, body: str) -> str:
    script = tmp_path / "fake-ffmpeg"
    script.write_text(f"#!/bin/sh\n{body}\n")
    script.chmod(0o755)
    return str(script)


def _inputs(tmp_path: Path) -> dict[str, Path]:
    image = tmp_path / "image.png"
    audio = tmp_path / "audio.wav"
    image.write_bytes(make_png())
    audio.write_bytes(make_wav(1.0))
    return {"image_path": image, "audio_path": audio, "output_path": tmp_path / "out.mp4"}


def test_command_loops_image_and_stops_with_audio() -> None:
    cmd = build_still_video_command(
        EncoderConfig(ffmpeg_path="/opt/ffmpeg/bin/ffmpeg"),
        image_path=Path("/w/image.png"),
        audio_path=Path("/w/audio.wav"),
        output_path=Path("/w/out.mp4"),
    )

    assert cmd[0] == "/opt/ffmpeg/bin/ffmpeg"
    assert cmd[-1] == "/w/out.mp4"
    first_input = cmd.index("-i")
    assert cmd[first_input - 2 : first_input + 2] == ["-loop", "1", "-i", "/w/image.png"]
    assert cmd[first_input + 2 : first_input + 4] == ["-i", "/w/audio.wav"]

    options = cmd[first_input + 4 : -1]
    for flag, value in [
        ("-c:v", "libx264"),
        ("-tune", "stillimage"),
        ("-c:a", "aac"),
        ("-b:a", "192k"),
        ("-pix_fmt", "yuv420p"),
    ]:
        assert options[options.index(flag) + 1] == value
    assert "-shortest" in options
    assert cmd[cmd.index("-movflags") + 1] == "+faststart"
    assert cmd[cmd.index("-vf") + 1] == "scale=1280:-2"


def test_command_uses_configured_width_and_bitrate() -> None:
    cmd = build_still_video_command(
        EncoderConfig(video_width=640, audio_bitrate="128k"),
        image_path=Path("i.png"),
        audio_path=Path("a.wav"),
        output_path=Path("o.mp4"),
    )

    assert cmd[cmd.index("-vf") + 1] == "scale=640:-2"
    assert cmd[cmd.index("-b:a") + 1] == "128k"


def test_config_from_settings_disables_zero_timeout() -> None:
    config = EncoderConfig.from_settings(
        Settings(ffmpeg_path="/usr/local/bin/ffmpeg", render_encoder_timeout_seconds=0)
    )

    assert config.ffmpeg_path == "/usr/local/bin/ffmpeg"
    assert config.timeout_seconds is None


def test_missing_binary_is_an_encoder_error(tmp_path: Path) -> None:
    encoder = FfmpegStillEncoder(EncoderConfig(ffmpeg_path=str(tmp_path / "no-such-ffmpeg")))

    with pytest.raises(EncoderError, match="not found"):
        _run(encoder.encode(**_inputs(tmp_path)))


@posix_only
def test_nonzero_exit_carries_stderr(tmp_path: Path) -> None:
    ffmpeg = _fake_ffmpeg(tmp_path, 'echo "image.png: Invalid data found when processing input" >&2\nexit 1')
    encoder = FfmpegStillEncoder(EncoderConfig(ffmpeg_path=ffmpeg))

    with pytest.raises(EncoderError) as excinfo:
        _run(encoder.encode(**_inputs(tmp_path)))

    assert "exit code 1" in str(excinfo.value)
    assert "Invalid data found when processing input" in str(excinfo.value)


@posix_only
def test_success_without_output_file_is_an_error(tmp_path: Path) -> None:
    encoder = FfmpegStillEncoder(EncoderConfig(ffmpeg_path=_fake_ffmpeg(tmp_path, "exit 0")))

    with pytest.raises(EncoderError, match="output file is missing"):
        _run(encoder.encode(**_inputs(tmp_path)))


@posix_only
def test_output_written_to_last_argument(tmp_path: Path) -> None:
    ffmpeg = _fake_ffmpeg(tmp_path, 'for last; do :; done\nprintf "mp4" > "$last"')
    inputs = _inputs(tmp_path)

    _run(FfmpegStillEncoder(EncoderConfig(ffmpeg_path=ffmpeg)).encode(**inputs))

    assert inputs["output_path"].read_bytes() == b"mp4"


@posix_only
def test_slow_encoder_is_killed_at_deadline(tmp_path: Path) -> None:
    ffmpeg = _fake_ffmpeg(tmp_path, "exec sleep 30")
    encoder = FfmpegStillEncoder(EncoderConfig(ffmpeg_path=ffmpeg, timeout_seconds=0.3))

    with pytest.raises(EncoderTimeoutError, match="killed"):
        _run(encoder.encode(**_inputs(tmp_path)))


@pytest.mark.skipif(FFMPEG is None, reason="ffmpeg with libx264 not installed")
def test_real_ffmpeg_renders_audio_length_video(tmp_path: Path) -> None:
    inputs = _inputs(tmp_path)
    _run(FfmpegStillEncoder(EncoderConfig(ffmpeg_path=FFMPEG, timeout_seconds=120)).encode(**inputs))

    mp4 = inputs["output_path"].read_bytes()
    assert mp4[4:8] == b"ftyp"

    ffprobe = shutil.which("ffprobe")
    if ffprobe is None:
        return
    streams = subprocess.run(
        [
            ffprobe,
            "-v",
            "error",
            "-show_entries",
            "format=duration:stream=codec_name,width,height,pix_fmt",
            "-of",
            "default=noprint_wrappers=1",
            str(inputs["output_path"]),
        ],
        capture_output=True,
        text=True,
        check=True,
    )
    fields = [line.split("=", 1) for line in streams.stdout.splitlines() if "=" in line]
    values: dict[str, list[str]] = {}
    for key, value in fields:
        values.setdefault(key, []).append(value)

    assert float(values["duration"][0]) == pytest.approx(1.0, abs=0.5)
    assert "h264" in values["codec_name"]
    assert "aac" in values["codec_name"]
    assert "1280" in values["width"]
    assert "960" in values["height"]
    assert "yuv420p" in values["pix_fmt"]


def _process_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


@posix_only
def test_cancelled_render_kills_encoder(tmp_path: Path, png_data_url: str, wav_data_url: str) -> None:
    pid_file = tmp_path / "ffmpeg.pid"
    ffmpeg = _fake_ffmpeg(tmp_path, f'echo $$ > "{pid_file}"\nexec sleep 30')
    compositor = MediaCompositor(
        encoder=FfmpegStillEncoder(EncoderConfig(ffmpeg_path=ffmpeg, timeout_seconds=None)),
        work_root=tmp_path / "work",
    )

    async def cancel_while_encoding() -> None:
        task = asyncio.create_task(compositor.compose_from_urls(png_data_url, wav_data_url))
        for _ in range(200):
            if pid_file.exists() and pid_file.read_text().strip():
                break
            await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    _run(cancel_while_encoding())

    pid = int(pid_file.read_text().strip())
    assert not _process_alive(pid)
    assert list((tmp_path / "work").iterdir()) == []


def test_reaping_a_process_that_already_exited_is_quiet() -> None:
    class ExitedAtDeadline:
        returncode = None
        waited = False

        def kill(self) -> None:
            raise ProcessLookupError()

        async def wait(self) -> int:
            self.waited = True
            return 0

    proc = ExitedAtDeadline()
    _run(_reap(proc))  # type: ignore[arg-type]

    assert proc.waited
