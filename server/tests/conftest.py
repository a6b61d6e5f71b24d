from __future__ import annotations

import io
import struct
import wave
import zlib

import pytest

from stillcast.services.data_url import encode_data_url


def make_png(width: int = 64, height: int = 48, rgb: tuple[int, int, int] = (200, 40, 40)) -> bytes:
    """Build a small solid-colour truecolour PNG."""

    def chunk(tag: bytes, data: bytes) -> bytes:
        crc = zlib.crc32(tag + data) & 0xFFFFFFFF
        return struct.pack(">I", len(data)) + tag + data + struct.pack(">I", crc)

    row = b"\x00" + bytes(rgb) * width
    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + chunk(b"IHDR", header)
        + chunk(b"IDAT", zlib.compress(row * height))
        + chunk(b"IEND", b"")
    )


def make_wav(seconds: float = 1.0, sample_rate: int = 24_000) -> bytes:
    """Build a silent mono PCM16 WAV."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(b"\x00\x00" * int(sample_rate * seconds))
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def wav_bytes() -> bytes:
    return make_wav()


@pytest.fixture
def png_data_url(png_bytes: bytes) -> str:
    return encode_data_url(png_bytes, "image/png")


@pytest.fixture
def wav_data_url(wav_bytes: bytes) -> str:
    return encode_data_url(wav_bytes, "audio/wav")
