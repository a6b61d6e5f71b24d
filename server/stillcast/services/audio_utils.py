from __future__ import annotations

import io
import wave


def wav_duration_seconds(wav_bytes: bytes) -> float | None:
    """Return the playable length of a PCM WAV payload.

    VOICEVOX always answers with PCM WAV, but the render endpoint accepts any
    audio the encoder can read, so non-WAV payloads yield None instead of
    raising.
    """
    try:
        with wave.open(io.BytesIO(wav_bytes), "rb") as wf:
            frames = wf.getnframes()
            rate = wf.getframerate()
    except (wave.Error, EOFError):
        return None
    if rate <= 0:
        return None
    return frames / float(rate)
