from __future__ import annotations

from enum import Enum
from typing import Optional, Protocol


class EngineName(str, Enum):
    """Synthesis engines a client may ask for."""

    VOICEVOX = "voicevox"
    ELEVENLABS = "elevenlabs"
    COEFONT = "coefont"


class SpeechEngine(Protocol):
    """Engine protocol: implement synthesize() to produce a WAV payload."""

    name: str

    async def synthesize(self, *, text: str, speaker: str, speed: Optional[float] = None) -> bytes:  # wav bytes
        raise NotImplementedError
