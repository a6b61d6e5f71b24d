from __future__ import annotations

from typing import Optional

from stillcast.services.errors import SynthesisNotImplementedError


class UnimplementedEngine:
    """Engine that is part of the request vocabulary but has no integration yet."""

    def __init__(self, name: str) -> None:
        self.name = name

    async def synthesize(self, *, text: str, speaker: str, speed: Optional[float] = None) -> bytes:
        _ = text, speaker, speed
        raise SynthesisNotImplementedError(
            f"Synthesis engine '{self.name}' is not implemented. Use engine='voicevox'."
        )
