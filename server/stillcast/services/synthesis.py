from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from stillcast.config import Settings, get_settings
from stillcast.logging_utils import get_logger
from stillcast.services.data_url import encode_data_url
from stillcast.services.engines.base import EngineName, SpeechEngine
from stillcast.services.engines.unimplemented import UnimplementedEngine
from stillcast.services.engines.voicevox import VoicevoxEngine
from stillcast.services.errors import SynthesisValidationError

logger = get_logger(__name__, get_settings().log_level)

WAV_MIME_TYPE = "audio/wav"


@dataclass(slots=True)
class SynthesisRequest:
    """Normalized text-to-speech request."""

    text: str
    engine: str = EngineName.VOICEVOX.value
    speaker_id: Optional[str] = None
    speed: Optional[float] = None
    preset: Optional[str] = None


@dataclass(slots=True)
class SynthesisResult:
    audio_url: str


def build_default_engines(settings: Settings) -> dict[str, SpeechEngine]:
    """Map every declared engine name to its implementation or a fail-fast stand-in."""
    engines: dict[str, SpeechEngine] = {
        EngineName.VOICEVOX.value: VoicevoxEngine(
            base_url=settings.voicevox_base,
            timeout_seconds=settings.voicevox_request_timeout_seconds,
            interrogative_upspeak=settings.voicevox_interrogative_upspeak,
        )
    }
    for name in EngineName:
        engines.setdefault(name.value, UnimplementedEngine(name.value))
    return engines


class SpeechSynthesisProxy:
    """Turns a synthesis request into an inline WAV asset via the selected engine."""

    def __init__(
        self,
        *,
        engines: Optional[dict[str, SpeechEngine]] = None,
        default_speaker: Optional[str] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        self._engines = engines if engines is not None else build_default_engines(settings)
        self._default_speaker = default_speaker or settings.voicevox_default_speaker

    def engine_for(self, name: Optional[str]) -> SpeechEngine:
        key = (name or EngineName.VOICEVOX.value).strip().lower()
        engine = self._engines.get(key)
        if engine is None:
            known = ", ".join(sorted(self._engines))
            raise SynthesisValidationError(f"Unknown engine '{name}'. Expected one of: {known}")
        return engine

    async def synthesize(self, request: SynthesisRequest) -> SynthesisResult:
        text = (request.text or "").strip()
        if not text:
            raise SynthesisValidationError("text is required")

        engine = self.engine_for(request.engine)
        speaker = str(request.speaker_id or "").strip() or self._default_speaker
        if request.preset:
            logger.debug("Preset '%s' requested; presets do not alter synthesis", request.preset)

        wav = await engine.synthesize(text=text, speaker=speaker, speed=request.speed)
        logger.info("Synthesized %d bytes of audio engine=%s speaker=%s", len(wav), engine.name, speaker)
        return SynthesisResult(audio_url=encode_data_url(wav, WAV_MIME_TYPE))

    async def aclose(self) -> None:
        for engine in self._engines.values():
            close = getattr(engine, "aclose", None)
            if close is not None:
                await close()
