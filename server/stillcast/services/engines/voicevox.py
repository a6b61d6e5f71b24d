from __future__ import annotations

from typing import Any, Optional

import httpx

from stillcast.config import get_settings
from stillcast.logging_utils import get_logger
from stillcast.services.errors import SynthesisBackendError

logger = get_logger(__name__, get_settings().log_level)

MIN_SPEED_SCALE = 0.5
MAX_SPEED_SCALE = 2.0


def clamp_speed(speed: float) -> float:
    """Clamp a speaking-rate multiplier into the range VOICEVOX accepts."""
    return max(MIN_SPEED_SCALE, min(float(speed), MAX_SPEED_SCALE))


class VoicevoxEngine:
    """Client for the VOICEVOX two-phase HTTP protocol.

    1. ``POST /audio_query?text=...&speaker=...`` returns the prosody/timing
       query for the text.
    2. ``POST /synthesis?speaker=...`` with that query as the JSON body returns
       the WAV payload.

    The phases run strictly one after the other and are never retried.
    """

    name = "voicevox"

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 30.0,
        interrogative_upspeak: bool = True,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._interrogative_upspeak = interrogative_upspeak
        # Injected clients (tests) are owned by the caller.
        self._owns_client = client is None
        self._http = client

    @property
    def base_url(self) -> str:
        return self._base_url

    def _client(self) -> httpx.AsyncClient:
        """Return the shared keep-alive client, creating it on first use."""
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=self._timeout_seconds,
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                http2=True,
            )
        return self._http

    async def _post(self, phase: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client().post(url, **kwargs)
        except httpx.HTTPError as exc:
            raise SynthesisBackendError(
                f"{phase} failed: could not reach {self._base_url} ({exc})",
                phase=phase,
            ) from exc
        if not response.is_success:
            # Backend body is diagnostic text for the caller, passed through as-is.
            raise SynthesisBackendError(
                f"{phase} failed: {response.text}",
                phase=phase,
                status_code=response.status_code,
            )
        return response

    async def build_query(self, *, text: str, speaker: str) -> dict[str, Any]:
        response = await self._post(
            "audio_query",
            f"{self._base_url}/audio_query",
            params={"text": text, "speaker": speaker},
            headers={"accept": "application/json"},
        )
        try:
            query = response.json()
        except ValueError as exc:
            raise SynthesisBackendError(
                f"audio_query failed: response was not JSON ({exc})",
                phase="audio_query",
                status_code=response.status_code,
            ) from exc
        if not isinstance(query, dict):
            raise SynthesisBackendError(
                f"audio_query failed: expected a JSON object, got {type(query).__name__}",
                phase="audio_query",
                status_code=response.status_code,
            )
        return query

    async def render(self, *, query: dict[str, Any], speaker: str) -> bytes:
        params = {"speaker": speaker}
        if self._interrogative_upspeak:
            params["enable_interrogative_upspeak"] = "true"
        response = await self._post(
            "synthesis",
            f"{self._base_url}/synthesis",
            params=params,
            json=query,
        )
        return response.content

    async def synthesize(self, *, text: str, speaker: str, speed: Optional[float] = None) -> bytes:
        query = await self.build_query(text=text, speaker=speaker)
        if speed is not None:
            query["speedScale"] = clamp_speed(speed)
        logger.info(
            "VOICEVOX query built speaker=%s chars=%d speedScale=%s",
            speaker,
            len(text),
            query.get("speedScale"),
        )
        wav = await self.render(query=query, speaker=speaker)
        if not wav:
            raise SynthesisBackendError("synthesis failed: backend returned an empty payload", phase="synthesis")
        return wav

    async def aclose(self) -> None:
        """Close persistent HTTP resources owned by this engine."""
        if self._http is not None and self._owns_client:
            await self._http.aclose()
            self._http = None
