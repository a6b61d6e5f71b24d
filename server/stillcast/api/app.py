from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import ValidationError
from starlette.datastructures import UploadFile

from stillcast import __version__
from stillcast.api.models import RenderResponse, RenderUrlsRequest, TTSRequest, TTSResponse
from stillcast.config import Settings, get_settings
from stillcast.logging_utils import get_logger
from stillcast.services.compositor import MediaCompositor
from stillcast.services.errors import (
  CompositionError,
  CompositionValidationError,
  EncoderError,
  EncoderTimeoutError,
  ImageFetchError,
  InvalidMediaSourceError,
  SynthesisBackendError,
  SynthesisError,
  SynthesisNotImplementedError,
  SynthesisValidationError,
  UnsupportedAudioSourceError,
  UnsupportedImageSourceError,
)
from stillcast.services.synthesis import SpeechSynthesisProxy, SynthesisRequest

logger = get_logger(__name__, get_settings().log_level)

# Most specific first; the first isinstance match decides the status.
_ERROR_STATUS: tuple[tuple[type[Exception], int], ...] = (
  (SynthesisValidationError, 400),
  (SynthesisNotImplementedError, 501),
  (SynthesisBackendError, 500),
  (CompositionValidationError, 400),
  (InvalidMediaSourceError, 422),
  (UnsupportedAudioSourceError, 422),
  (UnsupportedImageSourceError, 422),
  (ImageFetchError, 502),
  (EncoderTimeoutError, 504),
  (EncoderError, 500),
)


def status_for(exc: Exception) -> int:
  for error_type, status in _ERROR_STATUS:
    if isinstance(exc, error_type):
      return status
  return 500


def _http_error(exc: Exception) -> HTTPException:
  status = status_for(exc)
  if status >= 500:
    logger.error("%s: %s", type(exc).__name__, exc)
  else:
    logger.info("Rejected request (%d): %s", status, exc)
  return HTTPException(status_code=status, detail=str(exc))


def create_app(
  settings: Optional[Settings] = None,
  *,
  proxy: Optional[SpeechSynthesisProxy] = None,
  compositor: Optional[MediaCompositor] = None,
) -> FastAPI:
  settings = settings or get_settings()
  proxy = proxy or SpeechSynthesisProxy(settings=settings)
  compositor = compositor or MediaCompositor.from_settings(settings)

  @asynccontextmanager
  async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    yield
    await proxy.aclose()

  app = FastAPI(title="stillcast", version=__version__, lifespan=lifespan)
  app.state.proxy = proxy
  app.state.compositor = compositor

  @app.get("/health")
  async def health() -> dict[str, Any]:
    return {
      "service": "stillcast",
      "status": "ok",
      "voicevox_base": settings.voicevox_base,
      "ffmpeg_path": settings.ffmpeg_path,
    }

  @app.post("/api/tts", response_model=TTSResponse)
  async def tts(req: TTSRequest) -> TTSResponse:
    request = SynthesisRequest(
      text=req.text or "",
      engine=req.engine,
      speaker_id=None if req.speaker_id is None else str(req.speaker_id),
      speed=req.speed,
      preset=req.preset,
    )
    try:
      result = await app.state.proxy.synthesize(request)
    except SynthesisError as exc:
      raise _http_error(exc) from exc
    return TTSResponse(audio_url=result.audio_url)

  @app.post("/api/render", response_model=RenderResponse)
  async def render(request: Request) -> RenderResponse:
    content_type = request.headers.get("content-type", "")
    try:
      if "multipart/form-data" in content_type:
        form = await request.form()
        image = form.get("image")
        audio_url = form.get("audioUrl")
        if not isinstance(image, UploadFile) or not isinstance(audio_url, str) or not audio_url:
          raise HTTPException(status_code=400, detail="image and audioUrl required")
        result = await app.state.compositor.compose_from_upload(
          await image.read(),
          audio_url,
          content_type=image.content_type,
          filename=image.filename,
        )
      else:
        try:
          body = RenderUrlsRequest.model_validate(await request.json())
        except (ValueError, ValidationError) as exc:
          raise HTTPException(status_code=400, detail="imageUrl and audioUrl required") from exc
        if not body.image_url or not body.audio_url:
          raise HTTPException(status_code=400, detail="imageUrl and audioUrl required")
        result = await app.state.compositor.compose_from_urls(body.image_url, body.audio_url)
    except CompositionError as exc:
      raise _http_error(exc) from exc

    return RenderResponse(video_url=result.video_url)

  return app
