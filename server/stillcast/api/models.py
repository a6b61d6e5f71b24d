from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
  # Wire format is camelCase; accept snake_case too for Python callers.
  model_config = ConfigDict(populate_by_name=True)


class TTSRequest(_CamelModel):
  # Empty text is reported as 400 by the proxy rather than 422 by validation.
  text: Optional[str] = None
  engine: str = Field("voicevox")
  preset: Optional[str] = None
  speed: Optional[float] = None
  speaker_id: Optional[Union[str, int]] = Field(None, alias="speakerId")


class TTSResponse(_CamelModel):
  audio_url: str = Field(..., alias="audioUrl")


class RenderUrlsRequest(_CamelModel):
  image_url: Optional[str] = Field(None, alias="imageUrl")
  audio_url: Optional[str] = Field(None, alias="audioUrl")


class RenderResponse(_CamelModel):
  video_url: str = Field(..., alias="videoUrl")
