from __future__ import annotations

import mimetypes
import shutil
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterator, Optional, Union
from urllib.parse import urlsplit

import httpx

from stillcast.config import Settings, get_settings
from stillcast.logging_utils import get_logger
from stillcast.services.audio_utils import wav_duration_seconds
from stillcast.services.data_url import (
    InvalidDataUrlError,
    decode_data_url,
    encode_data_url,
    is_data_url,
)
from stillcast.services.encoder import EncoderConfig, FfmpegStillEncoder, StillImageEncoder
from stillcast.services.errors import (
    CompositionValidationError,
    ImageFetchError,
    InvalidMediaSourceError,
    UnsupportedAudioSourceError,
    UnsupportedImageSourceError,
)

logger = get_logger(__name__, get_settings().log_level)

MP4_MIME_TYPE = "video/mp4"
WORKDIR_PREFIX = "stillcast-"


@dataclass(slots=True)
class UploadedImage:
    """Image bytes received directly from the client (multipart upload)."""

    data: bytes
    content_type: Optional[str] = None
    filename: Optional[str] = None


# An image is either uploaded bytes or a reference string (data URL or HTTP(S) URL).
ImageSource = Union[UploadedImage, str]


@dataclass(slots=True)
class ResolvedMedia:
    data: bytes
    suffix: str = ""


@dataclass(slots=True)
class CompositionResult:
    video_url: str
    audio_seconds: Optional[float] = None


_IMAGE_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", ".png"),
    (b"\xff\xd8\xff", ".jpg"),
    (b"GIF87a", ".gif"),
    (b"GIF89a", ".gif"),
    (b"BM", ".bmp"),
)


def _image_suffix(data: bytes, mime_type: Optional[str] = None, name: Optional[str] = None) -> str:
    """Pick a file extension ffmpeg's image2 demuxer will decode correctly.

    Magic bytes win over the declared MIME type, which clients often get wrong.
    """
    for signature, suffix in _IMAGE_SIGNATURES:
        if data.startswith(signature):
            return suffix
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return ".webp"
    return _suffix_for(mime_type, name) or ".png"


def _suffix_for(mime_type: Optional[str], name: Optional[str] = None) -> str:
    mime = (mime_type or "").split(";")[0].strip().lower()
    if mime:
        guessed = mimetypes.guess_extension(mime)
        if guessed:
            return guessed
    if name:
        return PurePosixPath(name).suffix.lower()
    return ""


@contextmanager
def working_directory(root: Path) -> Iterator[Path]:
    """Create a uniquely named scratch directory and always remove it afterwards.

    Removal failures are logged and never replace the result or the error of
    the enclosing block.
    """
    path = root / f"{WORKDIR_PREFIX}{uuid.uuid4()}"
    path.mkdir(parents=True)
    try:
        yield path
    finally:
        try:
            shutil.rmtree(path)
        except OSError as exc:
            logger.warning("Could not remove working directory %s: %s", path, exc)


class MediaCompositor:
    """Renders one still image plus one narration track into an inline MP4.

    Both entry points share the same pipeline:
    allocate -> resolve image -> resolve audio -> stage -> encode -> collect -> release.
    Requests never share files; each one owns its working directory.
    """

    def __init__(
        self,
        *,
        encoder: Optional[StillImageEncoder] = None,
        work_root: Optional[Union[str, Path]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        fetch_timeout_seconds: float = 20.0,
    ) -> None:
        self._encoder = encoder or FfmpegStillEncoder()
        self._work_root = Path(work_root) if work_root else Path(get_settings().render_work_root)
        self._http = http_client
        self._fetch_timeout_seconds = fetch_timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "MediaCompositor":
        return cls(
            encoder=FfmpegStillEncoder(EncoderConfig.from_settings(settings)),
            work_root=settings.render_work_root,
            fetch_timeout_seconds=settings.image_fetch_timeout_seconds,
        )

    async def compose_from_upload(
        self,
        image_bytes: bytes,
        audio_url: str,
        *,
        content_type: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> CompositionResult:
        """Render from an uploaded image file and an inline audio asset."""
        image = UploadedImage(data=image_bytes, content_type=content_type, filename=filename)
        return await self.compose(image, audio_url)

    async def compose_from_urls(self, image_url: str, audio_url: str) -> CompositionResult:
        """Render from an image reference (data URL or HTTP(S)) and an inline audio asset."""
        return await self.compose(image_url, audio_url)

    async def compose(self, image: ImageSource, audio_url: str) -> CompositionResult:
        self._work_root.mkdir(parents=True, exist_ok=True)
        with working_directory(self._work_root) as workdir:
            resolved_image = await self.resolve_image(image)
            audio = self.resolve_audio(audio_url)

            image_path = workdir / f"image{resolved_image.suffix}"
            audio_path = workdir / f"audio{audio.suffix or '.wav'}"
            output_path = workdir / "out.mp4"
            image_path.write_bytes(resolved_image.data)
            audio_path.write_bytes(audio.data)

            audio_seconds = wav_duration_seconds(audio.data)
            logger.info(
                "Rendering %s: image=%d bytes audio=%d bytes (%s)",
                workdir.name,
                len(resolved_image.data),
                len(audio.data),
                f"{audio_seconds:.2f}s" if audio_seconds is not None else "unknown length",
            )
            await self._encoder.encode(
                image_path=image_path,
                audio_path=audio_path,
                output_path=output_path,
            )

            mp4 = output_path.read_bytes()
            return CompositionResult(
                video_url=encode_data_url(mp4, MP4_MIME_TYPE),
                audio_seconds=audio_seconds,
            )

    async def resolve_image(self, image: ImageSource) -> ResolvedMedia:
        if isinstance(image, UploadedImage):
            if not image.data:
                raise CompositionValidationError("uploaded image is empty")
            return ResolvedMedia(image.data, _image_suffix(image.data, image.content_type, image.filename))

        reference = (image or "").strip()
        if is_data_url(reference):
            try:
                asset = decode_data_url(reference)
            except InvalidDataUrlError as exc:
                raise InvalidMediaSourceError(f"imageUrl: {exc}") from exc
            return ResolvedMedia(asset.data, _image_suffix(asset.data, asset.mime_type))

        scheme = urlsplit(reference).scheme.lower()
        if scheme in {"http", "https"}:
            return await self._fetch_image(reference)
        raise UnsupportedImageSourceError(
            f"imageUrl must be a data URL or an http(s) URL, got scheme '{scheme or 'none'}'"
        )

    @staticmethod
    def resolve_audio(audio_url: str) -> ResolvedMedia:
        reference = (audio_url or "").strip()
        if not is_data_url(reference):
            # Remote audio is out of scope: synthesized narration always arrives inline.
            raise UnsupportedAudioSourceError("audioUrl must be a data URL")
        try:
            asset = decode_data_url(reference)
        except InvalidDataUrlError as exc:
            raise InvalidMediaSourceError(f"audioUrl: {exc}") from exc
        suffix = _suffix_for(asset.mime_type) if asset.mime_type.startswith("audio/") else ""
        return ResolvedMedia(asset.data, suffix)

    async def _fetch_image(self, url: str) -> ResolvedMedia:
        host = urlsplit(url).netloc or url
        try:
            if self._http is not None:
                response = await self._http.get(url)
            else:
                async with httpx.AsyncClient(
                    timeout=self._fetch_timeout_seconds, follow_redirects=True
                ) as client:
                    response = await client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ImageFetchError(f"failed to fetch image from {host}: {exc}") from exc

        if not response.is_success:
            raise ImageFetchError(
                f"failed to fetch image from {host}: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if not response.content:
            raise ImageFetchError(f"failed to fetch image from {host}: empty response body")
        return ResolvedMedia(
            response.content,
            _image_suffix(response.content, response.headers.get("content-type"), urlsplit(url).path),
        )
