from __future__ import annotations

from typing import Optional


class SynthesisError(RuntimeError):
    """Raised when a speech-synthesis request cannot be fulfilled."""


class SynthesisValidationError(SynthesisError):
    """Raised when the synthesis request itself is unusable (empty text, unknown engine)."""


class SynthesisNotImplementedError(SynthesisError):
    """Raised when a declared engine has no integration behind it."""


class SynthesisBackendError(SynthesisError):
    """Raised when either VOICEVOX phase fails or cannot be reached."""

    def __init__(self, message: str, *, phase: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.phase = phase
        self.status_code = status_code


class CompositionError(RuntimeError):
    """Raised when a still-image video cannot be rendered."""


class CompositionValidationError(CompositionError):
    """Raised when a render request is missing usable media."""


class InvalidMediaSourceError(CompositionError):
    """Raised when an inline media reference cannot be decoded."""


class UnsupportedAudioSourceError(CompositionError):
    """Raised for audio references other than data URLs."""


class UnsupportedImageSourceError(CompositionError):
    """Raised for image references that are neither data URLs nor HTTP(S) URLs."""


class ImageFetchError(CompositionError):
    """Raised when a remote image cannot be downloaded."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EncoderError(CompositionError):
    """Raised when ffmpeg fails to produce the output video."""


class EncoderTimeoutError(EncoderError):
    """Raised when ffmpeg exceeds the configured deadline and is killed."""
