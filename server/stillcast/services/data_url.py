"""Inline asset (``data:`` URL) encoding and decoding.

Both services hand media back to the caller inline so nothing has to be
hosted or persisted: ``data:<mime>;base64,<payload>``.
"""
from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from urllib.parse import unquote_to_bytes


class InvalidDataUrlError(ValueError):
    """Raised when a string claims to be a data URL but cannot be decoded."""


@dataclass(slots=True)
class DataUrl:
    """Decoded inline asset."""

    mime_type: str
    data: bytes


def is_data_url(value: str) -> bool:
    return (value or "").lstrip()[:5].lower() == "data:"


def encode_data_url(payload: bytes, mime_type: str) -> str:
    """Return ``payload`` as a base64 data URL with the given MIME type."""
    encoded = base64.b64encode(payload).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def decode_data_url(value: str) -> DataUrl:
    """Parse a ``data:`` URL into its MIME type and raw bytes.

    Percent-encoded payloads are accepted as well as base64 ones. An empty
    payload is rejected because nothing downstream can use it.
    """
    raw = (value or "").strip()
    if not is_data_url(raw):
        raise InvalidDataUrlError("value is not a data: URL")
    header, sep, payload = raw[5:].partition(",")
    if not sep:
        raise InvalidDataUrlError("data URL is missing the ',' separator")

    params = [part.strip() for part in header.split(";")]
    is_base64 = bool(params) and params[-1].lower() == "base64"
    if is_base64:
        params = params[:-1]
    mime_type = (params[0] if params and params[0] else "text/plain").lower()

    if is_base64:
        try:
            # Line-wrapped base64 is common; only the alphabet itself is checked.
            data = base64.b64decode("".join(payload.split()), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidDataUrlError(f"data URL has an invalid base64 payload: {exc}") from exc
    else:
        data = unquote_to_bytes(payload)

    if not data:
        raise InvalidDataUrlError("data URL payload is empty")
    return DataUrl(mime_type=mime_type, data=data)
