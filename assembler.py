"""Assemble captured chunks into a single transport payload."""

from __future__ import annotations

from typing import Iterable

from errors import EmptyPayloadError
from models import AudioChunk, EncodedPayload

DEFAULT_MIME_TYPE = "audio/webm"


def detect_mime_type(chunks: Iterable[AudioChunk]) -> str:
    """Return the declared type of the first non-empty chunk."""
    for chunk in chunks:
        if chunk.size > 0:
            return chunk.mime_type or DEFAULT_MIME_TYPE
    return DEFAULT_MIME_TYPE


def assemble(chunks: list[AudioChunk]) -> EncodedPayload:
    """Concatenate chunk bytes in arrival order.

    The audio itself is never touched: the payload is the byte-for-byte
    concatenation of the chunks, tagged with the capture MIME type.

    Raises:
        EmptyPayloadError: when there is no audio data at all.
    """
    if not chunks:
        raise EmptyPayloadError()
    data = b"".join(chunk.data for chunk in chunks)
    if not data:
        raise EmptyPayloadError()
    return EncodedPayload(data=data, mime_type=detect_mime_type(chunks), size_bytes=len(data))


def to_transport(payload: EncodedPayload) -> str:
    """Base64 form of the payload, safe to hand across a process boundary."""
    return payload.to_base64()
