from __future__ import annotations

import base64

import pytest

from assembler import DEFAULT_MIME_TYPE, assemble, to_transport
from errors import EMPTY_PAYLOAD, EmptyPayloadError
from models import AudioChunk


def test_assemble_empty_raises() -> None:
    with pytest.raises(EmptyPayloadError) as excinfo:
        assemble([])
    assert excinfo.value.code == EMPTY_PAYLOAD


def test_assemble_only_empty_chunks_raises() -> None:
    with pytest.raises(EmptyPayloadError):
        assemble([AudioChunk(b"", "audio/webm")])


def test_assemble_concatenates_in_order() -> None:
    chunks = [
        AudioChunk(b"a" * 1000, "audio/ogg;codecs=opus"),
        AudioChunk(b"b" * 2000, "audio/ogg;codecs=opus"),
        AudioChunk(b"c" * 1500, "audio/ogg;codecs=opus"),
    ]

    payload = assemble(chunks)

    assert payload.size_bytes == 4500
    assert len(payload.data) == 4500
    assert payload.data[:1000] == b"a" * 1000
    assert payload.data[-1500:] == b"c" * 1500
    assert payload.mime_type == "audio/ogg;codecs=opus"


def test_mime_type_comes_from_first_non_empty_chunk() -> None:
    chunks = [AudioChunk(b"", "audio/mp4"), AudioChunk(b"x", "audio/mpeg"), AudioChunk(b"y", "audio/wav")]
    assert assemble(chunks).mime_type == "audio/mpeg"


def test_missing_mime_type_falls_back_to_default() -> None:
    assert assemble([AudioChunk(b"x")]).mime_type == DEFAULT_MIME_TYPE


def test_transport_form_is_base64_of_the_bytes() -> None:
    payload = assemble([AudioChunk(b"\x00\xffdata", "audio/webm")])
    assert base64.b64decode(to_transport(payload)) == b"\x00\xffdata"
