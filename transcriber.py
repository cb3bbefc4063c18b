"""Transcription client using DashScope qwen3-asr-flash.

The model accepts complete audio as a base64 data URL.  Raw PCM captured from
the microphone is wrapped in a WAV container first; anything else is uploaded
as recorded.  Every failure comes back as a tagged ``TranscriptionResult``
rather than an exception, and nothing is retried here.
"""

from __future__ import annotations

import asyncio
import base64
import io
import logging
import os
import time
import wave
from http import HTTPStatus
from typing import Any, Mapping, Optional

from errors import EMPTY_AUDIO, ERROR_MESSAGES, NETWORK_ERROR, SERVICE_ERROR
from models import EncodedPayload, TranscriptionResult

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger("stickers")

DEFAULT_OPTIONS: dict[str, Any] = {
    "model": "qwen3-asr-flash",
    "language": "en",
    "enable_itn": False,
}


def _pcm_to_wav(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> bytes:
    """Wrap raw PCM bytes in a WAV header."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buf.getvalue()


def _mime_params(mime_type: str) -> tuple[str, dict[str, str]]:
    base, *params = [part.strip() for part in mime_type.split(";")]
    parsed = {}
    for param in params:
        key, _, value = param.partition("=")
        if key:
            parsed[key.lower()] = value
    return base.lower(), parsed


def to_data_url(payload: EncodedPayload) -> str:
    """Build the upload form of ``payload``, as a base64 data URL."""
    base, params = _mime_params(payload.mime_type)
    if base == "audio/l16":
        wav = _pcm_to_wav(
            payload.data,
            sample_rate=int(params.get("rate", 16000)),
            channels=int(params.get("channels", 1)),
        )
        return "data:audio/wav;base64," + base64.b64encode(wav).decode("ascii")
    return f"data:{base};base64,{payload.to_base64()}"


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


class DashscopeTranscriptionClient:
    def __init__(
        self,
        api_key: str = "",
        model: str = DEFAULT_OPTIONS["model"],
        request_timeout_s: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self._defaults = {**DEFAULT_OPTIONS, "model": model}
        self._request_timeout_s = request_timeout_s

    async def transcribe(
        self,
        payload: EncodedPayload,
        options: Optional[Mapping[str, Any]] = None,
    ) -> TranscriptionResult:
        if payload.size_bytes == 0 or not payload.data:
            return TranscriptionResult.failure(EMPTY_AUDIO, "audio payload is empty")
        if dashscope is None:
            return TranscriptionResult.failure(SERVICE_ERROR, "dashscope is not installed")

        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            return TranscriptionResult.failure(
                SERVICE_ERROR, "No API key configured", status=HTTPStatus.UNAUTHORIZED
            )

        merged = {**self._defaults, **(options or {})}
        audio_url = to_data_url(payload)
        logger.info("Starting transcription of %.2f KB audio data", payload.size_bytes / 1024)
        started = time.monotonic()
        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(self._call, api_key, audio_url, merged),
                timeout=self._request_timeout_s,
            )
        except asyncio.TimeoutError:
            return TranscriptionResult.failure(
                NETWORK_ERROR, f"API request timed out after {self._request_timeout_s:g} seconds"
            )
        except Exception as exc:
            return self._to_failure(exc)

        logger.info("Transcription completed in %.2f seconds", time.monotonic() - started)
        return self._to_result(response)

    def _call(self, api_key: str, audio_url: str, options: Mapping[str, Any]) -> Any:
        return dashscope.MultiModalConversation.call(
            api_key=api_key,
            model=options["model"],
            messages=[
                {"role": "system", "content": [{"text": options.get("prompt", "")}]},
                {"role": "user", "content": [{"audio": audio_url}]},
            ],
            result_format="message",
            asr_options={
                "language": options.get("language"),
                "enable_itn": options.get("enable_itn", False),
            },
        )

    def _to_result(self, response: Any) -> TranscriptionResult:
        status = _field(response, "status_code") or HTTPStatus.OK
        if status != HTTPStatus.OK:
            message = _field(response, "message") or _field(response, "code") or "request failed"
            if status == HTTPStatus.UNAUTHORIZED:
                message = "API key is invalid."
            return TranscriptionResult.failure(SERVICE_ERROR, str(message), status=int(status))

        text = self._extract_text(response).strip()
        if not text:
            return TranscriptionResult.failure(EMPTY_AUDIO, ERROR_MESSAGES[EMPTY_AUDIO])
        return TranscriptionResult.ok(text)

    def _extract_text(self, response: Any) -> str:
        """Pull the transcript out of a MultiModalConversation response."""
        output = _field(response, "output") or {}
        choices = _field(output, "choices") or []
        if not choices:
            return ""
        message = _field(choices[0], "message") or {}
        content = _field(message, "content") or []
        if not content:
            return ""
        value = content[0]
        if isinstance(value, Mapping):
            return str(value.get("text", ""))
        return ""

    def _to_failure(self, exc: Exception) -> TranscriptionResult:
        """Map an SDK/network exception to a tagged failure."""
        message = str(exc)
        low = message.lower()
        if isinstance(exc, (ConnectionError, TimeoutError)):
            return TranscriptionResult.failure(NETWORK_ERROR, message)
        if "401" in low or "auth" in low or "api key" in low:
            return TranscriptionResult.failure(
                SERVICE_ERROR, "API key is invalid.", status=HTTPStatus.UNAUTHORIZED
            )
        if "timeout" in low or "network" in low or "connection" in low:
            return TranscriptionResult.failure(NETWORK_ERROR, message)
        return TranscriptionResult.failure(SERVICE_ERROR, message)
