"""Shared error codes and user-facing messages."""

from __future__ import annotations

PERMISSION_DENIED = "PERMISSION_DENIED"
DEVICE_UNAVAILABLE = "DEVICE_UNAVAILABLE"
EMPTY_PAYLOAD = "EMPTY_PAYLOAD"
NETWORK_ERROR = "NETWORK_ERROR"
SERVICE_ERROR = "SERVICE_ERROR"
EMPTY_AUDIO = "EMPTY_AUDIO"
SAVE_FAILURE = "SAVE_FAILURE"
NOTE_NOT_FOUND = "NOTE_NOT_FOUND"
PROCESSING_FAILED = "PROCESSING_FAILED"
# Internal suppression of a late transcription result; logged, never shown.
STALE_SESSION_DISCARD = "STALE_SESSION_DISCARD"

ERROR_MESSAGES = {
    PERMISSION_DENIED: "Microphone access was denied. Please allow microphone access to use speech-to-text.",
    DEVICE_UNAVAILABLE: "The microphone could not be opened.",
    EMPTY_PAYLOAD: "No audio was recorded.",
    NETWORK_ERROR: "Network failed, please retry.",
    SERVICE_ERROR: "The transcription service returned an error, please retry.",
    EMPTY_AUDIO: "No speech was recognized.",
    SAVE_FAILURE: "Could not save to disk, please retry.",
    NOTE_NOT_FOUND: "The note was closed before the transcription finished.",
    PROCESSING_FAILED: "Failed to process the recording.",
}


def user_message(code: str, detail: str = "") -> str:
    message = ERROR_MESSAGES.get(code)
    if message is None:
        return detail or code
    return message


class PipelineError(Exception):
    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or ERROR_MESSAGES.get(code, code))
        self.code = code


class EmptyPayloadError(PipelineError):
    def __init__(self, message: str = "No audio data available to process") -> None:
        super().__init__(EMPTY_PAYLOAD, message)
