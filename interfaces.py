"""Protocol interfaces used by DictationController."""

from __future__ import annotations

from typing import Any, AsyncContextManager, Callable, Mapping, Optional, Protocol

from models import AudioChunk, CaptureSettings, EncodedPayload, Preferences, SaveResult, TranscriptionResult


class CaptureDevice(Protocol):
    async def open(self, settings: CaptureSettings, on_chunk: Callable[[AudioChunk], None]) -> None: ...

    async def close(self) -> None: ...

    def trial_access(self) -> AsyncContextManager[None]: ...


class PreferencesSource(Protocol):
    def get_preferences(self) -> Preferences: ...


class AudioStore(Protocol):
    def save_recorded_audio(self, payload: EncodedPayload) -> SaveResult: ...

    def delete_temp_audio(self, file_path: str) -> bool: ...


class Transcriber(Protocol):
    async def transcribe(
        self,
        payload: EncodedPayload,
        options: Optional[Mapping[str, Any]] = None,
    ) -> TranscriptionResult: ...


class NoteStore(Protocol):
    def get_note_content(self, note_id: str) -> Optional[str]: ...

    def apply_note_content(self, note_id: str, text: str) -> bool: ...

    def save_notes(self) -> None: ...
