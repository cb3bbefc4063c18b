"""Core data models for the app."""

from __future__ import annotations

import base64
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class CaptureState(str, Enum):
    IDLE = "IDLE"
    REQUESTING_PERMISSION = "REQUESTING_PERMISSION"
    RECORDING = "RECORDING"
    STOPPING = "STOPPING"
    PROCESSING = "PROCESSING"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (CaptureState.COMPLETE, CaptureState.ERROR, CaptureState.CANCELLED)


class Status(str, Enum):
    """Status names pushed to the UI sink."""

    REQUESTING_PERMISSION = "requesting_permission"
    PERMISSION_GRANTED = "permission_granted"
    PERMISSION_DENIED = "permission_denied"
    RECORDING = "recording"
    SIZE_WARNING = "size_warning"
    STOPPING = "stopping"
    PROCESSING = "processing"
    COMPLETE = "complete"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass
class AudioChunk:
    data: bytes
    mime_type: str = ""
    timestamp_ms: int = 0

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class EncodedPayload:
    data: bytes
    mime_type: str
    size_bytes: int

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


@dataclass(frozen=True)
class Preferences:
    """Snapshot of the dictation preferences taken at session start."""

    device_id: str = ""
    sensitivity: float = 0.8
    max_duration_s: int = 180
    append_mode: bool = True
    language: str = "en"


@dataclass(frozen=True)
class CaptureSettings:
    device: Optional[int | str] = None
    sample_rate: int = 16000
    channels: int = 1
    block_ms: int = 500
    gain: float = 1.0

    @property
    def blocksize(self) -> int:
        return int(self.sample_rate * (self.block_ms / 1000.0))


@dataclass
class TranscriptionResult:
    success: bool
    text: str = ""
    code: str = ""
    message: str = ""
    status: Optional[int] = None

    @classmethod
    def ok(cls, text: str) -> TranscriptionResult:
        return cls(success=True, text=text)

    @classmethod
    def failure(cls, code: str, message: str, status: Optional[int] = None) -> TranscriptionResult:
        return cls(success=False, code=code, message=message, status=status)


@dataclass
class SaveResult:
    success: bool
    file_path: str = ""
    error: str = ""


@dataclass
class StatusEvent:
    state: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class Note:
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    content: str = ""
    x: int = 120
    y: int = 120
    width: int = 260
    height: int = 220
    color: str = "#FFF59D"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Note:
        known = {k: data[k] for k in cls.__dataclass_fields__ if k in data}
        return cls(**known)
