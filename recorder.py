"""Microphone capture device."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
import time
from typing import Any, AsyncIterator, Callable, Optional

from models import AudioChunk, CaptureSettings, Preferences

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger("stickers")

DEFAULT_SENSITIVITY = 0.8
MAX_GAIN = 1.25


def capture_settings_for(preferences: Preferences) -> CaptureSettings:
    """Derive stream settings from a preferences snapshot."""
    device: Optional[int | str] = None
    device_id = (preferences.device_id or "").strip()
    if device_id:
        device = int(device_id) if device_id.isdigit() else device_id
    sensitivity = max(0.0, min(1.0, preferences.sensitivity))
    gain = min(MAX_GAIN, sensitivity / DEFAULT_SENSITIVITY)
    return CaptureSettings(device=device, gain=gain)


def pcm_mime_type(sample_rate: int, channels: int) -> str:
    return f"audio/L16;rate={sample_rate};channels={channels}"


def list_input_devices() -> list[dict[str, Any]]:
    if sd is None:
        return []
    devices = []
    for index, info in enumerate(sd.query_devices()):
        if info.get("max_input_channels", 0) > 0:
            devices.append({"id": str(index), "name": info.get("name", f"Device {index}")})
    return devices


class SoundDeviceRecorder:
    """Exclusive owner of one microphone input stream."""

    def __init__(self) -> None:
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._on_chunk: Optional[Callable[[AudioChunk], None]] = None
        self._settings = CaptureSettings()
        self._mime_type = pcm_mime_type(self._settings.sample_rate, self._settings.channels)

    @property
    def is_open(self) -> bool:
        return self._running

    async def open(self, settings: CaptureSettings, on_chunk: Callable[[AudioChunk], None]) -> None:
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._running:
                raise RuntimeError("capture device already in use")
            if sd is None:
                raise RuntimeError("sounddevice is not installed")
            self._loop = loop
            self._on_chunk = on_chunk
            self._settings = settings
            self._mime_type = pcm_mime_type(settings.sample_rate, settings.channels)
            self._running = True
        try:
            await asyncio.to_thread(self._start_stream, settings)
        except Exception:
            with self._lock:
                self._running = False
                self._on_chunk = None
            raise

    async def close(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            stream = self._stream
            self._stream = None
            self._on_chunk = None
        if stream is not None:
            await asyncio.to_thread(self._stop_stream, stream)

    @contextlib.asynccontextmanager
    async def trial_access(self) -> AsyncIterator[None]:
        """Open the input without capturing, then release it unconditionally."""
        if sd is None:
            raise RuntimeError("sounddevice is not installed")
        if self._running:
            # The active session already holds the device, so access is granted.
            yield
            return
        stream = await asyncio.to_thread(
            sd.InputStream,
            samplerate=self._settings.sample_rate,
            channels=self._settings.channels,
            dtype="int16",
        )
        try:
            yield
        finally:
            await asyncio.to_thread(stream.close)

    def _start_stream(self, settings: CaptureSettings) -> None:
        stream = sd.InputStream(
            device=settings.device,
            samplerate=settings.sample_rate,
            channels=settings.channels,
            dtype="int16",
            blocksize=settings.blocksize,
            callback=self._on_audio,
        )
        try:
            stream.start()
        except Exception:
            stream.close()
            raise
        self._stream = stream
        logger.debug("Opened input stream on device %s", settings.device or "default")

    @staticmethod
    def _stop_stream(stream: Any) -> None:
        try:
            stream.stop()
        finally:
            stream.close()
        logger.debug("Released input stream")

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            logger.debug("Input stream status: %s", status)
        loop, on_chunk = self._loop, self._on_chunk
        if not self._running or loop is None or on_chunk is None:
            return
        if np is None:
            return
        samples = np.asarray(indata, dtype=np.int16)
        gain = self._settings.gain
        if gain != 1.0:
            scaled = samples.astype(np.float32) * gain
            samples = np.clip(scaled, -32768, 32767).astype(np.int16)
        chunk = AudioChunk(
            data=samples.tobytes(),
            mime_type=self._mime_type,
            timestamp_ms=int(time.time() * 1000),
        )
        try:
            loop.call_soon_threadsafe(on_chunk, chunk)
        except RuntimeError:
            # Event loop already closed during shutdown.
            pass
