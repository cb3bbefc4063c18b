"""State-machine based dictation session orchestration."""

from __future__ import annotations

import asyncio
import functools
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine, Mapping, Optional

from assembler import assemble
from errors import (
    DEVICE_UNAVAILABLE,
    EMPTY_PAYLOAD,
    NOTE_NOT_FOUND,
    PROCESSING_FAILED,
    SAVE_FAILURE,
    STALE_SESSION_DISCARD,
    EmptyPayloadError,
    PipelineError,
    user_message,
)
from interfaces import AudioStore, CaptureDevice, PreferencesSource, Transcriber
from models import AudioChunk, CaptureState, Preferences, Status, StatusEvent
from permission import PermissionGate
from reconciler import InsertionReconciler
from recorder import capture_settings_for

logger = logging.getLogger("stickers")

StatusCallback = Callable[[StatusEvent], None]
ErrorCallback = Callable[[str, str], None]

SOFT_LIMIT_BYTES = 10 * 1024 * 1024


@dataclass(eq=False)
class CaptureSession:
    session_id: int
    note_id: str
    preferences: Preferences
    options: dict[str, Any] = field(default_factory=dict)
    state: CaptureState = CaptureState.IDLE
    chunks: list[AudioChunk] = field(default_factory=list)
    buffered_bytes: int = 0
    started_at: Optional[float] = None
    timeout_handle: Optional[asyncio.TimerHandle] = None
    device_open: bool = False
    finishing: bool = False
    committing: bool = False
    size_warned: bool = False
    file_path: str = ""

    @property
    def elapsed_s(self) -> float:
        return time.time() - self.started_at if self.started_at else 0.0


class DictationController:
    """Drives one capture session at a time from permission to note update.

    All methods run on a single asyncio loop. Each session is created by
    ``start_capture`` and never reused; once it reaches COMPLETE, ERROR or
    CANCELLED its device, timer and buffered audio have been released, and
    any transcription that resolves afterwards is discarded.
    """

    def __init__(
        self,
        device: CaptureDevice,
        permission_gate: PermissionGate,
        preferences: PreferencesSource,
        audio_store: AudioStore,
        transcriber: Transcriber,
        reconciler: InsertionReconciler,
        soft_limit_bytes: int = SOFT_LIMIT_BYTES,
        on_status: Optional[StatusCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._device = device
        self._permission = permission_gate
        self._preferences = preferences
        self._audio_store = audio_store
        self._transcriber = transcriber
        self._reconciler = reconciler
        self._soft_limit_bytes = soft_limit_bytes
        self._on_status = on_status
        self._on_error = on_error

        self._ids = itertools.count(1)
        self._session: Optional[CaptureSession] = None
        self._latest: Optional[CaptureSession] = None
        self._opening: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def state(self) -> CaptureState:
        return self._latest.state if self._latest else CaptureState.IDLE

    @property
    def active_session(self) -> Optional[CaptureSession]:
        return self._session

    @property
    def active_note_id(self) -> Optional[str]:
        return self._session.note_id if self._session else None

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def start_capture(self, note_id: str, options: Optional[Mapping[str, Any]] = None) -> bool:
        if self._session is not None:
            logger.warning(
                "Session %d still %s, cancelling it before starting a new one",
                self._session.session_id,
                self._session.state.value,
            )
            await self.cancel_capture()

        session = CaptureSession(
            session_id=next(self._ids),
            note_id=note_id,
            preferences=self._preferences.get_preferences(),
            options=dict(options or {}),
        )
        self._session = session
        self._latest = session
        self._transition(session, CaptureState.REQUESTING_PERMISSION)

        await self._settle_device()
        if self._superseded(session, CaptureState.REQUESTING_PERMISSION):
            return False

        granted = await self._permission.check_permission()
        if not granted and not self._superseded(session, CaptureState.REQUESTING_PERMISSION):
            granted = await self._permission.request_permission()
        if self._superseded(session, CaptureState.REQUESTING_PERMISSION):
            return False
        if not granted:
            # The gate has already reported the denial.
            await self._finish(session, CaptureState.ERROR)
            return False

        session.chunks.clear()
        session.buffered_bytes = 0
        opening = asyncio.ensure_future(self._open_device(session))
        self._opening = opening
        try:
            await asyncio.shield(opening)
        except Exception as exc:
            logger.error("Error starting recording: %s", exc)
            if not self._superseded(session, CaptureState.REQUESTING_PERMISSION):
                await self._fail(session, DEVICE_UNAVAILABLE, f"Failed to start recording: {exc}")
            return False
        if self._superseded(session, CaptureState.REQUESTING_PERMISSION):
            return False

        session.started_at = time.time()
        max_duration_s = session.preferences.max_duration_s
        if max_duration_s > 0:
            loop = asyncio.get_running_loop()
            session.timeout_handle = loop.call_later(max_duration_s, self._on_timeout, session)
        self._transition(session, CaptureState.RECORDING)
        self._emit(
            session,
            Status.RECORDING,
            {"started_at": session.started_at, "max_duration_s": max_duration_s},
        )
        logger.info("Recording into note %s (limit %ss)", note_id, max_duration_s)
        return True

    async def stop_capture(self) -> bool:
        session = self._session
        if session is None:
            logger.warning("Not currently recording")
            return False
        if session.state != CaptureState.RECORDING:
            self._clear_timer(session)
            logger.warning("Stop ignored in state %s", session.state.value)
            return False
        await self._stop_session(session)
        return session.state == CaptureState.COMPLETE

    async def cancel_capture(self) -> bool:
        session = self._session
        if session is None or session.finishing:
            return False
        if session.committing:
            logger.info("Session %d is already writing its transcript, not cancelling", session.session_id)
            return False
        logger.info("Cancelling session %d in state %s", session.session_id, session.state.value)
        self._emit(session, Status.CANCELLING)
        await self._finish(session, CaptureState.CANCELLED)
        self._emit(session, Status.CANCELLED)
        return True

    async def shutdown(self) -> None:
        await self.cancel_capture()
        await self._settle_device()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Device callbacks
    # ------------------------------------------------------------------

    def _on_chunk(self, session: CaptureSession, chunk: AudioChunk) -> None:
        if chunk.size == 0:
            return
        if session.finishing or session.state not in (CaptureState.RECORDING, CaptureState.STOPPING):
            return
        session.chunks.append(chunk)
        session.buffered_bytes += chunk.size
        if session.buffered_bytes > self._soft_limit_bytes and not session.size_warned:
            session.size_warned = True
            logger.warning(
                "Audio recording size exceeds %.0f MB, consider stopping recording",
                self._soft_limit_bytes / (1024 * 1024),
            )
            self._emit(session, Status.SIZE_WARNING, {"size_bytes": session.buffered_bytes})

    def _on_timeout(self, session: CaptureSession) -> None:
        session.timeout_handle = None
        if self._session is not session or session.state != CaptureState.RECORDING:
            return
        logger.info(
            "Maximum recording duration (%ss) reached, stopping automatically",
            session.preferences.max_duration_s,
        )
        self._spawn(self._stop_session(session))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _stop_session(self, session: CaptureSession) -> None:
        if session.state != CaptureState.RECORDING or session.finishing:
            return
        self._clear_timer(session)
        self._transition(session, CaptureState.STOPPING)
        self._emit(session, Status.STOPPING)
        try:
            await self._release_device(session)
        except Exception as exc:
            logger.error("Error stopping recording: %s", exc)
            await self._fail(session, DEVICE_UNAVAILABLE, f"Failed to stop recording: {exc}")
            return
        # Let chunks the device posted before closing reach the buffer.
        await asyncio.sleep(0)
        if session.finishing or session.state != CaptureState.STOPPING:
            return
        logger.info("Recording stopped after %.1f seconds", session.elapsed_s)

        self._transition(session, CaptureState.PROCESSING)
        self._emit(session, Status.PROCESSING)
        try:
            await self._process(session)
        except Exception as exc:
            logger.exception("Error processing recording")
            if not self._is_stale(session):
                await self._fail(session, PROCESSING_FAILED, f"Failed to process recording: {exc}")
        finally:
            if session.file_path:
                await asyncio.to_thread(self._audio_store.delete_temp_audio, session.file_path)

    async def _process(self, session: CaptureSession) -> None:
        try:
            payload = assemble(session.chunks)
        except EmptyPayloadError as exc:
            await self._fail(session, EMPTY_PAYLOAD, str(exc))
            return
        size_kb = payload.size_bytes / 1024
        logger.info("Audio recording size: %.2f KB", size_kb)

        saved = await asyncio.to_thread(self._audio_store.save_recorded_audio, payload)
        if saved.success:
            session.file_path = saved.file_path
        if self._is_stale(session):
            self._discard(session)
            return
        if not saved.success:
            await self._fail(session, SAVE_FAILURE, saved.error or "Failed to save recording")
            return

        options = {"language": session.preferences.language, **session.options}
        result = await self._transcriber.transcribe(payload, options)
        if self._is_stale(session):
            self._discard(session)
            return
        if not result.success:
            await self._fail(
                session,
                result.code or PROCESSING_FAILED,
                result.message,
                status=result.status,
            )
            return

        append_mode = session.preferences.append_mode
        session.committing = True
        try:
            applied = await self._reconciler.apply(session.note_id, result.text, append_mode)
        except PipelineError as exc:
            await self._fail(session, exc.code, str(exc))
            return
        if not applied:
            await self._fail(session, NOTE_NOT_FOUND, f"note {session.note_id} no longer exists")
            return

        duration_s = round(session.elapsed_s, 1)
        await self._finish(session, CaptureState.COMPLETE)
        self._emit(
            session,
            Status.COMPLETE,
            {
                "file_path": session.file_path,
                "size_kb": round(size_kb, 2),
                "duration_s": duration_s,
                "append_mode": append_mode,
                "language": options["language"],
                "text": result.text,
            },
        )

    async def _open_device(self, session: CaptureSession) -> None:
        settings = capture_settings_for(session.preferences)
        await self._device.open(settings, functools.partial(self._on_chunk, session))
        session.device_open = True
        if self._superseded(session, CaptureState.REQUESTING_PERMISSION):
            # Cancelled while the device was opening.
            await self._release_quietly(session)

    async def _settle_device(self) -> None:
        """Wait until an open started by an earlier session has finished and
        been released again if that session was cancelled meanwhile."""
        opening = self._opening
        if opening is not None and not opening.done():
            logger.debug("Waiting for the previous session to release the capture device")
            await asyncio.wait({opening})

    async def _fail(self, session: CaptureSession, code: str, message: str, **data: Any) -> None:
        if session.finishing:
            return
        logger.error("Session %d failed [%s]: %s", session.session_id, code, message)
        await self._finish(session, CaptureState.ERROR)
        self._emit(session, Status.ERROR, {"code": code, "message": message, **data})
        if self._on_error:
            self._on_error(code, user_message(code, message))

    async def _finish(self, session: CaptureSession, state: CaptureState) -> None:
        """Release everything the session holds, then enter ``state``."""
        if session.finishing:
            return
        session.finishing = True
        self._clear_timer(session)
        await self._release_quietly(session)
        session.chunks.clear()
        session.buffered_bytes = 0
        self._transition(session, state)
        if self._session is session:
            self._session = None

    async def _release_device(self, session: CaptureSession) -> None:
        if not session.device_open:
            return
        session.device_open = False
        await self._device.close()

    async def _release_quietly(self, session: CaptureSession) -> None:
        try:
            await self._release_device(session)
        except Exception as exc:
            logger.warning("Failed to release capture device: %s", exc)

    def _clear_timer(self, session: CaptureSession) -> None:
        if session.timeout_handle is not None:
            session.timeout_handle.cancel()
            session.timeout_handle = None

    def _is_stale(self, session: CaptureSession) -> bool:
        return (
            session.finishing
            or self._session is not session
            or session.state != CaptureState.PROCESSING
        )

    def _superseded(self, session: CaptureSession, expected: CaptureState) -> bool:
        return session.finishing or self._session is not session or session.state != expected

    def _discard(self, session: CaptureSession) -> None:
        logger.info(
            "%s: dropping result of session %d (%s)",
            STALE_SESSION_DISCARD,
            session.session_id,
            session.state.value,
        )

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _emit(self, session: CaptureSession, status: Status, data: Optional[dict] = None) -> None:
        if not self._on_status:
            return
        payload = {"note_id": session.note_id, "session_id": session.session_id, **(data or {})}
        try:
            self._on_status(StatusEvent(status.value, payload))
        except Exception:
            logger.exception("Status listener failed on %s", status.value)

    def _transition(self, session: CaptureSession, to_state: CaptureState) -> None:
        from_state = session.state
        if from_state == to_state:
            return
        session.state = to_state
        logger.debug("Session %d: %s -> %s", session.session_id, from_state.value, to_state.value)
