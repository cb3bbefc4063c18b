"""Application entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import threading
from concurrent.futures import Future
from typing import Any, Coroutine, Optional

from audio_store import TempAudioStore
from config import JsonConfigStore
from hotkey import GlobalHotkeyAdapter
from log_config import setup_logging
from models import Status, StatusEvent
from notes import JsonNoteStore
from permission import PermissionGate
from reconciler import InsertionReconciler
from recorder import SoundDeviceRecorder
from session_controller import DictationController
from transcriber import DashscopeTranscriptionClient

try:
    from PySide6.QtCore import QObject, Signal
    from PySide6.QtWidgets import QApplication

    from sticker_window import StickerWindow
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger("stickers")

FINAL_STATUSES = {
    Status.COMPLETE.value,
    Status.CANCELLED.value,
    Status.ERROR.value,
    Status.PERMISSION_DENIED.value,
}
RECORDING_STATUSES = {Status.RECORDING.value, Status.SIZE_WARNING.value}


class UIBridge(QObject):
    status_signal = Signal(str, object)  # state, data
    error_signal = Signal(str, str)  # code, message
    content_signal = Signal(str, str)  # note_id, text
    toggle_signal = Signal()


class LoopThread:
    """Runs the dictation event loop beside the Qt main loop."""

    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name="dictation-loop", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def submit(self, coro: Coroutine[Any, Any, Any]) -> Future:
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def stop(self, timeout_s: float = 2.0) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=timeout_s)
        if not self.loop.is_running():
            self.loop.close()

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.config_store = JsonConfigStore()
        self.notes = JsonNoteStore()
        self.audio_store = TempAudioStore()
        self.audio_store.cleanup_temp_audio()

        self.ui = UIBridge()
        self.ui.status_signal.connect(self._on_status_ui)
        self.ui.error_signal.connect(self._on_error_ui)
        self.ui.content_signal.connect(self._on_content_ui)
        self.ui.toggle_signal.connect(self._on_hotkey_ui)
        self.notes.on_content_applied = self.ui.content_signal.emit

        recorder = SoundDeviceRecorder()
        self.controller = DictationController(
            device=recorder,
            permission_gate=PermissionGate(recorder, on_status=self._on_status, on_error=self._on_error),
            preferences=self.config_store,
            audio_store=self.audio_store,
            transcriber=DashscopeTranscriptionClient(
                api_key=self.config_store.get_api_key(),
                model=self.config_store.get_model(),
            ),
            reconciler=InsertionReconciler(self.notes),
            on_status=self._on_status,
            on_error=self._on_error,
        )
        self.loop = LoopThread()
        self.hotkey = GlobalHotkeyAdapter(hotkey_name=self.config_store.get_hotkey())

        self.windows: dict[str, StickerWindow] = {}
        self._focused_note: Optional[str] = None
        self._active_note: Optional[str] = None
        self._active_status = ""
        self._last_status_note: Optional[str] = None
        self.app.aboutToQuit.connect(self.quit)

    # ------------------------------------------------------------------
    # Windows
    # ------------------------------------------------------------------

    def open_window(self, note_id: str) -> None:
        note = self.notes.get_note(note_id)
        if note is None:
            return
        window = StickerWindow(note, self.notes)
        window.dictation_requested.connect(self.toggle_dictation)
        window.new_note_requested.connect(self.new_note)
        window.delete_requested.connect(self.delete_note)
        window.activated.connect(self._on_window_activated)
        self.windows[note_id] = window
        window.show()

    def new_note(self) -> None:
        origin = self.notes.get_note(self._focused_note) if self._focused_note else None
        if origin is not None:
            note = self.notes.create_note(x=origin.x + 30, y=origin.y + 30, color=origin.color)
        else:
            note = self.notes.create_note()
        self.open_window(note.id)

    def delete_note(self, note_id: str) -> None:
        window = self.windows.pop(note_id, None)
        self.notes.delete_note(note_id)
        if window is not None:
            window.close()
            window.deleteLater()
        if self._focused_note == note_id:
            self._focused_note = None
        if not self.windows:
            self.new_note()

    def _on_window_activated(self, note_id: str) -> None:
        self._focused_note = note_id

    # ------------------------------------------------------------------
    # Dictation
    # ------------------------------------------------------------------

    def toggle_dictation(self, note_id: str) -> None:
        if self._active_note == note_id:
            if self._active_status in RECORDING_STATUSES:
                self._submit(self.controller.stop_capture())
            else:
                self._submit(self.controller.cancel_capture())
            return
        self._active_note = note_id
        self._active_status = Status.REQUESTING_PERMISSION.value
        self._submit(self.controller.start_capture(note_id))

    def _submit(self, coro: Coroutine[Any, Any, Any]) -> None:
        future = self.loop.submit(coro)
        future.add_done_callback(self._log_future_failure)

    @staticmethod
    def _log_future_failure(future: Future) -> None:
        if not future.cancelled() and future.exception() is not None:
            logger.error("Dictation task failed: %s", future.exception())

    # ------------------------------------------------------------------
    # Callbacks (called on the dictation loop → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_status(self, event: StatusEvent) -> None:
        self.ui.status_signal.emit(event.state, event.data)

    def _on_error(self, code: str, message: str) -> None:
        self.ui.error_signal.emit(code, message)

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_status_ui(self, state: str, data: dict) -> None:
        note_id = data.get("note_id") or self._active_note
        self._last_status_note = note_id
        window = self.windows.get(note_id) if note_id else None
        if window is not None:
            window.set_status(state)
        if note_id != self._active_note:
            return
        if state in FINAL_STATUSES:
            self._active_note = None
            self._active_status = ""
        else:
            self._active_status = state

    def _on_error_ui(self, code: str, message: str) -> None:
        logger.debug("Showing error %s", code)
        note_id = self._last_status_note or self._focused_note
        window = self.windows.get(note_id) if note_id else None
        if window is not None:
            window.show_error(message)

    def _on_content_ui(self, note_id: str, text: str) -> None:
        window = self.windows.get(note_id)
        if window is not None:
            window.set_content(text)

    def _on_hotkey_ui(self) -> None:
        note_id = self._active_note or self._focused_note or next(iter(self.windows), None)
        if note_id is not None:
            self.toggle_dictation(note_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self.loop.start()
        for note in self.notes.list_notes():
            self.open_window(note.id)
        if not self.windows:
            self.new_note()
        try:
            self.hotkey.start(on_toggle=self.ui.toggle_signal.emit)
        except Exception as exc:
            logger.warning("Hotkey disabled: %s", exc)
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        try:
            self.loop.submit(self.controller.shutdown()).result(timeout=5.0)
        except Exception as exc:
            logger.warning("Dictation shutdown incomplete: %s", exc)
        self.loop.stop()
        self.notes.save_notes()


def main() -> int:
    parser = argparse.ArgumentParser(description="Sticky notes with voice dictation")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    setup_logging(verbose=args.verbose)
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
