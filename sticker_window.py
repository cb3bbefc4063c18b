"""Sticker note window."""

from __future__ import annotations

from PySide6.QtCore import QEvent, Qt, QTimer, Signal
from PySide6.QtWidgets import QHBoxLayout, QLabel, QPlainTextEdit, QPushButton, QVBoxLayout, QWidget

from models import Note, Status
from notes import JsonNoteStore

SAVE_DELAY_MS = 500

MIC_STYLES = {
    "idle": "background: transparent; border: none; font-size: 16px;",
    "busy": "background: #FFCC80; border-radius: 12px; font-size: 16px;",
    "recording": "background: #FF4444; color: white; border-radius: 12px; font-size: 16px;",
    "error": "background: #FF8800; border-radius: 12px; font-size: 16px;",
}

STATUS_LOOK = {
    Status.REQUESTING_PERMISSION.value: ("busy", "Waiting for microphone..."),
    Status.RECORDING.value: ("recording", "Recording, click to stop"),
    Status.SIZE_WARNING.value: ("recording", "Recording is getting long"),
    Status.STOPPING.value: ("busy", "Stopping..."),
    Status.PROCESSING.value: ("busy", "Transcribing..."),
    Status.COMPLETE.value: ("idle", "Dictate"),
    Status.CANCELLED.value: ("idle", "Dictate"),
    Status.PERMISSION_DENIED.value: ("error", "Microphone access denied"),
    Status.ERROR.value: ("error", "Dictation failed"),
}


class StickerWindow(QWidget):
    dictation_requested = Signal(str)
    new_note_requested = Signal()
    delete_requested = Signal(str)
    activated = Signal(str)

    def __init__(self, note: Note, store: JsonNoteStore) -> None:
        super().__init__()
        self.note_id = note.id
        self._store = store
        self.setWindowFlags(Qt.Tool | Qt.WindowStaysOnTopHint)
        self.setWindowTitle("Sticker")
        self.setStyleSheet(f"background: {note.color};")
        self.setGeometry(note.x, note.y, note.width, note.height)

        self._editor = QPlainTextEdit()
        self._editor.setPlainText(note.content)
        self._editor.setStyleSheet("border: none; font-size: 14px; color: #333;")
        self._editor.textChanged.connect(self._on_text_changed)

        self._mic = QPushButton("🎙")
        self._mic.setFixedSize(28, 28)
        self._mic.clicked.connect(lambda: self.dictation_requested.emit(self.note_id))
        new_btn = QPushButton("+")
        new_btn.setFixedSize(28, 28)
        new_btn.clicked.connect(lambda: self.new_note_requested.emit())
        delete_btn = QPushButton("×")
        delete_btn.setFixedSize(28, 28)
        delete_btn.clicked.connect(lambda: self.delete_requested.emit(self.note_id))

        self._message = QLabel("")
        self._message.setWordWrap(True)
        self._message.setStyleSheet("color: #B71C1C; font-size: 11px;")
        self._message.hide()

        toolbar = QHBoxLayout()
        toolbar.addWidget(new_btn)
        toolbar.addStretch(1)
        toolbar.addWidget(self._mic)
        toolbar.addWidget(delete_btn)

        layout = QVBoxLayout()
        layout.setContentsMargins(6, 6, 6, 6)
        layout.addLayout(toolbar)
        layout.addWidget(self._editor, 1)
        layout.addWidget(self._message)
        self.setLayout(layout)

        self._save_timer = QTimer(self)
        self._save_timer.setSingleShot(True)
        self._save_timer.timeout.connect(self._store.save_notes)
        self._message_timer = QTimer(self)
        self._message_timer.setSingleShot(True)
        self._message_timer.timeout.connect(self._message.hide)
        self.set_status(Status.COMPLETE.value)

    def set_content(self, text: str) -> None:
        """Show content written by the dictation pipeline."""
        if self._editor.toPlainText() == text:
            return
        self._editor.blockSignals(True)
        self._editor.setPlainText(text)
        self._editor.blockSignals(False)
        cursor = self._editor.textCursor()
        cursor.movePosition(cursor.MoveOperation.End)
        self._editor.setTextCursor(cursor)

    def set_status(self, status: str) -> None:
        look, tooltip = STATUS_LOOK.get(status, ("idle", "Dictate"))
        self._mic.setStyleSheet(MIC_STYLES[look])
        self._mic.setToolTip(tooltip)

    def show_error(self, text: str, hide_after_ms: int = 4000) -> None:
        self._message.setText(f"⚠️ {text}")
        self._message.show()
        self._message_timer.start(hide_after_ms)

    def _on_text_changed(self) -> None:
        self._store.set_content(self.note_id, self._editor.toPlainText())
        self._save_timer.start(SAVE_DELAY_MS)

    def _store_geometry(self) -> None:
        geom = self.geometry()
        if self._store.set_geometry(self.note_id, geom.x(), geom.y(), geom.width(), geom.height()):
            self._save_timer.start(SAVE_DELAY_MS)

    def moveEvent(self, event) -> None:  # noqa: ANN001, N802
        super().moveEvent(event)
        self._store_geometry()

    def resizeEvent(self, event) -> None:  # noqa: ANN001, N802
        super().resizeEvent(event)
        self._store_geometry()

    def changeEvent(self, event) -> None:  # noqa: ANN001, N802
        super().changeEvent(event)
        if event.type() == QEvent.ActivationChange and self.isActiveWindow():
            self.activated.emit(self.note_id)
