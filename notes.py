"""JSON-backed sticker note store."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, replace
from pathlib import Path
from typing import Callable, Optional

from models import Note

logger = logging.getLogger("stickers")

ContentCallback = Callable[[str, str], None]


class JsonNoteStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "stickers" / "notes.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._notes: dict[str, Note] = {}
        self.on_content_applied: Optional[ContentCallback] = None
        self.load()

    def load(self) -> None:
        with self._lock:
            self._notes = {}
            if not self._path.exists():
                return
            try:
                raw = json.loads(self._path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError) as exc:
                logger.warning("Failed to load notes: %s", exc)
                return
            for item in raw if isinstance(raw, list) else []:
                if isinstance(item, dict) and item.get("id"):
                    note = Note.from_dict(item)
                    self._notes[note.id] = note

    def save_notes(self) -> None:
        """Write every note to disk, replacing the file in one step.

        Safe to call from the UI thread and the dictation loop at once.
        Raises ``OSError`` if the file cannot be written; the previous file
        is then left as it was.
        """
        with self._lock:
            data = [asdict(note) for note in self._notes.values()]
            tmp_path = self._path.with_suffix(".json.tmp")
            try:
                tmp_path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
                tmp_path.replace(self._path)
            except OSError:
                tmp_path.unlink(missing_ok=True)
                raise

    def list_notes(self) -> list[Note]:
        with self._lock:
            return [replace(note) for note in self._notes.values()]

    def get_note(self, note_id: str) -> Optional[Note]:
        with self._lock:
            note = self._notes.get(note_id)
            return replace(note) if note else None

    def create_note(self, **fields) -> Note:
        note = Note(**fields)
        with self._lock:
            self._notes[note.id] = note
        self.save_notes()
        return replace(note)

    def delete_note(self, note_id: str) -> bool:
        with self._lock:
            removed = self._notes.pop(note_id, None)
        if removed is None:
            return False
        self.save_notes()
        return True

    def set_content(self, note_id: str, text: str) -> bool:
        """Record an edit typed by the user; does not fire ``on_content_applied``."""
        with self._lock:
            note = self._notes.get(note_id)
            if note is None:
                return False
            note.content = text
            return True

    def set_geometry(self, note_id: str, x: int, y: int, width: int, height: int) -> bool:
        with self._lock:
            note = self._notes.get(note_id)
            if note is None:
                return False
            note.x, note.y, note.width, note.height = x, y, width, height
            return True

    def get_note_content(self, note_id: str) -> Optional[str]:
        with self._lock:
            note = self._notes.get(note_id)
            return note.content if note else None

    def apply_note_content(self, note_id: str, text: str) -> bool:
        with self._lock:
            note = self._notes.get(note_id)
            if note is None:
                return False
            note.content = text
        if self.on_content_applied:
            self.on_content_applied(note_id, text)
        return True
