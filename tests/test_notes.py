from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from notes import JsonNoteStore


def test_notes_persist_across_reload(tmp_path: Path) -> None:
    path = tmp_path / "notes.json"
    store = JsonNoteStore(path=path)
    note = store.create_note(content="buy milk", color="#C5E1A5")
    store.set_geometry(note.id, 10, 20, 300, 200)
    store.save_notes()

    reloaded = JsonNoteStore(path=path)
    loaded = reloaded.get_note(note.id)
    assert loaded is not None
    assert loaded.content == "buy milk"
    assert (loaded.x, loaded.y, loaded.width, loaded.height) == (10, 20, 300, 200)
    assert loaded.color == "#C5E1A5"


def test_apply_content_fires_hook(tmp_path: Path) -> None:
    store = JsonNoteStore(path=tmp_path / "notes.json")
    note = store.create_note()
    applied: list[tuple[str, str]] = []
    store.on_content_applied = lambda note_id, text: applied.append((note_id, text))

    assert store.apply_note_content(note.id, "dictated") is True
    assert store.get_note_content(note.id) == "dictated"
    assert applied == [(note.id, "dictated")]


def test_unknown_note_is_reported(tmp_path: Path) -> None:
    store = JsonNoteStore(path=tmp_path / "notes.json")

    assert store.get_note_content("missing") is None
    assert store.apply_note_content("missing", "text") is False
    assert store.set_content("missing", "text") is False


def test_delete_note(tmp_path: Path) -> None:
    store = JsonNoteStore(path=tmp_path / "notes.json")
    note = store.create_note()

    assert store.delete_note(note.id) is True
    assert store.delete_note(note.id) is False
    assert JsonNoteStore(path=tmp_path / "notes.json").list_notes() == []


def test_corrupt_file_starts_empty(tmp_path: Path) -> None:
    path = tmp_path / "notes.json"
    path.write_text("not json", encoding="utf-8")
    assert JsonNoteStore(path=path).list_notes() == []


def test_concurrent_saves_leave_valid_file(tmp_path: Path) -> None:
    path = tmp_path / "notes.json"
    store = JsonNoteStore(path=path)
    note = store.create_note()

    def edit_and_save(worker: int) -> None:
        for i in range(20):
            store.set_content(note.id, f"worker {worker} edit {i} " + "x" * 500)
            store.save_notes()

    threads = [threading.Thread(target=edit_and_save, args=(n,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    saved = json.loads(path.read_text(encoding="utf-8"))
    assert [item["id"] for item in saved] == [note.id]
    assert saved[0]["content"] == store.get_note_content(note.id)
    assert list(tmp_path.iterdir()) == [path]


def test_failed_save_keeps_previous_file(tmp_path: Path, monkeypatch) -> None:  # noqa: ANN001
    path = tmp_path / "notes.json"
    store = JsonNoteStore(path=path)
    note = store.create_note(content="saved")
    store.set_content(note.id, "unsaved")

    def refuse(self, target):  # noqa: ANN001, ANN202
        raise OSError("read-only filesystem")

    monkeypatch.setattr(Path, "replace", refuse)
    with pytest.raises(OSError):
        store.save_notes()
    monkeypatch.undo()

    assert JsonNoteStore(path=path).get_note_content(note.id) == "saved"
    assert list(tmp_path.iterdir()) == [path]
