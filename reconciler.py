"""Apply a finished transcript to its target note."""

from __future__ import annotations

import asyncio
import logging

from errors import SAVE_FAILURE, PipelineError
from interfaces import NoteStore

logger = logging.getLogger("stickers")


def merge_text(existing: str, transcript: str, append_mode: bool) -> str:
    """Combine note content with a transcript.

    In append mode a single space separates the two, unless the existing text
    is empty or already ends in whitespace. Otherwise the transcript replaces
    the content.
    """
    transcript = transcript.strip()
    if not append_mode or not existing:
        return transcript
    if existing[-1].isspace():
        return existing + transcript
    return f"{existing} {transcript}"


class InsertionReconciler:
    def __init__(self, notes: NoteStore) -> None:
        self._notes = notes

    async def apply(self, note_id: str, transcript: str, append_mode: bool) -> bool:
        """Write ``transcript`` into the note and save once.

        Returns False, leaving every note untouched, when the note no longer
        exists. If the save fails the note gets its previous content back and
        ``PipelineError(SAVE_FAILURE)`` is raised.
        """
        existing = self._notes.get_note_content(note_id)
        if existing is None:
            logger.error("Note %s no longer exists, transcript dropped", note_id)
            return False
        merged = merge_text(existing, transcript, append_mode)
        if not self._notes.apply_note_content(note_id, merged):
            logger.error("Note %s was deleted while applying transcript", note_id)
            return False
        try:
            await asyncio.to_thread(self._notes.save_notes)
        except OSError as exc:
            logger.error("Failed to save note %s, restoring previous content: %s", note_id, exc)
            self._notes.apply_note_content(note_id, existing)
            raise PipelineError(SAVE_FAILURE, f"Failed to save note {note_id}: {exc}") from exc
        return True
