"""Temporary on-disk storage for recorded audio."""

from __future__ import annotations

import logging
import tempfile
import time
from pathlib import Path

from models import EncodedPayload, SaveResult

logger = logging.getLogger("stickers")

EXTENSIONS = {
    "audio/webm": ".webm",
    "audio/ogg": ".ogg",
    "audio/mp4": ".m4a",
    "audio/mpeg": ".mp3",
    "audio/wav": ".wav",
    "audio/l16": ".pcm",
}


def extension_for(mime_type: str) -> str:
    base = mime_type.split(";", 1)[0].strip().lower()
    return EXTENSIONS.get(base, ".bin")


class TempAudioStore:
    def __init__(self, temp_dir: Path | None = None) -> None:
        self._temp_dir = temp_dir or Path(tempfile.gettempdir()) / "sticker-audio-recordings"
        self._temp_dir.mkdir(parents=True, exist_ok=True)

    @property
    def temp_dir(self) -> Path:
        return self._temp_dir

    def save_recorded_audio(self, payload: EncodedPayload) -> SaveResult:
        filename = f"recording_{int(time.time() * 1000)}{extension_for(payload.mime_type)}"
        path = self._temp_dir / filename
        try:
            path.write_bytes(payload.data)
        except OSError as exc:
            logger.error("Error saving audio: %s", exc)
            return SaveResult(success=False, error=str(exc))
        logger.debug("Saved %d bytes of audio to %s", payload.size_bytes, path)
        return SaveResult(success=True, file_path=str(path))

    def delete_temp_audio(self, file_path: str) -> bool:
        path = Path(file_path).resolve()
        if not path.is_relative_to(self._temp_dir.resolve()):
            logger.warning("Refusing to delete audio outside %s: %s", self._temp_dir, file_path)
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.error("Error deleting audio file %s: %s", file_path, exc)
            return False
        return True

    def cleanup_temp_audio(self, max_age_s: float = 24 * 60 * 60) -> int:
        now = time.time()
        deleted = 0
        for path in self._temp_dir.iterdir():
            try:
                if path.is_file() and now - path.stat().st_mtime > max_age_s:
                    path.unlink()
                    deleted += 1
            except OSError as exc:
                logger.warning("Could not remove old recording %s: %s", path, exc)
        if deleted:
            logger.info("Cleaned up %d old audio files", deleted)
        return deleted
