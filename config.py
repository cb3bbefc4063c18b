"""Simple JSON-based config store for dictation preferences."""

from __future__ import annotations

import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Mapping

from models import Preferences

logger = logging.getLogger("stickers")

DEFAULTS: dict[str, Any] = {
    "microphone_device": "",  # empty means system default
    "recording_sensitivity": 0.8,
    "recording_timeout_s": 180,
    "text_append_mode": True,
    "language": "en",
    "api_key": "",
    "model": "qwen3-asr-flash",
    "hotkey": "Key.f9",
}


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "stickers" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get(self, key: str) -> Any:
        return self._read_all().get(key, DEFAULTS.get(key))

    def get_api_key(self) -> str:
        return str(self.get("api_key") or os.getenv("DASHSCOPE_API_KEY", ""))

    def set_api_key(self, key: str) -> None:
        self.set_preference("api_key", key)

    def get_hotkey(self) -> str:
        return str(self.get("hotkey"))

    def get_model(self) -> str:
        return str(self.get("model"))

    def get_preferences(self) -> Preferences:
        data = self._read_all()
        return Preferences(
            device_id=str(data["microphone_device"]),
            sensitivity=float(data["recording_sensitivity"]),
            max_duration_s=int(data["recording_timeout_s"]),
            append_mode=bool(data["text_append_mode"]),
            language=str(data["language"]),
        )

    def set_preference(self, key: str, value: Any) -> bool:
        if key not in DEFAULTS:
            logger.warning("Unknown preference: %s", key)
            return False
        try:
            value = self._coerce(key, value)
        except (TypeError, ValueError) as exc:
            logger.warning("Invalid value for preference %s: %s", key, exc)
            return False
        data = self._read_all()
        data[key] = value
        return self._write_all(data)

    def set_preferences(self, values: Mapping[str, Any]) -> bool:
        data = self._read_all()
        for key, value in values.items():
            if key not in DEFAULTS:
                continue
            try:
                data[key] = self._coerce(key, value)
            except (TypeError, ValueError) as exc:
                logger.warning("Invalid value for preference %s: %s", key, exc)
        return self._write_all(data)

    def reset_to_defaults(self) -> bool:
        return self._write_all(dict(DEFAULTS))

    @staticmethod
    def _coerce(key: str, value: Any) -> Any:
        default = DEFAULTS[key]
        if isinstance(default, bool):
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
        if isinstance(default, (int, float)):
            number = float(value)
            if number != number:  # NaN
                raise ValueError(f"cannot convert {value!r} to a number")
            if key == "recording_sensitivity":
                return max(0.0, min(1.0, number))
            if key == "recording_timeout_s":
                return int(max(5, min(600, number)))
            return type(default)(number)
        return str(value)

    def _read_all(self) -> dict:
        data = dict(DEFAULTS)
        if not self._path.exists():
            return data
        try:
            saved = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to load config: %s", exc)
            return data
        if isinstance(saved, dict):
            for key, value in saved.items():
                if key not in DEFAULTS:
                    continue
                try:
                    data[key] = self._coerce(key, value)
                except (TypeError, ValueError):
                    logger.warning("Ignoring invalid saved value for %s", key)
        return data

    def _write_all(self, data: dict) -> bool:
        try:
            if self._path.exists():
                shutil.copyfile(self._path, self._path.with_name(self._path.name + ".bak"))
            self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning("Failed to save config: %s", exc)
            return False
        return True
