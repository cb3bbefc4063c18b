from __future__ import annotations

import json
from pathlib import Path

from config import JsonConfigStore
from models import Preferences


def test_config_read_write(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    store = JsonConfigStore(path=path)

    assert store.get_hotkey() == "Key.f9"
    assert store.get_model() == "qwen3-asr-flash"

    store.set_api_key("abc")
    store.set_preference("hotkey", "Key.f8")

    reloaded = JsonConfigStore(path=path)
    assert reloaded.get_api_key() == "abc"
    assert reloaded.get_hotkey() == "Key.f8"


def test_api_key_falls_back_to_environment(tmp_path: Path, monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setenv("DASHSCOPE_API_KEY", "from-env")
    assert JsonConfigStore(path=tmp_path / "config.json").get_api_key() == "from-env"


def test_default_preferences_snapshot(tmp_path: Path) -> None:
    store = JsonConfigStore(path=tmp_path / "config.json")
    assert store.get_preferences() == Preferences(
        device_id="", sensitivity=0.8, max_duration_s=180, append_mode=True, language="en"
    )


def test_values_are_coerced_and_clamped(tmp_path: Path) -> None:
    store = JsonConfigStore(path=tmp_path / "config.json")

    assert store.set_preference("recording_sensitivity", "1.7") is True
    assert store.set_preference("recording_timeout_s", 2) is True
    assert store.set_preference("text_append_mode", "false") is True
    assert store.set_preferences({"language": "de", "microphone_device": 4, "bogus": 1}) is True

    prefs = store.get_preferences()
    assert prefs.sensitivity == 1.0
    assert prefs.max_duration_s == 5
    assert prefs.append_mode is False
    assert prefs.language == "de"
    assert prefs.device_id == "4"


def test_invalid_values_and_unknown_keys_are_rejected(tmp_path: Path) -> None:
    store = JsonConfigStore(path=tmp_path / "config.json")

    assert store.set_preference("recording_timeout_s", "soon") is False
    assert store.set_preference("theme", "dark") is False
    assert store.get_preferences().max_duration_s == 180


def test_saving_keeps_a_backup(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    store = JsonConfigStore(path=path)
    store.set_preference("language", "fr")
    store.set_preference("language", "es")

    backup = json.loads((tmp_path / "config.json.bak").read_text(encoding="utf-8"))
    assert backup["language"] == "fr"


def test_reset_to_defaults(tmp_path: Path) -> None:
    store = JsonConfigStore(path=tmp_path / "config.json")
    store.set_preference("language", "fr")
    store.reset_to_defaults()
    assert store.get_preferences().language == "en"


def test_config_invalid_json_fallback(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{invalid", encoding="utf-8")

    store = JsonConfigStore(path=path)
    assert store.get_hotkey() == "Key.f9"
    assert store.get_preferences().language == "en"
