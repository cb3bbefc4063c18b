"""Tests for SoundDeviceRecorder."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from models import AudioChunk, CaptureSettings, Preferences
from recorder import SoundDeviceRecorder, capture_settings_for, list_input_devices


def _block(value: int = 1000, n_samples: int = 1600) -> np.ndarray:
    return np.full((n_samples, 1), value, dtype=np.int16)


# ---------------------------------------------------------------
# Settings derived from preferences
# ---------------------------------------------------------------

def test_capture_settings_default_device_and_unity_gain() -> None:
    settings = capture_settings_for(Preferences())
    assert settings.device is None
    assert settings.gain == pytest.approx(1.0)
    assert settings.sample_rate == 16000
    assert settings.channels == 1
    assert settings.blocksize == 8000


def test_capture_settings_device_selection_and_gain_clamp() -> None:
    assert capture_settings_for(Preferences(device_id="3")).device == 3
    assert capture_settings_for(Preferences(device_id="USB Mic")).device == "USB Mic"
    assert capture_settings_for(Preferences(sensitivity=1.0)).gain == pytest.approx(1.25)
    assert capture_settings_for(Preferences(sensitivity=-2)).gain == 0.0


@patch("recorder.sd")
def test_list_input_devices_skips_outputs(mock_sd: MagicMock) -> None:
    mock_sd.query_devices.return_value = [
        {"name": "Speakers", "max_input_channels": 0},
        {"name": "Mic", "max_input_channels": 1},
    ]
    assert list_input_devices() == [{"id": "1", "name": "Mic"}]


# ---------------------------------------------------------------
# Open / close
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_open_creates_stream_and_close_releases_it(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream
    recorder = SoundDeviceRecorder()

    async def scenario() -> None:
        await recorder.open(CaptureSettings(device=2), lambda chunk: None)
        assert recorder.is_open is True
        await recorder.close()

    asyncio.run(scenario())

    kwargs = mock_sd.InputStream.call_args.kwargs
    assert kwargs["device"] == 2
    assert kwargs["samplerate"] == 16000
    assert kwargs["blocksize"] == 8000
    mock_stream.start.assert_called_once()
    mock_stream.stop.assert_called_once()
    mock_stream.close.assert_called_once()
    assert recorder.is_open is False


@patch("recorder.sd")
def test_open_while_open_raises(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()
    recorder = SoundDeviceRecorder()

    async def scenario() -> None:
        await recorder.open(CaptureSettings(), lambda chunk: None)
        with pytest.raises(RuntimeError, match="already in use"):
            await recorder.open(CaptureSettings(), lambda chunk: None)
        await recorder.close()

    asyncio.run(scenario())
    assert mock_sd.InputStream.call_count == 1


@patch("recorder.sd")
def test_close_is_idempotent(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream
    recorder = SoundDeviceRecorder()

    async def scenario() -> None:
        await recorder.open(CaptureSettings(), lambda chunk: None)
        await recorder.close()
        await recorder.close()

    asyncio.run(scenario())
    mock_stream.close.assert_called_once()


@patch("recorder.sd")
def test_failed_start_leaves_device_free(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_stream.start.side_effect = OSError("device unavailable")
    mock_sd.InputStream.return_value = mock_stream
    recorder = SoundDeviceRecorder()

    async def scenario() -> None:
        with pytest.raises(OSError):
            await recorder.open(CaptureSettings(), lambda chunk: None)

    asyncio.run(scenario())
    mock_stream.close.assert_called_once()
    assert recorder.is_open is False


def test_open_raises_without_sounddevice(monkeypatch) -> None:  # noqa: ANN001
    import recorder as rec_mod
    monkeypatch.setattr(rec_mod, "sd", None)

    recorder = SoundDeviceRecorder()
    with pytest.raises(RuntimeError, match="sounddevice is not installed"):
        asyncio.run(recorder.open(CaptureSettings(), lambda chunk: None))


# ---------------------------------------------------------------
# Trial access for permission checks
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_trial_access_always_closes_stream(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream
    recorder = SoundDeviceRecorder()

    async def scenario() -> None:
        with pytest.raises(ValueError):
            async with recorder.trial_access():
                raise ValueError("boom")

    asyncio.run(scenario())
    mock_stream.close.assert_called_once()
    mock_stream.start.assert_not_called()


@patch("recorder.sd")
def test_trial_access_propagates_open_failure(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.side_effect = PermissionError("denied")
    recorder = SoundDeviceRecorder()

    async def scenario() -> None:
        async with recorder.trial_access():
            pass

    with pytest.raises(PermissionError):
        asyncio.run(scenario())


# ---------------------------------------------------------------
# Audio callback delivers chunks to the loop
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_callback_delivers_chunks_in_order(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()
    recorder = SoundDeviceRecorder()
    chunks: list[AudioChunk] = []

    async def scenario() -> None:
        await recorder.open(CaptureSettings(), chunks.append)
        recorder._on_audio(_block(1), frames=1600, time_info=None, status=None)
        recorder._on_audio(_block(2), frames=1600, time_info=None, status=None)
        await asyncio.sleep(0)
        await recorder.close()

    asyncio.run(scenario())

    assert len(chunks) == 2
    assert chunks[0].size == 1600 * 2
    assert chunks[0].mime_type == "audio/L16;rate=16000;channels=1"
    assert np.frombuffer(chunks[0].data, dtype=np.int16)[0] == 1
    assert np.frombuffer(chunks[1].data, dtype=np.int16)[0] == 2


@patch("recorder.sd")
def test_callback_applies_gain(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()
    recorder = SoundDeviceRecorder()
    chunks: list[AudioChunk] = []

    async def scenario() -> None:
        await recorder.open(CaptureSettings(gain=0.5), chunks.append)
        recorder._on_audio(_block(1000), frames=1600, time_info=None, status=None)
        await asyncio.sleep(0)
        await recorder.close()

    asyncio.run(scenario())
    assert np.frombuffer(chunks[0].data, dtype=np.int16)[0] == 500


@patch("recorder.sd")
def test_callback_after_close_is_noop(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()
    recorder = SoundDeviceRecorder()
    chunks: list[AudioChunk] = []

    async def scenario() -> None:
        await recorder.open(CaptureSettings(), chunks.append)
        await recorder.close()
        recorder._on_audio(_block(), frames=1600, time_info=None, status=None)
        await asyncio.sleep(0)

    asyncio.run(scenario())
    assert chunks == []
