"""Microphone permission gate."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from errors import PERMISSION_DENIED, user_message
from interfaces import CaptureDevice
from models import Status, StatusEvent

logger = logging.getLogger("stickers")

StatusCallback = Callable[[StatusEvent], None]
ErrorCallback = Callable[[str, str], None]


class PermissionGate:
    """Checks microphone access by briefly acquiring the capture device.

    Every trial acquisition goes through ``device.trial_access()``, which
    releases the device on exit whatever the outcome.
    """

    def __init__(
        self,
        device: CaptureDevice,
        on_status: Optional[StatusCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._device = device
        self._on_status = on_status
        self._on_error = on_error

    async def check_permission(self) -> bool:
        try:
            async with self._device.trial_access():
                return True
        except Exception as exc:
            logger.warning("Microphone permission check failed: %s", exc)
            return False

    async def request_permission(self) -> bool:
        self._emit(Status.REQUESTING_PERMISSION)
        try:
            async with self._device.trial_access():
                pass
        except Exception as exc:
            logger.error("Microphone permission request failed: %s", exc)
            self._emit(Status.PERMISSION_DENIED, {"reason": str(exc)})
            if self._on_error:
                self._on_error(PERMISSION_DENIED, user_message(PERMISSION_DENIED))
            return False
        self._emit(Status.PERMISSION_GRANTED)
        return True

    def _emit(self, status: Status, data: Optional[dict] = None) -> None:
        if self._on_status:
            self._on_status(StatusEvent(status.value, data or {}))
