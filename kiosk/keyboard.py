"""On-screen keyboard open/close state with idle auto-close."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from kiosk.host import KioskHost

LOGGER = logging.getLogger(__name__)

KEYBOARD_IDLE_CLOSE_SECONDS = 30.0
KEYBOARD_AUTO_CLOSED_EVENT = "keyboard-auto-closed"

CloseReason = Literal["manual", "auto"]


class KeyboardController:
    def __init__(
        self,
        host: KioskHost,
        *,
        idle_close_seconds: float = KEYBOARD_IDLE_CLOSE_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        self.host = host
        self.idle_close_seconds = idle_close_seconds
        self.logger = logger or LOGGER
        self._open = False
        self._opened_at: float | None = None
        self._last_used: float | None = None

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def last_used(self) -> float | None:
        return self._last_used

    def show(self, now: float) -> bool:
        """Open the keyboard. Returns False if it was already open."""
        if self._open:
            self._last_used = now
            return False
        self._call_host("show_keyboard")
        self._open = True
        self._opened_at = now
        self._last_used = now
        self.logger.debug("[keyboard] Opened")
        return True

    def register_keystroke(self, now: float, key: str | None = None) -> None:
        """Refresh the idle timer and forward ``key`` to the active view."""
        if not self._open:
            return
        self._last_used = now
        if key:
            self._call_host("send_key", key)

    def close(self, reason: CloseReason, now: float) -> bool:
        if not self._open:
            return False
        self._call_host("hide_keyboard")
        self._open = False
        self._opened_at = None
        self.logger.debug("[keyboard] Closed (%s)", reason)
        if reason == "auto":
            self._call_host("notify_views", KEYBOARD_AUTO_CLOSED_EVENT)
        return True

    def auto_close_due(self, now: float) -> bool:
        if not self._open or self._last_used is None:
            return False
        return now - self._last_used > self.idle_close_seconds

    def _call_host(self, method: str, *args: object) -> None:
        try:
            getattr(self.host, method)(*args)
        except Exception as exc:
            self.logger.error("[keyboard] Host %s failed: %s", method, exc)
