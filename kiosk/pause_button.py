"""Floating pause button visibility.

The button is offered only on rotating sites (duration > 0): manual and
hidden sites never rotate, so there is nothing to pause. Each interaction
shows or refreshes it and it hides itself after five quiet seconds.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kiosk.config import KioskConfig
    from kiosk.host import KioskHost
    from kiosk.sites import ViewRef

LOGGER = logging.getLogger(__name__)

PAUSE_BUTTON_HIDE_DELAY_SECONDS = 5.0


class PauseButtonController:
    def __init__(
        self,
        host: KioskHost,
        config: KioskConfig,
        *,
        hide_delay: float = PAUSE_BUTTON_HIDE_DELAY_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        self.host = host
        self.config = config
        self.hide_delay = hide_delay
        self.logger = logger or LOGGER
        self._visible = False
        self._shown_at: float | None = None

    @property
    def visible(self) -> bool:
        return self._visible

    def qualifies(self, view: ViewRef | None, *, locked: bool, showing_hidden: bool) -> bool:
        if not self.config.enable_pause_button or locked or showing_hidden or view is None:
            return False
        return view.site.is_rotating

    def on_interaction(self, now: float, view: ViewRef | None, *, locked: bool, showing_hidden: bool) -> None:
        if not self.qualifies(view, locked=locked, showing_hidden=showing_hidden):
            self.hide()
            return
        if not self._visible:
            self.logger.debug("[pause-btn] Showing pause button")
            self.host.set_pause_button_visible(True)
            self._visible = True
        self._shown_at = now

    def tick(self, now: float) -> None:
        if self._visible and self._shown_at is not None and now - self._shown_at >= self.hide_delay:
            self.logger.debug("[pause-btn] Auto-hiding after %.0fs without interaction", self.hide_delay)
            self.hide()

    def hide(self) -> None:
        if not self._visible:
            return
        self.host.set_pause_button_visible(False)
        self._visible = False
        self._shown_at = None
