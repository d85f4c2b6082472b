"""
Rotation engine: the one-second master tick

Each tick walks an ordered decision list and stops at the first branch that
applies:

1. keyboard auto-close
2. lockout timers (a locked kiosk does nothing else, tick after tick)
3. display-woke sentinel
4. media gate (playing, or stopped under 30 s ago)
5. recent-activity gate (input within the last 60 s)
6. auto-rotation to the next site with duration > 0
7. home return, which always asks via the inactivity prompt first

The engine is also the only component that attaches views; the lockout
state machine's detach-all is the single exception.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Literal

from kiosk.dialogs import ActiveDialog, DialogResponse, apply_extension

if TYPE_CHECKING:
    from kiosk.activity import ActivityTracker
    from kiosk.config import KioskConfig
    from kiosk.dialogs import DialogCoordinator
    from kiosk.host import KioskHost
    from kiosk.keyboard import KeyboardController
    from kiosk.lockout import LockoutStateMachine
    from kiosk.session import RuntimeSession
    from kiosk.sites import SiteRegistry, ViewRef

LOGGER = logging.getLogger(__name__)

TICK_INTERVAL_SECONDS = 1.0

TickOutcome = Literal[
    "keyboard_closed",
    "locked",
    "wake_locked",
    "media_hold",
    "activity_hold",
    "rotated",
    "rotation_reset",
    "inactivity_prompt",
    "idle",
]


class RotationEngine:
    def __init__(
        self,
        *,
        session: RuntimeSession,
        config: KioskConfig,
        registry: SiteRegistry,
        tracker: ActivityTracker,
        dialogs: DialogCoordinator,
        keyboard: KeyboardController,
        lockout: LockoutStateMachine,
        host: KioskHost,
        logger: logging.Logger | None = None,
    ) -> None:
        self.session = session
        self.config = config
        self.registry = registry
        self.tracker = tracker
        self.dialogs = dialogs
        self.keyboard = keyboard
        self.lockout = lockout
        self.host = host
        self.logger = logger or LOGGER
        self.home_index = registry.home_view_index(config.home_tab_index)
        if config.home_enabled and self.home_index is None:
            self.logger.warning(
                "[rotation] homeTabIndex %d is not a visible site; home return disabled", config.home_tab_index
            )
        lockout.set_unlock_callback(self.restore_active_view)

    # ------------------------------------------------------------------
    # Master tick
    # ------------------------------------------------------------------

    def tick(self, now: float, wall_now: datetime) -> TickOutcome:
        session = self.session
        self._expire_extension(now)

        if self.keyboard.auto_close_due(now):
            self.keyboard.close("auto", now)
            return "keyboard_closed"

        self.lockout.check_timers(now, wall_now)
        if session.is_locked_out:
            self.lockout.discard_wake_signal()
            return "locked"

        if self.lockout.check_wake_signal(now):
            return "wake_locked"

        if self.tracker.media_hold_active(now):
            return "media_hold"

        if self.tracker.is_user_recently_active(now):
            return "activity_hold"

        if self._rotation_applies(now):
            target = self.registry.next_rotating_index(session.current_visible_index)
            if target is None:
                session.site_start_time = now
                return "rotation_reset"
            self.logger.info("[rotation] Rotating %d -> %d", session.current_visible_index, target)
            self.show_visible(target, now)
            session.inactivity_extension_until = None
            return "rotated"

        if self._home_return_applies(now):
            self.logger.info(
                "[rotation] Idle %.0fs away from home; asking before returning", self.tracker.idle_duration(now)
            )
            self.dialogs.open("inactivity", now)
            return "inactivity_prompt"

        return "idle"

    def _expire_extension(self, now: float) -> None:
        until = self.session.inactivity_extension_until
        if until is None or now < until:
            return
        self.logger.info("[rotation] Inactivity extension ended")
        self.session.inactivity_extension_until = None
        self.session.reset_activity_baselines(now)
        self.session.site_start_time = now

    def _rotation_applies(self, now: float) -> bool:
        session = self.session
        if session.showing_hidden or len(self.registry.visible) <= 1:
            return False
        if self.dialogs.is_open() or session.extension_active(now):
            return False
        view = self.registry.visible_view(session.current_visible_index)
        if view is None or not view.site.is_rotating:
            return False
        return now - session.site_start_time >= view.duration

    def _home_return_applies(self, now: float) -> bool:
        session = self.session
        if self.home_index is None:
            return False
        if not session.showing_hidden:
            view = self.registry.visible_view(session.current_visible_index)
            if view is None or not view.site.is_manual or session.current_visible_index == self.home_index:
                return False
        if session.extension_active(now) or self.dialogs.is_open():
            return False
        return self.tracker.idle_duration(now) >= self.config.inactivity_timeout_seconds

    # ------------------------------------------------------------------
    # Surface ownership
    # ------------------------------------------------------------------

    @property
    def current_view(self) -> ViewRef | None:
        if self.session.showing_hidden:
            return self.registry.hidden_view(self.session.current_hidden_index)
        return self.registry.visible_view(self.session.current_visible_index)

    def start(self, now: float) -> bool:
        """Attach the first view: home when configured, else the first site."""
        if not self.registry.visible:
            self.logger.warning("[rotation] No visible sites configured; showing placeholder")
            if not self.session.is_locked_out:
                self._call_host("show_placeholder")
            return False
        index = self.home_index if self.home_index is not None else 0
        if self.session.is_locked_out:
            # shown by restore_active_view after unlock
            self.session.current_visible_index = index
            return False
        return self.show_visible(index, now)

    def show_visible(self, index: int, now: float, *, manual: bool = False) -> bool:
        if self.session.is_locked_out:
            return False
        view = self.registry.visible_view(index)
        if view is None:
            self.logger.warning("[rotation] No visible view at index %d", index)
            return False
        session = self.session
        session.showing_hidden = False
        session.current_hidden_index = None
        session.current_visible_index = index
        session.site_start_time = now
        if manual:
            session.manual_navigation_mode = True
        self._attach(view)
        return True

    def show_hidden(self, index: int, now: float) -> bool:
        if self.session.is_locked_out:
            return False
        view = self.registry.hidden_view(index)
        if view is None:
            return False
        self.session.showing_hidden = True
        self.session.current_hidden_index = index
        self.session.site_start_time = now
        self._attach(view)
        return True

    def leave_hidden(self, now: float) -> bool:
        """Return to normal rotation on the view that was showing before."""
        if self.session.is_locked_out or not self.session.showing_hidden:
            return False
        self.session.showing_hidden = False
        self.session.current_hidden_index = None
        return self.show_visible(self.session.current_visible_index, now)

    def navigate(self, direction: int, now: float) -> bool:
        """Manual swipe/key navigation through every visible site."""
        if self.session.is_locked_out:
            return False
        if self.session.showing_hidden:
            self.logger.debug("[rotation] Ignoring navigation inside hidden stack")
            return False
        target = self.registry.step_visible_index(self.session.current_visible_index, direction)
        if target is None or target == self.session.current_visible_index:
            return False
        return self.show_visible(target, now, manual=True)

    def goto_tab(self, tab_index: int, now: float) -> bool:
        if self.session.is_locked_out:
            return False
        view = self.registry.view_for_tab(tab_index)
        if view is None:
            self.logger.warning("[rotation] Unknown tab index %d", tab_index)
            return False
        if view.hidden:
            self.logger.warning("[rotation] Tab %d is hidden; use the PIN gate", tab_index)
            return False
        return self.show_visible(view.view_index, now, manual=True)

    def return_home(self, now: float) -> bool:
        if self.session.is_locked_out or self.home_index is None:
            return False
        session = self.session
        session.inactivity_extension_until = None
        session.manual_navigation_mode = False
        if not session.showing_hidden and session.current_visible_index == self.home_index:
            session.site_start_time = now
            return True
        self.logger.info("[rotation] Returning to home site")
        return self.show_visible(self.home_index, now)

    def restore_active_view(self, now: float) -> None:
        """Re-attach whatever was showing before a lock, or fall back to rotation."""
        view = self.current_view
        if view is not None:
            self.session.site_start_time = now
            self._attach(view)
            return
        self.logger.warning(
            "[rotation] Active view (hidden=%s, visible=%d, hidden_index=%s) no longer exists; falling back",
            self.session.showing_hidden,
            self.session.current_visible_index,
            self.session.current_hidden_index,
        )
        fallback = self.registry.first_rotating_index()
        if fallback is None:
            self._call_host("show_placeholder")
            return
        self.show_visible(fallback, now)

    # ------------------------------------------------------------------
    # Dialog outcomes
    # ------------------------------------------------------------------

    def open_pause_dialog(self, now: float) -> ActiveDialog | None:
        if self.session.is_locked_out:
            return None
        return self.dialogs.open("pause", now)

    def resolve_inactivity(self, response: DialogResponse, now: float) -> None:
        if response.choice == "present":
            self.session.reset_activity_baselines(now)
        elif response.choice == "extend" and response.minutes:
            until = apply_extension(self.session, now, response.minutes)
            self.logger.info("[rotation] Inactivity extended for %.0f minutes", (until - now) / 60)
        elif response.choice in {"return_home", "timeout"}:
            self.return_home(now)

    def resolve_pause(self, response: DialogResponse, now: float) -> None:
        if response.choice == "extend" and response.minutes:
            until = apply_extension(self.session, now, response.minutes)
            self.logger.info("[rotation] Paused for %.0f minutes", (until - now) / 60)

    def _attach(self, view: ViewRef) -> None:
        self._call_host("attach_view", view)

    def _call_host(self, method: str, *args: object) -> None:
        try:
            getattr(self.host, method)(*args)
        except Exception as exc:
            self.logger.error("[rotation] Host %s failed: %s", method, exc)
