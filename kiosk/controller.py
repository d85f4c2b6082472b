"""
Kiosk session controller

Owns the RuntimeSession and every component working on it, and runs them on
a single asyncio loop:

- a ticker task enqueues ``Tick`` once per second,
- a media task polls the MediaProbe every three seconds in a worker thread
  and enqueues ``MediaStateChanged``,
- other threads (HTTP server, MQTT callbacks) hand events in through
  ``post()``, which returns a future resolved with the dispatch result.

Events are processed one at a time, so handlers never run concurrently with
the master tick and no component needs a lock.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from kiosk import systemd_notify
from kiosk.activity import ActivityTracker
from kiosk.config import KioskConfig
from kiosk.dialogs import DialogChoice, DialogCoordinator, DialogKind, DialogResponse
from kiosk.hidden import HiddenSiteGate, PinStore
from kiosk.host import KioskHost
from kiosk.keyboard import KeyboardController
from kiosk.lockout import LockoutStateMachine, SentinelFiles
from kiosk.media import MEDIA_POLL_INTERVAL_SECONDS, MediaProbe, NullMediaProbe
from kiosk.pause_button import PauseButtonController
from kiosk.power import PowerMenu, available_actions
from kiosk.rotation import TICK_INTERVAL_SECONDS, RotationEngine
from kiosk.session import RuntimeSession
from kiosk.sites import SiteRegistry

LOGGER = logging.getLogger("kiosk.controller")

SwipeDirection = Literal["left", "right"]


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class UserActivity:
    kind: str = "pointer"


@dataclass(frozen=True)
class ContentNavigated:
    user_initiated: bool
    url: str | None = None


@dataclass(frozen=True)
class MediaStateChanged:
    playing: bool


@dataclass(frozen=True)
class DialogAnswered:
    kind: DialogKind
    choice: DialogChoice
    minutes: int | None = None


@dataclass(frozen=True)
class PasswordSubmitted:
    value: str


@dataclass(frozen=True)
class PinSubmitted:
    value: str


@dataclass(frozen=True)
class ToggleHidden:
    pass


@dataclass(frozen=True)
class Navigate:
    direction: int


@dataclass(frozen=True)
class Swiped:
    """Horizontal swipe on a content view; ``direction`` is where the finger moved."""

    direction: SwipeDirection


@dataclass(frozen=True)
class GotoTab:
    tab_index: int


@dataclass(frozen=True)
class GoHome:
    pass


@dataclass(frozen=True)
class PauseRequested:
    pass


@dataclass(frozen=True)
class KeyboardShow:
    pass


@dataclass(frozen=True)
class Keystroke:
    key: str | None = None


@dataclass(frozen=True)
class KeyboardClose:
    pass


@dataclass(frozen=True)
class PowerRequested:
    action: str


@dataclass(frozen=True)
class ForceLock:
    pass


@dataclass(frozen=True)
class DescribeState:
    pass


KioskEvent = (
    Tick
    | UserActivity
    | ContentNavigated
    | MediaStateChanged
    | DialogAnswered
    | PasswordSubmitted
    | PinSubmitted
    | ToggleHidden
    | Navigate
    | Swiped
    | GotoTab
    | GoHome
    | PauseRequested
    | KeyboardShow
    | Keystroke
    | KeyboardClose
    | PowerRequested
    | ForceLock
    | DescribeState
)

StateCallback = Callable[[dict[str, Any]], None]


class KioskController:
    def __init__(
        self,
        config: KioskConfig,
        host: KioskHost,
        *,
        pin_store: PinStore,
        sentinels: SentinelFiles,
        media_probe: MediaProbe | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = datetime.now,
        on_state_change: StateCallback | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.host = host
        self.logger = logger or LOGGER
        self._clock = clock
        self._wall_clock = wall_clock
        self._on_state_change = on_state_change
        self.media_probe: MediaProbe = media_probe or NullMediaProbe()

        now = clock()
        self.session = RuntimeSession.started_at(now)
        self.registry = SiteRegistry.load(config.tabs)
        self.dialogs = DialogCoordinator(host)
        self.tracker = ActivityTracker(self.session, self.dialogs)
        self.keyboard = KeyboardController(host)
        self.lockout = LockoutStateMachine(self.session, config, self.dialogs, host, sentinels)
        self.engine = RotationEngine(
            session=self.session,
            config=config,
            registry=self.registry,
            tracker=self.tracker,
            dialogs=self.dialogs,
            keyboard=self.keyboard,
            lockout=self.lockout,
            host=host,
        )
        self.gate = HiddenSiteGate(
            session=self.session,
            registry=self.registry,
            engine=self.engine,
            dialogs=self.dialogs,
            pin_store=pin_store,
        )
        self.pause_button = PauseButtonController(host, config)
        self.power = PowerMenu(host)

        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[tuple[KioskEvent, concurrent.futures.Future | None] | None] | None = None
        self._last_state: dict[str, Any] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Honour a pending boot lock, then attach the first view."""
        now = self._clock()
        self.lockout.check_boot_signal(now)
        self.engine.start(now)
        self._publish_state()

    async def run(self) -> None:
        """Attach the first view, then process events until ``request_stop()`` is called."""
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self.start()
        tasks = [
            asyncio.create_task(self._tick_forever(), name="kiosk-tick"),
            asyncio.create_task(self._poll_media_forever(), name="kiosk-media"),
        ]
        try:
            while True:
                item = await self._queue.get()
                if item is None:
                    break
                event, future = item
                self._process(event, future)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self._loop = None
            self.logger.info("[controller] Stopped")

    def request_stop(self) -> None:
        loop, queue = self._loop, self._queue
        if loop is None or queue is None:
            return
        loop.call_soon_threadsafe(queue.put_nowait, None)

    def post(self, event: KioskEvent) -> concurrent.futures.Future:
        """Thread-safe: queue ``event`` and return a future for its result."""
        future: concurrent.futures.Future = concurrent.futures.Future()
        loop, queue = self._loop, self._queue
        if loop is None or queue is None:
            future.set_exception(RuntimeError("Kiosk controller is not running"))
            return future
        loop.call_soon_threadsafe(queue.put_nowait, (event, future))
        return future

    def _enqueue(self, event: KioskEvent) -> None:
        if self._queue is not None:
            self._queue.put_nowait((event, None))

    async def _tick_forever(self) -> None:
        while True:
            await asyncio.sleep(TICK_INTERVAL_SECONDS)
            self._enqueue(Tick())

    async def _poll_media_forever(self) -> None:
        while True:
            await asyncio.sleep(MEDIA_POLL_INTERVAL_SECONDS)
            if self.session.is_locked_out:
                continue
            try:
                playing = await asyncio.to_thread(self.media_probe.is_playing)
            except Exception as exc:
                self.logger.debug("[controller] Media probe failed: %s", exc)
                playing = False
            self._enqueue(MediaStateChanged(bool(playing)))

    def _process(self, event: KioskEvent, future: concurrent.futures.Future | None) -> None:
        try:
            result = self.dispatch(event)
        except Exception as exc:
            self.logger.error("[controller] Handling %s failed: %s", type(event).__name__, exc, exc_info=True)
            if future is not None and not future.done():
                future.set_exception(exc)
            return
        if future is not None and not future.done():
            future.set_result(result)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, event: KioskEvent) -> Any:
        """Apply one event to the session. Only call from the loop thread."""
        now = self._clock()
        result = self._handle(event, now)
        if not isinstance(event, DescribeState):
            self._publish_state()
        return result

    def _handle(self, event: KioskEvent, now: float) -> Any:
        session = self.session
        if isinstance(event, Tick):
            return self._handle_tick(now)
        if isinstance(event, DescribeState):
            return self.describe(now)
        if isinstance(event, MediaStateChanged):
            return self.tracker.mark_media_playing(now, event.playing)
        if isinstance(event, UserActivity):
            self._mark_activity(now)
            return True
        if isinstance(event, ContentNavigated):
            if event.user_initiated:
                self.logger.debug("[controller] User navigated to %s", event.url)
                self._mark_activity(now)
            return event.user_initiated
        if isinstance(event, DialogAnswered):
            return self._handle_dialog_answer(event, now)
        if isinstance(event, PasswordSubmitted):
            result = self.lockout.submit_password(event.value, now)
            if result == "unlocked":
                self.pause_button.hide()
            return result
        if isinstance(event, PinSubmitted):
            return self.gate.submit_pin(event.value, now)
        if isinstance(event, ToggleHidden):
            self._mark_activity(now)
            return self.gate.toggle(now)
        if isinstance(event, Navigate):
            self._mark_activity(now)
            return self.engine.navigate(event.direction, now)
        if isinstance(event, Swiped):
            self._mark_activity(now)
            step = self._swipe_step(event.direction)
            return step is not None and self.engine.navigate(step, now)
        if isinstance(event, GotoTab):
            self._mark_activity(now)
            return self.engine.goto_tab(event.tab_index, now)
        if isinstance(event, GoHome):
            return self.engine.return_home(now)
        if isinstance(event, PauseRequested):
            return self.engine.open_pause_dialog(now) is not None
        if isinstance(event, KeyboardShow):
            self._mark_activity(now)
            return self.keyboard.show(now)
        if isinstance(event, Keystroke):
            self.tracker.mark_user_activity(now)
            self.keyboard.register_keystroke(now, event.key)
            return self.keyboard.is_open
        if isinstance(event, KeyboardClose):
            return self.keyboard.close("manual", now)
        if isinstance(event, PowerRequested):
            return self.power.request(event.action, locked=session.is_locked_out)
        if isinstance(event, ForceLock):
            locked = self.lockout.lock(now, "remote")
            if locked:
                self.pause_button.hide()
            return locked
        raise TypeError(f"Unsupported kiosk event: {event!r}")

    def _handle_tick(self, now: float) -> str:
        expired = self.dialogs.expire(now)
        if expired is not None:
            dialog, response = expired
            self._apply_dialog_outcome(dialog.kind, response, now)
        outcome = self.engine.tick(now, self._wall_clock())
        if self.session.is_locked_out:
            self.pause_button.hide()
        else:
            self.pause_button.tick(now)
        systemd_notify.watchdog()
        return outcome

    def _handle_dialog_answer(self, event: DialogAnswered, now: float) -> bool:
        response = DialogResponse(event.choice, event.minutes)
        try:
            dialog = self.dialogs.take_response(event.kind, response)
        except ValueError as exc:
            self.logger.warning("[controller] Rejected dialog answer: %s", exc)
            return False
        if dialog is None:
            return False
        self._apply_dialog_outcome(dialog.kind, response, now)
        return True

    def _apply_dialog_outcome(self, kind: DialogKind, response: DialogResponse, now: float) -> None:
        if kind == "inactivity":
            self.engine.resolve_inactivity(response, now)
        elif kind == "pause":
            self.engine.resolve_pause(response, now)

    def _swipe_step(self, direction: SwipeDirection) -> int | None:
        """Map a swipe to a navigation step: left is next unless the mode is reversed."""
        if not self.config.allow_navigation or self.config.swipe_mode == "off":
            return None
        step = 1 if direction == "left" else -1
        return -step if self.config.swipe_mode == "reverse" else step

    def _mark_activity(self, now: float) -> None:
        self.tracker.mark_user_activity(now)
        self.pause_button.on_interaction(
            now,
            self.engine.current_view,
            locked=self.session.is_locked_out,
            showing_hidden=self.session.showing_hidden,
        )

    # ------------------------------------------------------------------
    # State reporting
    # ------------------------------------------------------------------

    def describe(self, now: float | None = None) -> dict[str, Any]:
        """Snapshot for the overlay pages, MQTT state topic and diagnostics."""
        now = self._clock() if now is None else now
        view = self.engine.current_view
        dialog = self.dialogs.active
        state: dict[str, Any] = self.session.describe()
        state.update(
            {
                "tab_index": view.tab_index if view and not self.session.is_locked_out else None,
                "url": view.site.url if view and not self.session.is_locked_out else None,
                "dialog": dialog.kind if dialog else None,
                "dialog_error": dialog.error if dialog else None,
                "dialog_remaining": dialog.remaining(now) if dialog else None,
                "keyboard_open": self.keyboard.is_open,
                "pause_button": self.pause_button.visible,
                "power_actions": list(available_actions(self.session.is_locked_out)),
                "site_count": len(self.registry.visible),
                "hidden_count": len(self.registry.hidden),
            }
        )
        return state

    def _publish_state(self) -> None:
        if not self._on_state_change:
            return
        state = self.describe()
        # remaining seconds changes every tick; only publish real transitions
        state.pop("dialog_remaining", None)
        state.pop("extension_until", None)
        if state == self._last_state:
            return
        self._last_state = state
        try:
            self._on_state_change(state)
        except Exception as exc:
            self.logger.warning("[controller] State callback failed: %s", exc)
