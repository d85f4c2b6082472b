"""Rendering host interface consumed by the session controller.

The controller never touches a browser directly. It asks a host to attach a
view, detach everything, show or close a dialog, and so on. The production
host drives Chromium over DevTools (``kiosk.devtools``) behind a
``BackgroundHost``; tests pass mocks.
"""

from __future__ import annotations

import concurrent.futures
import logging
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from kiosk.dialogs import ActiveDialog, DialogKind
    from kiosk.power import PowerAction
    from kiosk.sites import ViewRef

LOGGER = logging.getLogger(__name__)


class KioskHost(Protocol):
    def attach_view(self, view: ViewRef) -> None:
        """Make ``view`` the single visible surface."""

    def detach_all(self) -> None:
        """Remove every content surface from the window."""

    def show_placeholder(self) -> None:
        """Render the "no sites configured" page."""

    def show_dialog(self, dialog: ActiveDialog) -> None: ...

    def close_dialog(self, kind: DialogKind) -> None: ...

    def notify_dialog_error(self, kind: DialogKind, message: str) -> None: ...

    def show_keyboard(self) -> None: ...

    def hide_keyboard(self) -> None: ...

    def send_key(self, key: str) -> None:
        """Feed a synthetic key event into the active view."""

    def notify_views(self, event: str) -> None:
        """Broadcast a named event to every view."""

    def set_pause_button_visible(self, visible: bool) -> None: ...

    def request_power_action(self, action: PowerAction) -> None: ...


class BackgroundHost:
    """KioskHost that runs every call of a slow host on one worker thread.

    Surface calls return immediately and run in the order they were made, so
    a stalled browser never holds up the master tick or queued events.
    ``run()`` waits for a result and is meant for callers already off the
    event loop (the media probe).
    """

    def __init__(self, host: KioskHost, *, logger: logging.Logger | None = None) -> None:
        self.host = host
        self.logger = logger or LOGGER
        self._executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="kiosk-host")

    def submit(self, method: str, *args: Any) -> concurrent.futures.Future:
        return self._executor.submit(self._invoke, method, args)

    def run(self, method: str, *args: Any, timeout: float | None = None) -> Any:
        """Call ``method`` in turn with surface calls and wait; errors propagate."""
        future = self._executor.submit(getattr(self.host, method), *args)
        return future.result(timeout=timeout)

    def shutdown(self, *, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=not wait)

    def _invoke(self, method: str, args: tuple[Any, ...]) -> Any:
        try:
            return getattr(self.host, method)(*args)
        except Exception as exc:
            self.logger.error("[host] %s failed: %s", method, exc)
            return None

    def attach_view(self, view: ViewRef) -> None:
        self.submit("attach_view", view)

    def detach_all(self) -> None:
        self.submit("detach_all")

    def show_placeholder(self) -> None:
        self.submit("show_placeholder")

    def show_dialog(self, dialog: ActiveDialog) -> None:
        self.submit("show_dialog", dialog)

    def close_dialog(self, kind: DialogKind) -> None:
        self.submit("close_dialog", kind)

    def notify_dialog_error(self, kind: DialogKind, message: str) -> None:
        self.submit("notify_dialog_error", kind, message)

    def show_keyboard(self) -> None:
        self.submit("show_keyboard")

    def hide_keyboard(self) -> None:
        self.submit("hide_keyboard")

    def send_key(self, key: str) -> None:
        self.submit("send_key", key)

    def notify_views(self, event: str) -> None:
        self.submit("notify_views", event)

    def set_pause_button_visible(self, visible: bool) -> None:
        self.submit("set_pause_button_visible", visible)

    def request_power_action(self, action: PowerAction) -> None:
        self.submit("request_power_action", action)
