"""Chromium DevTools rendering host.

Chromium runs fullscreen with ``--remote-debugging-port`` and a single page
target. Attaching a view is a ``Page.navigate``; the lock screen, dialogs and
placeholder are pages served by the local overlay server. The view bridge is
registered as a new-document script on the DevTools session, evaluated again
right after every navigation and ahead of every in-page call, so content
reports input from the moment it loads, including pages the user navigates
to inside a site.

Every DevTools failure is logged here and swallowed: a dead browser must not
take the session controller down with it.
"""

from __future__ import annotations

import itertools
import json
import logging
import subprocess
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx
import websocket

from kiosk.config import DevToolsSettings
from kiosk.pages import BridgeOptions, build_view_bridge_script

if TYPE_CHECKING:
    from kiosk.dialogs import ActiveDialog, DialogKind
    from kiosk.power import PowerAction
    from kiosk.sites import ViewRef

LOGGER = logging.getLogger(__name__)

SAFE_REBOOT_SCRIPT = Path("/opt/kiosk/bin/safe-reboot.sh")

# windowsVirtualKeyCode values for keys the on-screen keyboard sends by name
_NAMED_KEYS: dict[str, int] = {
    "Backspace": 8,
    "Tab": 9,
    "Enter": 13,
    "Escape": 27,
    "ArrowLeft": 37,
    "ArrowUp": 38,
    "ArrowRight": 39,
    "ArrowDown": 40,
    "Delete": 46,
}

_BLANK_URLS = ("", "about:blank", "chrome://newtab/")


class DevToolsError(RuntimeError):
    pass


class DevToolsClient:
    """DevTools commands against the primary page target over one websocket.

    The connection is opened on first use and kept, because scripts added
    with ``Page.addScriptToEvaluateOnNewDocument`` only live as long as the
    session that added them. Scripts passed to ``add_session_script`` are
    registered again on every reconnect.
    """

    def __init__(self, settings: DevToolsSettings, logger: logging.Logger | None = None) -> None:
        self.settings = settings
        self.logger = logger or LOGGER
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._ws: websocket.WebSocket | None = None
        self._session_scripts: list[str] = []

    def fetch_page_targets(self) -> list[dict[str, Any]]:
        response = httpx.get(self.settings.discovery_url, timeout=self.settings.timeout)
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, list):
            raise DevToolsError("DevTools target list is not a JSON array")
        return [item for item in payload if isinstance(item, dict) and item.get("type") == "page"]

    @staticmethod
    def pick_primary_target(pages: list[dict[str, Any]]) -> dict[str, Any] | None:
        for page in pages:
            if (page.get("url") or "") not in _BLANK_URLS:
                return page
        return pages[0] if pages else None

    def _websocket_url(self) -> str:
        try:
            pages = self.fetch_page_targets()
        except httpx.HTTPError as exc:
            raise DevToolsError(f"cannot reach DevTools endpoint {self.settings.discovery_url}: {exc}") from exc
        except ValueError as exc:
            raise DevToolsError(f"invalid JSON from DevTools endpoint: {exc}") from exc
        target = self.pick_primary_target(pages)
        if not target:
            raise DevToolsError("no Chromium page targets available")
        ws_url = target.get("webSocketDebuggerUrl")
        if not ws_url:
            raise DevToolsError("selected target is missing webSocketDebuggerUrl")
        return str(ws_url)

    def add_session_script(self, source: str) -> None:
        """Run ``source`` in every document the page loads from now on."""
        with self._lock:
            self._session_scripts.append(source)
            ws = self._ws
            if ws is None:
                return
            try:
                self._send(ws, "Page.addScriptToEvaluateOnNewDocument", {"source": source})
            except (OSError, ValueError, websocket.WebSocketException, DevToolsError) as exc:
                # registered again on the next connection
                self.logger.warning("[devtools] Registering page script failed: %s", exc)
                self._drop_connection()

    def call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send one command and wait for its reply."""
        with self._lock:
            ws = self._ws or self._connect()
            try:
                return self._send(ws, method, params)
            except (OSError, ValueError, websocket.WebSocketException) as exc:
                self._drop_connection()
                raise DevToolsError(f"{method} failed: {exc}") from exc

    def close(self) -> None:
        with self._lock:
            self._drop_connection()

    def _connect(self) -> websocket.WebSocket:
        ws_url = self._websocket_url()
        try:
            ws = websocket.create_connection(ws_url, timeout=self.settings.timeout)
        except (OSError, websocket.WebSocketException) as exc:
            raise DevToolsError(f"failed to open DevTools websocket: {exc}") from exc
        try:
            for source in self._session_scripts:
                self._send(ws, "Page.addScriptToEvaluateOnNewDocument", {"source": source})
        except (OSError, ValueError, websocket.WebSocketException, DevToolsError) as exc:
            ws.close()
            raise DevToolsError(f"failed to prepare DevTools session: {exc}") from exc
        self.logger.debug("[devtools] Connected to %s", ws_url)
        self._ws = ws
        return ws

    def _drop_connection(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None:
            ws.close()

    def _send(self, ws: websocket.WebSocket, method: str, params: dict[str, Any] | None) -> dict[str, Any]:
        message_id = next(self._ids)
        ws.send(json.dumps({"id": message_id, "method": method, "params": params or {}}))
        while True:
            reply = json.loads(ws.recv())
            if reply.get("id") != message_id:
                continue
            if "error" in reply:
                raise DevToolsError(f"{method} failed: {reply['error'].get('message', reply['error'])}")
            return reply.get("result") or {}

    def navigate(self, url: str) -> None:
        self.call("Page.navigate", {"url": url})

    def evaluate(self, expression: str) -> Any:
        result = self.call("Runtime.evaluate", {"expression": expression, "returnByValue": True})
        if "exceptionDetails" in result:
            details = result["exceptionDetails"]
            raise DevToolsError(f"script raised: {details.get('text') or details}")
        return (result.get("result") or {}).get("value")


class DevToolsHost:
    """KioskHost backed by a Chromium page driven over DevTools."""

    def __init__(
        self,
        client: DevToolsClient,
        base_url: str,
        *,
        bridge_options: BridgeOptions | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.logger = logger or LOGGER
        self._bridge = build_view_bridge_script(self.base_url, bridge_options)
        client.add_session_script(self._bridge)
        self._current_url: str | None = None
        self._showing_content = False

    @property
    def locked_url(self) -> str:
        return f"{self.base_url}/kiosk/locked"

    @property
    def placeholder_url(self) -> str:
        return f"{self.base_url}/kiosk/placeholder"

    def _navigate(self, url: str) -> bool:
        try:
            self.client.navigate(url)
        except DevToolsError as exc:
            self.logger.error("[devtools] Navigate to %s failed: %s", url, exc)
            return False
        self._current_url = url
        return True

    def _run_in_view(self, expression: str) -> Any:
        """Evaluate ``expression`` in the content view with the bridge installed."""
        if not self._showing_content:
            return None
        return self.client.evaluate(f"{self._bridge}\n{expression}")

    def _install_bridge(self) -> None:
        try:
            self.client.evaluate(self._bridge)
        except DevToolsError as exc:
            self.logger.warning("[devtools] Installing view bridge failed: %s", exc)

    def _safe_run_in_view(self, expression: str) -> None:
        try:
            self._run_in_view(expression)
        except DevToolsError as exc:
            self.logger.warning("[devtools] In-page call failed: %s", exc)

    # KioskHost

    def attach_view(self, view: ViewRef) -> None:
        self.logger.info("[devtools] Showing tab %d (%s)", view.tab_index, view.site.url)
        self._showing_content = self._navigate(view.url)
        if self._showing_content:
            self._install_bridge()

    def detach_all(self) -> None:
        self._showing_content = False
        self._navigate(self.locked_url)

    def show_placeholder(self) -> None:
        self._showing_content = False
        self._navigate(self.placeholder_url)

    def show_dialog(self, dialog: ActiveDialog) -> None:
        if dialog.kind == "lockout":
            if self._current_url != self.locked_url:
                self.detach_all()
            return
        self._safe_run_in_view("window.__kioskShowDialog()")

    def close_dialog(self, kind: DialogKind) -> None:
        if kind == "lockout":
            return
        self._safe_run_in_view("window.__kioskCloseDialog()")

    def notify_dialog_error(self, kind: DialogKind, message: str) -> None:
        # the lock page shows the error from its own POST reply
        self.logger.debug("[devtools] %s dialog error: %s", kind, message)
        if kind != "lockout":
            self._safe_run_in_view("window.__kioskShowDialog()")

    def show_keyboard(self) -> None:
        self.notify_views("keyboard-show")

    def hide_keyboard(self) -> None:
        self.notify_views("keyboard-hide")

    def send_key(self, key: str) -> None:
        try:
            code = _NAMED_KEYS.get(key)
            if code is None:
                self.client.call("Input.insertText", {"text": key})
                return
            for event_type in ("keyDown", "keyUp"):
                self.client.call(
                    "Input.dispatchKeyEvent",
                    {"type": event_type, "key": key, "code": key, "windowsVirtualKeyCode": code},
                )
        except DevToolsError as exc:
            self.logger.warning("[devtools] Sending key %r failed: %s", key, exc)

    def notify_views(self, event: str) -> None:
        self._safe_run_in_view(f"window.__kioskNotify({json.dumps(event)})")

    def set_pause_button_visible(self, visible: bool) -> None:
        self._safe_run_in_view(f"window.__kioskSetPauseButton({'true' if visible else 'false'})")

    def request_power_action(self, action: PowerAction) -> None:
        if action == "reload":
            try:
                self.client.call("Page.reload", {"ignoreCache": True})
            except DevToolsError as exc:
                self.logger.error("[devtools] Reload failed: %s", exc)
            return
        command = self._power_command(action)
        self.logger.info("[devtools] Running %s", " ".join(command))
        try:
            subprocess.Popen(command)  # nosec B603
        except OSError as exc:
            self.logger.error("[devtools] %s command failed: %s", action, exc)

    @staticmethod
    def _power_command(action: PowerAction) -> list[str]:
        if action == "restart":
            if SAFE_REBOOT_SCRIPT.exists():
                return ["sudo", str(SAFE_REBOOT_SCRIPT), "kiosk: power menu"]
            return ["sudo", "systemctl", "reboot"]
        return ["sudo", "systemctl", "poweroff"]

    # Media probe support

    def evaluate_in_active_view(self, expression: str) -> Any:
        """Evaluate in the content view; raises DevToolsError on failure."""
        return self._run_in_view(expression)
