"""Local HTTP surface for the kiosk session.

Serves the dialog, lock and placeholder pages loaded into Chromium and
receives input from the injected view bridge. Every request is turned into a
controller event and waits for the loop thread to apply it, so the HTTP
threads never touch session state themselves.

Content views may only reach ``CONTENT_ENDPOINTS`` (activity, gestures,
keyboard keys and the pause button), and only from the configured allowed
origins. Passwords, PINs, dialog answers, navigation and power actions are
accepted from the overlay's own pages or from clients that send no Origin.
"""

from __future__ import annotations

import concurrent.futures
import json
import logging
import threading
from collections.abc import Callable
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

from kiosk.config import OverlayServerSettings
from kiosk.controller import (
    ContentNavigated,
    DescribeState,
    DialogAnswered,
    GoHome,
    GotoTab,
    KeyboardClose,
    KeyboardShow,
    KioskEvent,
    Keystroke,
    Navigate,
    PasswordSubmitted,
    PauseRequested,
    PinSubmitted,
    PowerRequested,
    Swiped,
    ToggleHidden,
    UserActivity,
)
from kiosk.hidden import INCORRECT_PIN_MESSAGE, INVALID_PIN_MESSAGE
from kiosk.lockout import INCORRECT_PASSWORD_MESSAGE
from kiosk.pages import render_dialog_html, render_lock_html, render_placeholder_html

LOGGER = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 5.0

# Endpoints content views may reach through the view bridge. Everything else
# only answers the overlay's own pages.
CONTENT_ENDPOINTS = frozenset({"/kiosk/activity", "/kiosk/pause"})

PostEvent = Callable[[KioskEvent], concurrent.futures.Future]

_RESULT_MESSAGES = {
    "incorrect_password": INCORRECT_PASSWORD_MESSAGE,
    "incorrect_pin": INCORRECT_PIN_MESSAGE,
    "invalid_pin": INVALID_PIN_MESSAGE,
}


class BadRequest(ValueError):
    pass


def _optional_int(value: Any, name: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise BadRequest(f"Invalid {name}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise BadRequest(f"Invalid {name}") from exc


def _content_event(data: dict[str, Any]) -> KioskEvent:
    """Events a content view may raise through the view bridge."""
    navigated = data.get("navigated")
    if navigated:
        return ContentNavigated(user_initiated=True, url=str(navigated))
    kind = str(data.get("kind") or "pointer")
    if kind == "swipe":
        direction = data.get("direction")
        if direction not in {"left", "right"}:
            raise BadRequest("direction must be left or right")
        return Swiped(direction)
    if kind == "hidden":
        return ToggleHidden()
    if kind == "keyboard":
        return KeyboardShow()
    if kind == "keyboard-key":
        key = data.get("key")
        return Keystroke(str(key) if key else None)
    if kind == "keyboard-close":
        return KeyboardClose()
    return UserActivity(kind=kind)


def build_event(path: str, data: dict[str, Any]) -> KioskEvent:
    """Translate a POST body into a controller event. Raises BadRequest."""
    if path == "/kiosk/activity":
        return _content_event(data)
    if path == "/kiosk/dialog":
        kind = data.get("kind")
        choice = data.get("choice")
        if not kind or not choice:
            raise BadRequest("Missing kind or choice")
        minutes = _optional_int(data.get("minutes"), "minutes")
        return DialogAnswered(kind=str(kind), choice=str(choice), minutes=minutes)  # type: ignore[arg-type]
    if path == "/kiosk/password":
        value = data.get("password")
        if not isinstance(value, str):
            raise BadRequest("Missing password")
        return PasswordSubmitted(value)
    if path == "/kiosk/pin":
        value = data.get("pin")
        if not isinstance(value, str):
            raise BadRequest("Missing pin")
        return PinSubmitted(value)
    if path == "/kiosk/hidden":
        return ToggleHidden()
    if path == "/kiosk/navigate":
        if data.get("home"):
            return GoHome()
        tab = _optional_int(data.get("tab"), "tab")
        if tab is not None:
            return GotoTab(tab)
        direction = _optional_int(data.get("direction"), "direction")
        if direction not in {1, -1}:
            raise BadRequest("direction must be 1 or -1")
        return Navigate(direction)
    if path == "/kiosk/pause":
        return PauseRequested()
    if path == "/kiosk/keyboard":
        action = str(data.get("action") or "").strip().lower()
        if action == "show":
            return KeyboardShow()
        if action == "close":
            return KeyboardClose()
        if action == "key":
            key = data.get("key")
            return Keystroke(str(key) if key else None)
        raise BadRequest("Invalid keyboard action")
    if path == "/kiosk/power":
        action = data.get("action")
        if not action:
            raise BadRequest("Missing action")
        return PowerRequested(str(action))
    raise LookupError(path)


def describe_result(path: str, result: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"result": result}
    message = None
    if path == "/kiosk/password" and result == "incorrect":
        message = _RESULT_MESSAGES["incorrect_password"]
    elif path == "/kiosk/pin" and result in {"incorrect", "invalid"}:
        message = _RESULT_MESSAGES[f"{result}_pin"]
    if message:
        payload["message"] = message
    return payload


class KioskOverlayServer:
    """Embed the kiosk pages behind a lightweight HTTP server."""

    def __init__(
        self,
        *,
        post: PostEvent,
        settings: OverlayServerSettings,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        self.post = post
        self.settings = settings
        self.request_timeout = request_timeout
        self.logger = logger or LOGGER
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def server_address(self) -> tuple[str, int] | None:
        if not self._server:
            return None
        host, port = self._server.server_address[:2]
        return str(host), int(port)

    def start(self) -> None:
        if self._server:
            return
        handler_cls = self._build_handler()
        try:
            server = ThreadingHTTPServer((self.settings.bind_address, self.settings.port), handler_cls)
        except OSError as exc:  # pragma: no cover - dependant on environment
            self.logger.error(
                "[overlay] Failed to bind %s:%s (%s)", self.settings.bind_address, self.settings.port, exc
            )
            raise
        self._server = server
        thread = threading.Thread(target=server.serve_forever, name="kiosk-overlay-http", daemon=True)
        thread.start()
        self._thread = thread
        self.logger.info(
            "[overlay] Serving on http://%s:%s/kiosk (allowed origins: %s)",
            self.settings.bind_address,
            self.settings.port,
            ", ".join(self.settings.allowed_origins),
        )

    def stop(self) -> None:
        server = self._server
        if not server:
            return
        self.logger.info("[overlay] Shutting down")
        server.shutdown()
        server.server_close()
        if self._thread:
            self._thread.join(timeout=2)
        self._server = None
        self._thread = None

    def call(self, event: KioskEvent) -> Any:
        """Post ``event`` and block until the controller has applied it."""
        return self.post(event).result(timeout=self.request_timeout)

    def _build_handler(self):
        outer = self

        class KioskRequestHandler(BaseHTTPRequestHandler):
            def log_message(self, _format, *_args):  # noqa: D401
                return

            def _set_common_headers(self) -> None:
                origin = self.headers.get("Origin")
                allowed_origin = outer._cors_origin(self.path.split("?", 1)[0], origin)
                if allowed_origin:
                    self.send_header("Access-Control-Allow-Origin", allowed_origin)
                    if allowed_origin != "*":
                        self.send_header("Vary", "Origin")
                self.send_header("Access-Control-Allow-Methods", "GET, HEAD, OPTIONS, POST")
                self.send_header("Access-Control-Allow-Headers", "Accept, Content-Type")
                self.send_header("Cache-Control", "no-store, max-age=0")

            def do_OPTIONS(self) -> None:  # noqa: N802
                self.send_response(HTTPStatus.NO_CONTENT)
                self._set_common_headers()
                self.end_headers()

            def do_HEAD(self) -> None:  # noqa: N802
                self._serve_page(include_body=False)

            def do_GET(self) -> None:  # noqa: N802
                self._serve_page(include_body=True)

            def do_POST(self) -> None:  # noqa: N802
                path = self.path.split("?", 1)[0]
                origin = self.headers.get("Origin")
                if not outer.may_post(path, origin):
                    outer.logger.warning("[overlay] Rejected POST %s from origin %s", path, origin)
                    self.send_error(HTTPStatus.FORBIDDEN, "Origin not allowed")
                    return
                try:
                    data = self._read_json()
                    event = build_event(path, data)
                except LookupError:
                    self.send_error(HTTPStatus.NOT_FOUND, "Not Found")
                    return
                except ValueError as exc:
                    outer.logger.debug("[overlay] Invalid request to %s: %s", path, exc)
                    self.send_error(HTTPStatus.BAD_REQUEST, str(exc) or "Invalid request")
                    return
                result = self._call(event)
                if result is _UNAVAILABLE:
                    return
                self._send_json(describe_result(path, result))

            def _serve_page(self, *, include_body: bool) -> None:
                path = self.path.split("?", 1)[0]
                if path == "/kiosk/placeholder":
                    self._send_html(render_placeholder_html(), include_body=include_body)
                    return
                if path not in {"/kiosk/dialog", "/kiosk/locked", "/kiosk/state"}:
                    self.send_error(HTTPStatus.NOT_FOUND, "Not Found")
                    return
                state = self._call(DescribeState())
                if state is _UNAVAILABLE:
                    return
                if path == "/kiosk/state":
                    self._send_json(state, include_body=include_body)
                elif path == "/kiosk/locked":
                    self._send_html(render_lock_html(state), include_body=include_body)
                else:
                    html = render_dialog_html(state)
                    if html is None:
                        self.send_response(HTTPStatus.NO_CONTENT)
                        self._set_common_headers()
                        self.end_headers()
                        return
                    self._send_html(html, include_body=include_body)

            def _call(self, event: KioskEvent) -> Any:
                try:
                    return outer.call(event)
                except concurrent.futures.TimeoutError:
                    outer.logger.warning("[overlay] Timed out waiting for %s", type(event).__name__)
                    self.send_error(HTTPStatus.SERVICE_UNAVAILABLE, "Kiosk busy")
                except RuntimeError as exc:
                    outer.logger.warning("[overlay] %s rejected: %s", type(event).__name__, exc)
                    self.send_error(HTTPStatus.SERVICE_UNAVAILABLE, "Kiosk unavailable")
                return _UNAVAILABLE

            def _read_json(self) -> dict[str, Any]:
                content_length = int(self.headers.get("Content-Length", 0) or 0)
                if content_length <= 0:
                    return {}
                body = self.rfile.read(content_length)
                data = json.loads(body.decode("utf-8"))
                if not isinstance(data, dict):
                    raise ValueError("Expected a JSON object")
                return data

            def _send_json(self, payload: Any, *, include_body: bool = True) -> None:
                body = json.dumps(payload).encode("utf-8")
                self.send_response(HTTPStatus.OK)
                self._set_common_headers()
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                if include_body:
                    self.wfile.write(body)

            def _send_html(self, html: str, *, include_body: bool) -> None:
                body = html.encode("utf-8")
                self.send_response(HTTPStatus.OK)
                self._set_common_headers()
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                if include_body:
                    self.wfile.write(body)

        return KioskRequestHandler

    @property
    def own_origin(self) -> str | None:
        """Origin of the pages this server renders."""
        address = self.server_address
        if address is None:
            return None
        host, port = address
        if host in {"0.0.0.0", ""}:  # nosec B104
            host = "127.0.0.1"
        return f"http://{host}:{port}"

    def may_post(self, path: str, origin: str | None) -> bool:
        """Browsers always send Origin on POST; requests without one are local tools."""
        if origin is None or origin == self.own_origin:
            return True
        return path in CONTENT_ENDPOINTS and self._allowed_origin(origin) is not None

    def _cors_origin(self, path: str, origin: str | None) -> str | None:
        if origin is not None and origin == self.own_origin:
            return origin
        if path in CONTENT_ENDPOINTS:
            return self._allowed_origin(origin)
        return None

    def _allowed_origin(self, origin: str | None) -> str | None:
        allowed = self.settings.allowed_origins
        if not allowed or allowed == ("*",):
            return "*"
        if origin and origin in allowed:
            return origin
        return None


_UNAVAILABLE = object()
