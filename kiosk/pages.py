"""
HTML pages for kiosk dialogs, the lock screen and the placeholder

Static assets are loaded once at import time from ``kiosk/assets/``:
- KIOSK_CSS: shared styling for every page
- KIOSK_JS: dialog page interactivity (answers, password and PIN forms)
- VIEW_BRIDGE_JS: script injected into every content view to report user
  input and host the dialog iframe and pause button

Renderers take the controller's ``describe()`` snapshot and return complete
HTML documents.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from html import escape as html_escape
from pathlib import Path
from typing import Any

from kiosk.config import KioskConfig
from kiosk.dialogs import EXTENSION_CHOICES_MINUTES

ASSETS_DIR = Path(__file__).resolve().parent / "assets"

_POWER_LABELS = {"poweroff": "Shut down", "restart": "Restart", "reload": "Reload"}


def _load_asset(name: str) -> str:
    return (ASSETS_DIR / name).read_text(encoding="utf-8").strip()


KIOSK_CSS = _load_asset("kiosk.css")
KIOSK_JS = _load_asset("kiosk.js")
VIEW_BRIDGE_JS = _load_asset("view-bridge.js")


@dataclass(frozen=True)
class PageEndpoints:
    dialog: str = "/kiosk/dialog"
    password: str = "/kiosk/password"
    pin: str = "/kiosk/pin"
    power: str = "/kiosk/power"


@dataclass(frozen=True)
class BridgeOptions:
    """Content-side controls the view bridge offers."""

    swipe_mode: str = "standard"
    allow_navigation: bool = True
    keyboard_button: bool = True

    @classmethod
    def from_config(cls, config: KioskConfig) -> BridgeOptions:
        return cls(
            swipe_mode=config.swipe_mode,
            allow_navigation=config.allow_navigation,
            keyboard_button=config.enable_keyboard_button,
        )

    def as_json(self) -> str:
        swipe = self.allow_navigation and self.swipe_mode != "off"
        return json.dumps({"swipe": swipe, "keyboardButton": self.keyboard_button})


def build_view_bridge_script(base_url: str, options: BridgeOptions | None = None) -> str:
    """The bridge script with the local server's origin and options filled in."""
    options = options or BridgeOptions()
    return VIEW_BRIDGE_JS.replace("__KIOSK_BASE_URL__", base_url.rstrip("/")).replace(
        "__KIOSK_OPTIONS__", options.as_json()
    )


def _format_minutes(minutes: int) -> str:
    if minutes % 60 == 0:
        hours = minutes // 60
        return f"{hours} hour" if hours == 1 else f"{hours} hours"
    return f"{minutes} min"


def _extension_buttons() -> str:
    return "".join(
        f'<button class="kiosk-button" data-action="answer" data-choice="extend" '
        f'data-minutes="{minutes}">{_format_minutes(minutes)}</button>'
        for minutes in EXTENSION_CHOICES_MINUTES
    )


def _power_buttons(actions: Iterable[str]) -> str:
    buttons = "".join(
        f'<button class="kiosk-button" data-action="power" data-power="{html_escape(action, quote=True)}">'
        f"{html_escape(_POWER_LABELS.get(action, action))}</button>"
        for action in actions
    )
    return f'<div class="kiosk-actions kiosk-power">{buttons}</div>' if buttons else ""


def _error_line(state: Mapping[str, Any]) -> str:
    return f'<div class="kiosk-error">{html_escape(state.get("dialog_error") or "")}</div>'


def _inactivity_card(state: Mapping[str, Any]) -> str:
    remaining = state.get("dialog_remaining") or 0
    return (
        "<h1>Are you still there?</h1>"
        f'<p>Returning to the home screen in <span class="kiosk-countdown">{int(remaining + 0.999)}</span> seconds.</p>'
        '<div class="kiosk-actions">'
        '<button class="kiosk-button kiosk-button--primary" data-action="answer" data-choice="present">'
        "I'm here</button>"
        f"{_extension_buttons()}"
        '<button class="kiosk-button" data-action="answer" data-choice="return_home">Go home now</button>'
        "</div>"
    )


def _pause_card(_state: Mapping[str, Any]) -> str:
    return (
        "<h1>Pause rotation</h1>"
        "<p>Stay on this page for how long? Pauses end on their own after at most 4 hours.</p>"
        f'<div class="kiosk-actions">{_extension_buttons()}'
        '<button class="kiosk-button" data-action="answer" data-choice="cancel">Cancel</button>'
        "</div>"
    )


def _pin_card(state: Mapping[str, Any]) -> str:
    return (
        "<h1>Enter PIN</h1>"
        '<form class="kiosk-form">'
        '<input class="kiosk-input" type="password" inputmode="numeric" autocomplete="off" '
        'minlength="4" maxlength="8" pattern="[0-9]*" autofocus>'
        f"{_error_line(state)}"
        '<div class="kiosk-actions">'
        '<button class="kiosk-button kiosk-button--primary" type="submit">Unlock</button>'
        '<button class="kiosk-button" type="button" data-action="answer" data-choice="cancel">Cancel</button>'
        "</div></form>"
    )


def _lockout_card(state: Mapping[str, Any]) -> str:
    return (
        "<h1>Kiosk locked</h1>"
        "<p>Enter the password to continue.</p>"
        '<form class="kiosk-form">'
        '<input class="kiosk-input" type="password" autocomplete="off" autofocus>'
        f"{_error_line(state)}"
        '<button class="kiosk-button kiosk-button--primary" type="submit">Unlock</button>'
        "</form>"
        f"{_power_buttons(state.get('power_actions') or ())}"
    )


_CARD_BUILDERS = {
    "inactivity": _inactivity_card,
    "pause": _pause_card,
    "pin": _pin_card,
    "lockout": _lockout_card,
}


def _document(title: str, body: str, root_attrs: str, *, extra_class: str = "") -> str:
    classes = f"kiosk-root {extra_class}".strip()
    return (
        "<!DOCTYPE html>"
        '<html lang="en"><head><meta charset="utf-8">'
        '<meta name="viewport" content="width=device-width, initial-scale=1">'
        f"<title>{html_escape(title)}</title>"
        f"<style>{KIOSK_CSS}</style></head>"
        f'<body><div id="kiosk-root" class="{classes}" {root_attrs}>'
        f'<div class="kiosk-card">{body}</div></div>'
        f"<script>{KIOSK_JS}</script></body></html>"
    )


def _root_attrs(kind: str, state: Mapping[str, Any], endpoints: PageEndpoints) -> str:
    remaining = state.get("dialog_remaining")
    attrs = {
        "data-dialog": kind,
        "data-remaining": "" if remaining is None else f"{remaining:.0f}",
        "data-dialog-endpoint": endpoints.dialog,
        "data-password-endpoint": endpoints.password,
        "data-pin-endpoint": endpoints.pin,
        "data-power-endpoint": endpoints.power,
    }
    return " ".join(f'{name}="{html_escape(value, quote=True)}"' for name, value in attrs.items())


def render_dialog_html(state: Mapping[str, Any], endpoints: PageEndpoints | None = None) -> str | None:
    """Render the active dialog, or None when no dialog is open."""
    kind = state.get("dialog")
    builder = _CARD_BUILDERS.get(kind or "")
    if builder is None:
        return None
    endpoints = endpoints or PageEndpoints()
    extra = "kiosk-root--locked" if kind == "lockout" else ""
    return _document("Kiosk", builder(state), _root_attrs(kind, state, endpoints), extra_class=extra)


def render_lock_html(state: Mapping[str, Any], endpoints: PageEndpoints | None = None) -> str:
    """Full-screen lock page shown in place of every content view."""
    locked_state = dict(state)
    locked_state["dialog"] = "lockout"
    endpoints = endpoints or PageEndpoints()
    return _document(
        "Kiosk locked",
        _lockout_card(locked_state),
        _root_attrs("lockout", locked_state, endpoints),
        extra_class="kiosk-root--locked",
    )


def render_placeholder_html() -> str:
    body = "<h1>No sites configured</h1><p>Run the kiosk setup to add sites to rotate through.</p>"
    return _document("Kiosk", body, 'data-dialog=""')
