"""Configuration helpers for the kiosk session controller.

Two sources feed the controller:

- ``KioskConfig``: the persisted JSON document written by the kiosk setup
  tooling (sites, home tab, timeouts, lockout policy). It is read once at
  startup and never mutated here.
- ``KioskSettings``: deployment paths and endpoints taken from the
  environment (systemd unit ``Environment=`` lines).

Loading never raises: a missing or corrupt document yields an empty site
list and a disabled lockout policy so the host can render a placeholder.
"""

from __future__ import annotations

import json
import logging
import os
import socket
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal
from urllib.parse import quote, urlsplit, urlunsplit

from kiosk.utils import (
    coerce_bool,
    coerce_int,
    format_hhmm,
    parse_float,
    parse_hhmm,
    parse_int,
    sanitize_hostname_for_topic,
    split_csv,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("/home/kiosk/kiosk-app/config.json")
DEFAULT_BOOT_SENTINEL = Path("/var/lib/kiosk/boot-occurred")
DEFAULT_WAKE_SENTINEL = Path("/var/lib/kiosk/display-woke")
DEFAULT_PIN_FILE = Path("/etc/kiosk/hidden-pin")

DEFAULT_INACTIVITY_TIMEOUT_SECONDS = 120
HIDDEN_DURATION = -1

SwipeMode = Literal["standard", "reverse", "off"]
SWIPE_MODES: tuple[str, ...] = ("standard", "reverse", "off")
MediaProbeKind = Literal["dom", "explicit", "none"]
MEDIA_PROBE_KINDS: tuple[str, ...] = ("dom", "explicit", "none")

# Older config documents used the short key names.
_KEY_ALIASES = {
    "inactivityTimeout": "inactivityTimeoutSeconds",
    "lockoutTimeout": "lockoutTimeoutMinutes",
    "lockoutTime": "lockoutAtTime",
}


def _strip_or_none(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def embed_credentials(url: str, username: str | None, password: str | None) -> str:
    """Return ``url`` with HTTP Basic credentials placed in the netloc."""
    if not username:
        return url
    parts = urlsplit(url)
    if not parts.netloc:
        return url
    host = parts.netloc.rsplit("@", 1)[-1]
    userinfo = quote(username, safe="")
    if password:
        userinfo = f"{userinfo}:{quote(password, safe='')}"
    return urlunsplit((parts.scheme, f"{userinfo}@{host}", parts.path, parts.query, parts.fragment))


@dataclass(frozen=True)
class Site:
    """One configured destination."""

    url: str
    duration: int = 0
    username: str | None = None
    password: str | None = None

    @property
    def is_hidden(self) -> bool:
        return self.duration == HIDDEN_DURATION

    @property
    def is_rotating(self) -> bool:
        return self.duration > 0

    @property
    def is_manual(self) -> bool:
        return self.duration == 0

    @property
    def load_url(self) -> str:
        """URL handed to the browser, with credentials embedded."""
        return embed_credentials(self.url, self.username, self.password)


@dataclass(frozen=True)
class KioskConfig:
    tabs: tuple[Site, ...] = ()
    home_tab_index: int = -1
    inactivity_timeout_seconds: int = DEFAULT_INACTIVITY_TIMEOUT_SECONDS
    swipe_mode: SwipeMode = "standard"
    allow_navigation: bool = True
    enable_pause_button: bool = True
    enable_keyboard_button: bool = True
    enable_password_protection: bool = False
    lockout_password_hash: str = ""
    lockout_timeout_minutes: int = 0
    lockout_at_time: str = ""
    require_password_on_boot: bool = False

    @property
    def lockout_enabled(self) -> bool:
        """Lockout policy is live only with protection on and a password set."""
        return self.enable_password_protection and bool(self.lockout_password_hash)

    @property
    def home_enabled(self) -> bool:
        return self.home_tab_index >= 0


def _parse_site(raw: Any, position: int) -> Site | None:
    if isinstance(raw, str):
        raw = {"url": raw}
    if not isinstance(raw, Mapping):
        LOGGER.warning("[config] Ignoring tab %d: expected an object, got %s", position, type(raw).__name__)
        return None
    url = _strip_or_none(raw.get("url"))
    if not url:
        LOGGER.warning("[config] Ignoring tab %d: missing url", position)
        return None
    duration = coerce_int(raw.get("duration"), 0)
    if duration < 0:
        duration = HIDDEN_DURATION
    return Site(
        url=url,
        duration=duration,
        username=_strip_or_none(raw.get("username")),
        password=raw.get("password") if isinstance(raw.get("password"), str) and raw.get("password") else None,
    )


def parse_config(data: Any) -> KioskConfig:
    """Build a KioskConfig from a decoded JSON document, defaulting bad fields."""
    if not isinstance(data, Mapping):
        LOGGER.warning("[config] Config document is not an object; using defaults")
        return KioskConfig()
    source: dict[str, Any] = dict(data)
    for old, new in _KEY_ALIASES.items():
        if old in source and new not in source:
            source[new] = source[old]

    raw_tabs = source.get("tabs")
    tabs: list[Site] = []
    kept_positions: list[int] = []
    if isinstance(raw_tabs, list):
        for position, raw in enumerate(raw_tabs):
            site = _parse_site(raw, position)
            if site:
                tabs.append(site)
                kept_positions.append(position)

    # homeTabIndex points into the document's tab list, dropped entries included
    home_raw = coerce_int(source.get("homeTabIndex"), -1)
    home_tab_index = -1
    if home_raw in kept_positions:
        home_tab_index = kept_positions.index(home_raw)
    elif home_raw != -1:
        LOGGER.warning("[config] homeTabIndex %d is not a usable tab; home feature disabled", home_raw)

    inactivity = coerce_int(source.get("inactivityTimeoutSeconds"), DEFAULT_INACTIVITY_TIMEOUT_SECONDS)
    if inactivity <= 0:
        inactivity = DEFAULT_INACTIVITY_TIMEOUT_SECONDS

    swipe_mode = str(source.get("swipeMode") or "standard").strip().lower()
    if swipe_mode not in SWIPE_MODES:
        swipe_mode = "standard"

    lockout_at_time = _strip_or_none(source.get("lockoutAtTime")) or ""
    if lockout_at_time:
        parsed = parse_hhmm(lockout_at_time)
        if parsed is None:
            LOGGER.warning("[config] Ignoring invalid lockoutAtTime '%s'", lockout_at_time)
            lockout_at_time = ""
        else:
            lockout_at_time = format_hhmm(*parsed)

    password_hash = (_strip_or_none(source.get("lockoutPasswordHash")) or "").lower()

    return KioskConfig(
        tabs=tuple(tabs),
        home_tab_index=home_tab_index,
        inactivity_timeout_seconds=inactivity,
        swipe_mode=swipe_mode,  # type: ignore[arg-type]
        allow_navigation=coerce_bool(source.get("allowNavigation"), True),
        enable_pause_button=coerce_bool(source.get("enablePauseButton"), True),
        enable_keyboard_button=coerce_bool(source.get("enableKeyboardButton"), True),
        enable_password_protection=coerce_bool(source.get("enablePasswordProtection"), False),
        lockout_password_hash=password_hash,
        lockout_timeout_minutes=max(0, coerce_int(source.get("lockoutTimeoutMinutes"), 0)),
        lockout_at_time=lockout_at_time,
        require_password_on_boot=coerce_bool(source.get("requirePasswordOnBoot"), False),
    )


def load_config(path: Path | str) -> KioskConfig:
    """Read the kiosk JSON document. Absent or corrupt files yield defaults."""
    config_path = Path(path)
    try:
        text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        LOGGER.warning("[config] Config file '%s' not found; no sites configured", config_path)
        return KioskConfig()
    except OSError as exc:
        LOGGER.error("[config] Failed to read config file '%s': %s", config_path, exc)
        return KioskConfig()
    try:
        data = json.loads(text)
    except ValueError as exc:
        LOGGER.error("[config] Config file '%s' is not valid JSON: %s", config_path, exc)
        return KioskConfig()
    config = parse_config(data)
    LOGGER.info(
        "[config] Loaded %d tab(s) from '%s' (home=%d, lockout=%s)",
        len(config.tabs),
        config_path,
        config.home_tab_index,
        "on" if config.lockout_enabled else "off",
    )
    return config


@dataclass(frozen=True)
class OverlayServerSettings:
    bind_address: str
    port: int
    allowed_origins: tuple[str, ...] = ("*",)

    @property
    def base_url(self) -> str:
        host = "127.0.0.1" if self.bind_address in {"0.0.0.0", ""} else self.bind_address  # nosec B104
        return f"http://{host}:{self.port}"


@dataclass(frozen=True)
class DevToolsSettings:
    discovery_url: str
    timeout: float


@dataclass(frozen=True)
class MqttSettings:
    host: str | None
    port: int
    username: str | None
    password: str | None
    topic_base: str


@dataclass(frozen=True)
class KioskSettings:
    config_path: Path
    boot_sentinel: Path
    wake_sentinel: Path
    pin_file: Path
    hostname: str
    media_probe: MediaProbeKind
    devtools: DevToolsSettings
    overlay: OverlayServerSettings
    mqtt: MqttSettings
    display_off_at: str | None = None
    display_on_at: str | None = None

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> KioskSettings:
        source = dict(os.environ if env is None else env)
        hostname = (source.get("KIOSK_HOSTNAME") or socket.gethostname()).strip()

        media_probe = (source.get("KIOSK_MEDIA_PROBE") or "dom").strip().lower()
        if media_probe not in MEDIA_PROBE_KINDS:
            LOGGER.warning("[config] Unknown KIOSK_MEDIA_PROBE '%s'; using 'dom'", media_probe)
            media_probe = "dom"

        overlay = OverlayServerSettings(
            bind_address=(source.get("KIOSK_OVERLAY_BIND") or "127.0.0.1").strip() or "127.0.0.1",
            port=parse_int(source.get("KIOSK_OVERLAY_PORT"), 8790),
            allowed_origins=tuple(split_csv(source.get("KIOSK_OVERLAY_ALLOWED_ORIGINS", "*"))) or ("*",),
        )
        devtools = DevToolsSettings(
            discovery_url=source.get("KIOSK_DEVTOOLS_URL", "http://localhost:9222/json"),
            timeout=parse_float(source.get("KIOSK_DEVTOOLS_TIMEOUT"), 3.0),
        )
        mqtt = MqttSettings(
            host=_strip_or_none(source.get("MQTT_HOST")),
            port=parse_int(source.get("MQTT_PORT"), 1883),
            username=_strip_or_none(source.get("MQTT_USER")),
            password=source.get("MQTT_PASS") or None,
            topic_base=f"kiosk/{sanitize_hostname_for_topic(hostname)}",
        )

        display_off_at = _strip_or_none(source.get("KIOSK_DISPLAY_OFF"))
        display_on_at = _strip_or_none(source.get("KIOSK_DISPLAY_ON"))
        if bool(display_off_at) != bool(display_on_at) or (
            display_off_at and (parse_hhmm(display_off_at) is None or parse_hhmm(display_on_at) is None)
        ):
            if display_off_at or display_on_at:
                LOGGER.warning("[config] Display schedule needs valid KIOSK_DISPLAY_OFF and KIOSK_DISPLAY_ON")
            display_off_at = display_on_at = None

        return KioskSettings(
            config_path=Path(source.get("KIOSK_CONFIG_PATH") or DEFAULT_CONFIG_PATH),
            boot_sentinel=Path(source.get("KIOSK_BOOT_SENTINEL") or DEFAULT_BOOT_SENTINEL),
            wake_sentinel=Path(source.get("KIOSK_WAKE_SENTINEL") or DEFAULT_WAKE_SENTINEL),
            pin_file=Path(source.get("KIOSK_PIN_FILE") or DEFAULT_PIN_FILE),
            hostname=hostname,
            media_probe=media_probe,  # type: ignore[arg-type]
            devtools=devtools,
            overlay=overlay,
            mqtt=mqtt,
            display_off_at=display_off_at,
            display_on_at=display_on_at,
        )
