"""MQTT remote control for the kiosk.

Optional: nothing connects unless ``MQTT_HOST`` is set. Commands arrive on
``kiosk/<host>/{lock,home,media,navigate}`` and are posted to the controller
loop; the session state is published retained on ``kiosk/<host>/state``
whenever it changes.
"""

from __future__ import annotations

import concurrent.futures
import json
import logging
import threading
from collections.abc import Callable
from typing import Any

import paho.mqtt.client as mqtt

from kiosk.config import MqttSettings
from kiosk.controller import ForceLock, GoHome, GotoTab, KioskEvent, MediaStateChanged, Navigate
from kiosk.media import ExplicitMediaProbe

LOGGER = logging.getLogger(__name__)

_FALSE_WORDS = frozenset({"0", "false", "off", "no"})

PostEvent = Callable[[KioskEvent], concurrent.futures.Future]


class KioskMqtt:
    def __init__(self, settings: MqttSettings, logger: logging.Logger | None = None) -> None:
        self.settings = settings
        self._logger = logger or LOGGER
        self._client: mqtt.Client | None = None
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.settings.host)

    @property
    def availability_topic(self) -> str:
        return f"{self.settings.topic_base}/availability"

    def connect(self) -> bool:
        """Connect and start the network loop. Returns True once a client is running."""
        if not self.settings.host:
            self._logger.debug("[mqtt] MQTT host not configured; remote control disabled")
            return False
        with self._lock:
            if self._client is not None:
                return True
            callback_kwargs: dict[str, object] = {}
            if hasattr(mqtt, "CallbackAPIVersion"):
                callback_kwargs["callback_api_version"] = mqtt.CallbackAPIVersion.VERSION2
            client = mqtt.Client(
                client_id=f"kiosk-session-{self.settings.topic_base.replace('/', '-')}",
                clean_session=True,
                **callback_kwargs,
            )
            if self.settings.username:
                client.username_pw_set(self.settings.username, self.settings.password or "")
            client.will_set(self.availability_topic, payload="offline", qos=1, retain=True)
            try:
                client.connect(self.settings.host, self.settings.port, keepalive=30)
            except Exception as exc:
                self._logger.warning("[mqtt] Failed to connect to MQTT: %s", exc)
                return False
            client.loop_start()
            self._client = client
        self.publish(self.availability_topic, "online", retain=True, qos=1)
        return True

    def disconnect(self) -> None:
        with self._lock:
            client = self._client
            self._client = None
        if client:
            try:
                client.publish(self.availability_topic, payload="offline", qos=1, retain=True)
            except Exception as exc:
                self._logger.debug("[mqtt] Failed to publish offline state: %s", exc)
            client.loop_stop()
            client.disconnect()

    def is_connected(self) -> bool:
        client = self._client
        try:
            return bool(client and client.is_connected())
        except Exception:
            return False

    def publish(self, topic: str, payload: str, retain: bool = False, qos: int = 0) -> None:
        client = self._client
        if not client:
            return
        try:
            client.publish(topic, payload=payload, qos=qos, retain=retain)
        except Exception as exc:
            self._logger.debug("[mqtt] Failed to publish MQTT message: %s", exc)

    def subscribe(self, topic: str, on_message: Callable[[str], None]) -> None:
        client = self._client
        if not client:
            raise RuntimeError("MQTT client is not connected")

        def _callback(_client, _userdata, message):  # type: ignore[no-untyped-def]
            try:
                payload = message.payload.decode("utf-8", errors="ignore")
                on_message(payload)
            except Exception as exc:
                self._logger.error(
                    "[mqtt] MQTT subscriber callback failed for topic '%s': %s", topic, exc, exc_info=True
                )

        result, _mid = client.subscribe(topic)
        if result != mqtt.MQTT_ERR_SUCCESS:
            self._logger.warning("[mqtt] Failed to subscribe to topic: %s (rc=%s)", topic, result)
        client.message_callback_add(topic, _callback)


def parse_navigate_payload(payload: str) -> KioskEvent | None:
    """``next``/``prev``/``home``, a bare tab index, or ``{"tab": n}``."""
    text = payload.strip()
    lowered = text.lower()
    if lowered in {"next", "forward", "+1"}:
        return Navigate(1)
    if lowered in {"prev", "previous", "back", "-1"}:
        return Navigate(-1)
    if lowered == "home":
        return GoHome()
    if text.isdigit():
        return GotoTab(int(text))
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if isinstance(data, dict):
        tab = data.get("tab")
        if isinstance(tab, int) and not isinstance(tab, bool):
            return GotoTab(tab)
        direction = data.get("direction")
        if direction in (1, -1):
            return Navigate(direction)
    return None


def parse_media_payload(payload: str) -> bool | None:
    text = payload.strip().lower()
    if text in {"playing", "play", "on", "true", "1", "yes"}:
        return True
    if text in {"stopped", "stop", "paused", "idle", "off", "false", "0", "no"}:
        return False
    return None


class MqttCommandBridge:
    """Routes MQTT commands to the controller and publishes its state."""

    def __init__(
        self,
        client: KioskMqtt,
        post: PostEvent,
        *,
        media_probe: ExplicitMediaProbe | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.client = client
        self.post = post
        self.media_probe = media_probe
        self.logger = logger or LOGGER
        base = client.settings.topic_base
        self.topics = {
            "lock": f"{base}/lock",
            "home": f"{base}/home",
            "media": f"{base}/media",
            "navigate": f"{base}/navigate",
            "state": f"{base}/state",
        }

    def start(self) -> bool:
        if not self.client.connect():
            return False
        self.client.subscribe(self.topics["lock"], self.handle_lock)
        self.client.subscribe(self.topics["home"], self.handle_home)
        self.client.subscribe(self.topics["media"], self.handle_media)
        self.client.subscribe(self.topics["navigate"], self.handle_navigate)
        self.logger.info("[mqtt] Listening for commands under %s", self.client.settings.topic_base)
        return True

    def stop(self) -> None:
        self.client.disconnect()

    def handle_lock(self, payload: str) -> None:
        if payload.strip().lower() in _FALSE_WORDS:
            self.logger.debug("[mqtt] Ignoring lock payload %r", payload)
            return
        self._post(ForceLock())

    def handle_home(self, _payload: str) -> None:
        self._post(GoHome())

    def handle_media(self, payload: str) -> None:
        playing = parse_media_payload(payload)
        if playing is None:
            self.logger.warning("[mqtt] Unrecognised media payload %r", payload)
            return
        if self.media_probe is not None:
            self.media_probe.set_playing(playing)
            return
        self._post(MediaStateChanged(playing))

    def handle_navigate(self, payload: str) -> None:
        event = parse_navigate_payload(payload)
        if event is None:
            self.logger.warning("[mqtt] Unrecognised navigate payload %r", payload)
            return
        self._post(event)

    def publish_state(self, state: dict[str, Any]) -> None:
        self.client.publish(self.topics["state"], json.dumps(state, sort_keys=True), retain=True, qos=1)

    def _post(self, event: KioskEvent) -> None:
        future = self.post(event)
        future.add_done_callback(self._log_failure)

    def _log_failure(self, future: concurrent.futures.Future) -> None:
        exc = future.exception()
        if exc is not None:
            self.logger.warning("[mqtt] Command failed: %s", exc)
