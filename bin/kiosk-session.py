#!/usr/bin/env python3
"""Kiosk session controller daemon."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path

try:
    from kiosk import systemd_notify
except ModuleNotFoundError:
    repo_dir = Path(__file__).resolve().parents[1]
    if str(repo_dir) not in sys.path:
        sys.path.insert(0, str(repo_dir))
    from kiosk import systemd_notify

from kiosk.config import KioskSettings, load_config
from kiosk.controller import KioskController
from kiosk.devtools import DevToolsClient, DevToolsHost
from kiosk.hidden import PinStore
from kiosk.host import BackgroundHost
from kiosk.lockout import SentinelFiles
from kiosk.media import (
    MEDIA_POLL_INTERVAL_SECONDS,
    DomHeuristicMediaProbe,
    ExplicitMediaProbe,
    MediaProbe,
    NullMediaProbe,
)
from kiosk.mqtt import KioskMqtt, MqttCommandBridge
from kiosk.overlay_server import KioskOverlayServer
from kiosk.pages import BridgeOptions

LOGGER = logging.getLogger("kiosk-session")


def build_media_probe(kind: str, host: BackgroundHost) -> MediaProbe:
    if kind == "dom":
        return DomHeuristicMediaProbe(
            lambda script: host.run("evaluate_in_active_view", script, timeout=MEDIA_POLL_INTERVAL_SECONDS)
        )
    if kind == "explicit":
        return ExplicitMediaProbe()
    return NullMediaProbe()


async def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--config", help="Path to the kiosk config.json (overrides KIOSK_CONFIG_PATH)")
    args = parser.parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    settings = KioskSettings.from_env()
    config = load_config(args.config or settings.config_path)
    LOGGER.info(
        "Loaded %d site(s); password protection %s", len(config.tabs), "on" if config.lockout_enabled else "off"
    )

    devtools = DevToolsClient(settings.devtools)
    host = BackgroundHost(
        DevToolsHost(devtools, settings.overlay.base_url, bridge_options=BridgeOptions.from_config(config))
    )
    media_probe = build_media_probe(settings.media_probe, host)

    mqtt_bridge: MqttCommandBridge | None = None

    def on_state_change(state: dict) -> None:
        systemd_notify.status(systemd_notify.describe_session(state))
        if mqtt_bridge:
            mqtt_bridge.publish_state(state)

    controller = KioskController(
        config,
        host,
        pin_store=PinStore(settings.pin_file),
        sentinels=SentinelFiles(settings.boot_sentinel, settings.wake_sentinel),
        media_probe=media_probe,
        on_state_change=on_state_change,
    )

    overlay = KioskOverlayServer(post=controller.post, settings=settings.overlay)
    overlay.start()

    if settings.mqtt.host:
        mqtt_bridge = MqttCommandBridge(
            KioskMqtt(settings.mqtt),
            controller.post,
            media_probe=media_probe if isinstance(media_probe, ExplicitMediaProbe) else None,
        )
        if not mqtt_bridge.start():
            mqtt_bridge = None

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _handle_signal(signum: int) -> None:
        LOGGER.info("Received signal %s, shutting down", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    run_task = asyncio.create_task(controller.run())
    run_task.add_done_callback(lambda _task: stop_event.set())
    await asyncio.sleep(0)
    systemd_notify.ready(systemd_notify.describe_session(controller.describe()))

    await stop_event.wait()
    systemd_notify.stopping()
    controller.request_stop()
    with contextlib.suppress(asyncio.CancelledError):
        await run_task
    overlay.stop()
    if mqtt_bridge:
        mqtt_bridge.stop()
    host.shutdown(wait=False)
    devtools.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
