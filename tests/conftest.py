"""Shared test fixtures for the kiosk session test suite.

This module provides reusable fixtures for:
- A mock rendering host
- A controllable monotonic + wall clock
- Config and controller factories
- Sentinel and PIN files under tmp_path
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any
from unittest.mock import Mock

import paho.mqtt.client as mqtt
import pytest
from kiosk.config import KioskConfig, MqttSettings, Site
from kiosk.controller import KioskController
from kiosk.hidden import PinStore
from kiosk.host import KioskHost
from kiosk.lockout import SentinelFiles, hash_password

PASSWORD = "letmein"
PASSWORD_HASH = hash_password(PASSWORD)

# ============================================================================
# Pytest Configuration
# ============================================================================


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for async tests."""
    return "asyncio"


@pytest.fixture
def mock_logger():
    return Mock(spec=logging.Logger)


# ============================================================================
# Clock
# ============================================================================


class FakeClock:
    """Monotonic seconds plus a wall clock that moves in step with it."""

    def __init__(self, start: float = 1000.0, wall: datetime | None = None) -> None:
        self.now = start
        self._start = start
        self._wall_start = wall or datetime(2026, 3, 2, 9, 0, 0)

    def __call__(self) -> float:
        return self.now

    def wall(self) -> datetime:
        return self._wall_start + timedelta(seconds=self.now - self._start)

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


# ============================================================================
# Host and files
# ============================================================================


@pytest.fixture
def host():
    """Mock rendering host recording every surface call."""
    return Mock(spec=KioskHost)


@pytest.fixture
def sentinels(tmp_path):
    return SentinelFiles(tmp_path / "boot-occurred", tmp_path / "display-woke")


@pytest.fixture
def pin_file(tmp_path):
    return tmp_path / "hidden-pin"


@pytest.fixture
def pin_store(pin_file):
    return PinStore(pin_file)


# ============================================================================
# Factories
# ============================================================================


def sites(*durations: int) -> tuple[Site, ...]:
    """Sites named site0, site1, ... with the given durations."""
    return tuple(Site(url=f"https://example.test/site{i}", duration=d) for i, d in enumerate(durations))


@pytest.fixture
def make_config():
    """Factory fixture for configs.

    Usage:
        config = make_config(60, 0, -1, home_tab_index=0)
    """

    def _create(*durations: int, locked_policy: bool = False, **overrides: Any) -> KioskConfig:
        values: dict[str, Any] = {"tabs": sites(*durations)}
        if locked_policy:
            values["enable_password_protection"] = True
            values["lockout_password_hash"] = PASSWORD_HASH
        values.update(overrides)
        return KioskConfig(**values)

    return _create


@pytest.fixture
def make_controller(host, clock, sentinels, pin_store):
    """Factory fixture building a controller on the fake clock and mock host."""

    def _create(config: KioskConfig, **kwargs: Any) -> KioskController:
        kwargs.setdefault("pin_store", pin_store)
        kwargs.setdefault("sentinels", sentinels)
        return KioskController(config, host, clock=clock, wall_clock=clock.wall, **kwargs)

    return _create


def run_ticks(controller: KioskController, clock: FakeClock, seconds: int) -> list[str]:
    """Advance one second at a time, dispatching a Tick each step."""
    from kiosk.controller import Tick

    outcomes = []
    for _ in range(seconds):
        clock.advance(1)
        outcomes.append(controller.dispatch(Tick()))
    return outcomes


# ============================================================================
# MQTT
# ============================================================================


@pytest.fixture
def mqtt_settings():
    return MqttSettings(host="localhost", port=1883, username=None, password=None, topic_base="kiosk/lobby")


@pytest.fixture
def mock_mqtt_client():
    """Mock paho client with the calls KioskMqtt makes."""
    client = Mock(spec=mqtt.Client)
    message_info = Mock(spec=mqtt.MQTTMessageInfo)
    message_info.rc = mqtt.MQTT_ERR_SUCCESS
    client.publish = Mock(return_value=message_info)
    client.subscribe = Mock(return_value=(mqtt.MQTT_ERR_SUCCESS, 1))
    client.is_connected = Mock(return_value=True)
    return client
