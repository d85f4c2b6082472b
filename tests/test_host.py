"""Tests for the background host worker (kiosk/host.py)."""

from __future__ import annotations

import threading
import time
from unittest.mock import Mock

import pytest
from conftest import run_ticks
from kiosk.config import Site
from kiosk.controller import KioskController
from kiosk.host import BackgroundHost, KioskHost
from kiosk.sites import ViewRef


@pytest.fixture
def inner():
    return Mock(spec=KioskHost)


@pytest.fixture
def background(inner, mock_logger):
    worker = BackgroundHost(inner, logger=mock_logger)
    yield worker
    worker.shutdown()


def test_calls_run_in_order(background, inner):
    site_view = ViewRef(view_index=0, tab_index=0, site=Site(url="https://example.test/", duration=30))
    background.detach_all()
    background.attach_view(site_view)
    background.set_pause_button_visible(True)
    background.send_key("a")
    background.shutdown()
    assert [call[0] for call in inner.method_calls] == [
        "detach_all",
        "attach_view",
        "set_pause_button_visible",
        "send_key",
    ]
    inner.attach_view.assert_called_once_with(site_view)


def test_stalled_host_does_not_block_caller(background, inner):
    release = threading.Event()
    inner.detach_all.side_effect = lambda: release.wait(5)
    background.detach_all()
    background.show_placeholder()
    # both calls returned while the worker is still stuck on the first one
    inner.show_placeholder.assert_not_called()
    release.set()
    background.shutdown()
    inner.show_placeholder.assert_called_once()


def test_failed_call_is_logged_and_later_calls_run(background, inner, mock_logger):
    inner.show_keyboard.side_effect = RuntimeError("browser gone")
    background.show_keyboard()
    background.hide_keyboard()
    background.shutdown()
    mock_logger.error.assert_called_once()
    inner.hide_keyboard.assert_called_once()


def test_run_returns_result_and_raises():
    inner = Mock()
    inner.evaluate_in_active_view.side_effect = [True, RuntimeError("detached")]
    worker = BackgroundHost(inner)
    try:
        assert worker.run("evaluate_in_active_view", "1", timeout=5) is True
        with pytest.raises(RuntimeError, match="detached"):
            worker.run("evaluate_in_active_view", "1", timeout=5)
    finally:
        worker.shutdown()


def test_controller_keeps_ticking_while_browser_stalls(inner, make_config, clock, sentinels, pin_store):
    release = threading.Event()
    inner.attach_view.side_effect = lambda _view: release.wait(5)
    worker = BackgroundHost(inner)
    controller = KioskController(
        make_config(30, 30), worker, pin_store=pin_store, sentinels=sentinels, clock=clock, wall_clock=clock.wall
    )
    started = time.monotonic()
    try:
        controller.start()
        assert run_ticks(controller, clock, 3) == ["activity_hold"] * 3
        assert time.monotonic() - started < 2
    finally:
        release.set()
        worker.shutdown()
    inner.attach_view.assert_called_once()
