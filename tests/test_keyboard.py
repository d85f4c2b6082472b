"""Tests for the on-screen keyboard controller."""

from __future__ import annotations

import pytest
from kiosk.keyboard import KEYBOARD_AUTO_CLOSED_EVENT, KeyboardController


@pytest.fixture
def keyboard(host):
    return KeyboardController(host)


class TestShowClose:
    def test_show_once(self, keyboard, host):
        assert keyboard.show(0.0) is True
        assert keyboard.show(1.0) is False
        host.show_keyboard.assert_called_once()
        assert keyboard.last_used == 1.0

    def test_manual_close_does_not_notify_views(self, keyboard, host):
        keyboard.show(0.0)
        assert keyboard.close("manual", 1.0) is True
        host.hide_keyboard.assert_called_once()
        host.notify_views.assert_not_called()

    def test_auto_close_notifies_views(self, keyboard, host):
        keyboard.show(0.0)
        keyboard.close("auto", 40.0)
        host.notify_views.assert_called_once_with(KEYBOARD_AUTO_CLOSED_EVENT)

    def test_close_when_closed(self, keyboard, host):
        assert keyboard.close("manual", 0.0) is False
        host.hide_keyboard.assert_not_called()


class TestKeystrokes:
    def test_keystroke_forwards_and_refreshes(self, keyboard, host):
        keyboard.show(0.0)
        keyboard.register_keystroke(20.0, "a")
        host.send_key.assert_called_once_with("a")
        assert not keyboard.auto_close_due(50.0)
        assert keyboard.auto_close_due(50.1)

    def test_keystroke_while_closed_ignored(self, keyboard, host):
        keyboard.register_keystroke(1.0, "a")
        host.send_key.assert_not_called()


class TestAutoClose:
    def test_due_strictly_after_thirty_seconds(self, keyboard):
        keyboard.show(0.0)
        assert not keyboard.auto_close_due(30.0)
        assert keyboard.auto_close_due(30.5)

    def test_never_due_when_closed(self, keyboard):
        assert not keyboard.auto_close_due(1000.0)


class TestHostFailures:
    def test_failed_host_calls_are_logged(self, host, mock_logger):
        host.show_keyboard.side_effect = RuntimeError("browser gone")
        host.send_key.side_effect = RuntimeError("browser gone")
        keyboard = KeyboardController(host, logger=mock_logger)
        assert keyboard.show(0.0) is True
        keyboard.register_keystroke(1.0, "a")
        assert keyboard.is_open
        assert keyboard.last_used == 1.0
        assert mock_logger.error.call_count == 2
        assert keyboard.close("auto", 40.0) is True
        host.notify_views.assert_called_once()
