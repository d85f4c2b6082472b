"""Tests for the display power schedule (kiosk/display.py)."""

from __future__ import annotations

from datetime import datetime, time
from unittest.mock import MagicMock, patch

import pytest
from kiosk.display import (
    apply_schedule,
    display_should_be_off,
    mark_display_woke,
    next_transition,
    parse_window,
    set_display_power,
)

OVERNIGHT = (time(22, 0), time(6, 30))


def test_parse_window():
    assert parse_window("22:00", "6:30") == OVERNIGHT
    with pytest.raises(ValueError):
        parse_window("22:00", "25:00")


@pytest.mark.parametrize(
    ("now", "expected"),
    [(time(21, 59), False), (time(22, 0), True), (time(3, 0), True), (time(6, 29), True), (time(6, 30), False)],
)
def test_overnight_window(now, expected):
    assert display_should_be_off(now, *OVERNIGHT) is expected


def test_same_day_window():
    assert display_should_be_off(time(13, 0), time(12, 0), time(14, 0)) is True
    assert display_should_be_off(time(14, 0), time(12, 0), time(14, 0)) is False


def test_equal_bounds_never_off():
    assert display_should_be_off(time(8, 0), time(8, 0), time(8, 0)) is False


def test_next_transition():
    assert next_transition(datetime(2026, 3, 2, 12, 0), *OVERNIGHT) == datetime(2026, 3, 2, 22, 0)
    assert next_transition(datetime(2026, 3, 2, 23, 0), *OVERNIGHT) == datetime(2026, 3, 3, 6, 30)
    assert next_transition(datetime(2026, 3, 3, 2, 0), *OVERNIGHT) == datetime(2026, 3, 3, 6, 30)


@patch("kiosk.display.subprocess.run")
def test_set_display_power(mock_run):
    mock_run.return_value = MagicMock(returncode=0, stderr="")
    assert set_display_power(False) is True
    assert mock_run.call_args.args[0] == ["xset", "dpms", "force", "off"]
    assert "DISPLAY" in mock_run.call_args.kwargs["env"]


@patch("kiosk.display.subprocess.run", side_effect=FileNotFoundError("xset"))
def test_set_display_power_missing_xset(_mock_run):
    assert set_display_power(True) is False


@patch("kiosk.display.subprocess.run")
def test_set_display_power_nonzero_exit(mock_run):
    mock_run.return_value = MagicMock(returncode=1, stderr="unable to open display\n")
    assert set_display_power(True) is False


def test_mark_display_woke_creates_parents(tmp_path):
    sentinel = tmp_path / "lib" / "kiosk" / "display-woke"
    assert mark_display_woke(sentinel) is True
    assert sentinel.exists()


class TestApplySchedule:
    @pytest.fixture(autouse=True)
    def power(self):
        with patch("kiosk.display.set_display_power", return_value=True) as mock_power:
            yield mock_power

    def test_wake_writes_sentinel(self, tmp_path, power):
        sentinel = tmp_path / "display-woke"
        assert apply_schedule(datetime(2026, 3, 3, 6, 30), *OVERNIGHT, sentinel, previous_off=True) is False
        power.assert_called_once_with(True)
        assert sentinel.exists()

    def test_startup_during_day_does_not_lock(self, tmp_path, power):
        sentinel = tmp_path / "display-woke"
        assert apply_schedule(datetime(2026, 3, 3, 9, 0), *OVERNIGHT, sentinel, previous_off=None) is False
        power.assert_called_once_with(True)
        assert not sentinel.exists()

    def test_no_change_is_noop(self, tmp_path, power):
        sentinel = tmp_path / "display-woke"
        assert apply_schedule(datetime(2026, 3, 3, 1, 0), *OVERNIGHT, sentinel, previous_off=True) is True
        power.assert_not_called()

    def test_blanking(self, tmp_path, power):
        sentinel = tmp_path / "display-woke"
        assert apply_schedule(datetime(2026, 3, 2, 22, 5), *OVERNIGHT, sentinel, previous_off=False) is True
        power.assert_called_once_with(False)
        assert not sentinel.exists()
