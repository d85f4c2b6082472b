"""Tests for kiosk/utils.py."""

from __future__ import annotations

import pytest
from kiosk.utils import (
    coerce_bool,
    coerce_int,
    format_hhmm,
    parse_bool,
    parse_float,
    parse_hhmm,
    parse_int,
    sanitize_hostname_for_topic,
    split_csv,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [("14:30", (14, 30)), (" 9:05 ", (9, 5)), ("00:00", (0, 0)), ("23:59", (23, 59))],
)
def test_parse_hhmm(value, expected):
    assert parse_hhmm(value) == expected


@pytest.mark.parametrize("value", [None, "", "24:00", "12:60", "1430", "12:3", "noon", "12:30:00"])
def test_parse_hhmm_rejects(value):
    assert parse_hhmm(value) is None


def test_format_hhmm():
    assert format_hhmm(9, 5) == "09:05"


def test_env_parsers():
    assert parse_bool(None, True) is True
    assert parse_bool(" Yes ") is True
    assert parse_bool("nope", True) is False
    assert parse_int("x", 7) == 7
    assert parse_int("8", 7) == 8
    assert parse_float("1.5", 0.0) == 1.5
    assert parse_float("", 2.0) == 2.0
    assert split_csv(" a, ,b ,") == ["a", "b"]
    assert split_csv(None) == []


def test_sanitize_hostname_for_topic():
    assert sanitize_hostname_for_topic("Lobby Kiosk.local") == "lobby_kiosk_local"


@pytest.mark.parametrize(
    ("value", "expected"),
    [(True, True), ("off", False), ("on", True), (0, False), (2.5, True), (None, True), ([], True)],
)
def test_coerce_bool(value, expected):
    assert coerce_bool(value, True) is expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [(5, 5), (5.9, 5), (" 12 ", 12), ("abc", -1), (True, -1), (None, -1), (float("inf"), -1), (float("nan"), -1)],
)
def test_coerce_int(value, expected):
    assert coerce_int(value, -1) == expected
