"""Tests for the kiosk service's systemd notifications."""

from __future__ import annotations

import socket

import pytest
from kiosk import systemd_notify


@pytest.fixture
def notify_socket(tmp_path_factory, monkeypatch):
    """A bound datagram socket standing in for systemd's notify socket."""
    path = tmp_path_factory.mktemp("sd") / "notify"
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
    sock.bind(str(path))
    sock.settimeout(2)
    monkeypatch.setenv("NOTIFY_SOCKET", str(path))
    yield sock
    sock.close()


def received(sock) -> list[str]:
    return sock.recv(4096).decode().split("\n")


class TestLifecycle:
    def test_ready_carries_initial_status(self, notify_socket):
        assert systemd_notify.ready("Showing tab 0") is True
        assert received(notify_socket) == ["READY=1", "STATUS=Showing tab 0"]

    def test_ready_without_status(self, notify_socket):
        systemd_notify.ready()
        assert received(notify_socket) == ["READY=1"]

    def test_watchdog_from_tick(self, notify_socket):
        systemd_notify.watchdog()
        assert received(notify_socket) == ["WATCHDOG=1"]

    def test_status_collapses_whitespace(self, notify_socket):
        systemd_notify.status("Locked,\n  waiting")
        assert received(notify_socket) == ["STATUS=Locked, waiting"]

    def test_stopping_updates_status(self, notify_socket):
        systemd_notify.stopping()
        assert received(notify_socket) == ["STOPPING=1", "STATUS=Shutting down"]


class TestSocketHandling:
    def test_terminal_run_is_noop(self, monkeypatch):
        monkeypatch.delenv("NOTIFY_SOCKET", raising=False)
        assert systemd_notify.watchdog() is False

    def test_abstract_socket_address(self, monkeypatch):
        sent = []

        class FakeSocket:
            def __init__(self, *_args):
                pass

            def __enter__(self):
                return self

            def __exit__(self, *_exc):
                return False

            def sendto(self, data, addr):
                sent.append((data, addr))

        monkeypatch.setattr(systemd_notify.socket, "socket", FakeSocket)
        monkeypatch.setenv("NOTIFY_SOCKET", "@/org/freedesktop/systemd1/notify")
        systemd_notify.ready()
        assert sent == [(b"READY=1", "\0/org/freedesktop/systemd1/notify")]

    def test_missing_socket_is_swallowed(self, tmp_path, monkeypatch):
        monkeypatch.setenv("NOTIFY_SOCKET", str(tmp_path / "gone"))
        assert systemd_notify.status("Showing tab 1") is False


@pytest.mark.parametrize(
    ("state", "expected"),
    [
        ({"locked": True, "site_count": 3, "tab_index": None}, "Locked, waiting for password"),
        ({"locked": False, "site_count": 0, "tab_index": None}, "No sites configured"),
        ({"site_count": 3, "tab_index": 2}, "Showing tab 2"),
        ({"site_count": 3, "tab_index": 4, "showing_hidden": True}, "Showing hidden tab 4"),
        (
            {"site_count": 3, "tab_index": 0, "dialog": "inactivity", "media_playing": True},
            "Showing tab 0 (inactivity dialog open, media playing)",
        ),
    ],
)
def test_describe_session(state, expected):
    assert systemd_notify.describe_session(state) == expected
