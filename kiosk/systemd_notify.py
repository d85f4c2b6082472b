"""systemd notifications for the kiosk session service.

The unit runs with ``Type=notify`` and ``WatchdogSec=``. The session reports
ready once the first view is attached, pets the watchdog from the master
tick, and keeps the ``systemctl status`` line in step with what the kiosk is
showing. Without ``$NOTIFY_SOCKET`` (a terminal run) every call is a no-op.
"""

from __future__ import annotations

import logging
import os
import socket
from collections.abc import Mapping
from typing import Any

_logger = logging.getLogger(__name__)


def _send(*assignments: str) -> bool:
    """Send one datagram of newline-separated assignments. Returns True if sent."""
    addr = os.environ.get("NOTIFY_SOCKET")
    if not addr:
        return False
    if addr.startswith("@"):
        addr = "\0" + addr[1:]  # abstract socket
    message = "\n".join(assignments)
    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM) as sock:
            sock.sendto(message.encode(), addr)
    except OSError as exc:
        _logger.debug("[sd_notify] Failed to send %r: %s", message, exc)
        return False
    return True


def _status_assignment(text: str) -> str:
    return "STATUS=" + " ".join(text.split())


def describe_session(state: Mapping[str, Any]) -> str:
    """Status line for a controller ``describe()`` snapshot."""
    if state.get("locked"):
        return "Locked, waiting for password"
    if not state.get("site_count"):
        return "No sites configured"
    tab = state.get("tab_index")
    where = f"tab {tab}" if tab is not None else "no site"
    if state.get("showing_hidden"):
        where = f"hidden {where}"
    extras = []
    if state.get("dialog"):
        extras.append(f"{state['dialog']} dialog open")
    if state.get("media_playing"):
        extras.append("media playing")
    suffix = f" ({', '.join(extras)})" if extras else ""
    return f"Showing {where}{suffix}"


def ready(status_text: str | None = None) -> bool:
    """The first view is attached; optionally set the status line with it."""
    assignments = ["READY=1"]
    if status_text:
        assignments.append(_status_assignment(status_text))
    return _send(*assignments)


def watchdog() -> bool:
    return _send("WATCHDOG=1")


def status(text: str) -> bool:
    return _send(_status_assignment(text))


def stopping() -> bool:
    return _send("STOPPING=1", "STATUS=Shutting down")
