"""Display power schedule for the kiosk.

The screen is blanked between ``KIOSK_DISPLAY_OFF`` and ``KIOSK_DISPLAY_ON``
(an overnight window when off is later than on). Turning the display back on
drops the display-woke sentinel, which makes a password-protected kiosk lock
on its next tick.
"""

from __future__ import annotations

import logging
import os
import subprocess  # nosec B404 - display power relies on CLI calls
from datetime import datetime, time, timedelta
from pathlib import Path

from kiosk.utils import parse_hhmm

LOGGER = logging.getLogger(__name__)


def parse_window(off_at: str, on_at: str) -> tuple[time, time]:
    """Parse both ``HH:MM`` bounds; raises ValueError if either is invalid."""
    off = parse_hhmm(off_at)
    on = parse_hhmm(on_at)
    if off is None or on is None:
        raise ValueError(f"Invalid display window {off_at!r}-{on_at!r}")
    return time(*off), time(*on)


def display_should_be_off(now: time, off_at: time, on_at: time) -> bool:
    """True inside the off window. Equal bounds mean the display never turns off."""
    if off_at == on_at:
        return False
    if off_at < on_at:
        return off_at <= now < on_at
    return now >= off_at or now < on_at


def next_transition(now: datetime, off_at: time, on_at: time) -> datetime:
    """The next time the display state should change."""
    target = on_at if display_should_be_off(now.time(), off_at, on_at) else off_at
    candidate = now.replace(hour=target.hour, minute=target.minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def set_display_power(on: bool) -> bool:
    """Switch the panel with DPMS. Returns False when the command is unavailable."""
    env = dict(os.environ)
    env.setdefault("DISPLAY", ":0")
    command = ["xset", "dpms", "force", "on" if on else "off"]
    try:
        result = subprocess.run(  # nosec B603 B607 - hardcoded command array
            command,
            env=env,
            capture_output=True,
            text=True,
            check=False,
        )
    except (FileNotFoundError, OSError) as exc:
        LOGGER.warning("[display] %s failed: %s", " ".join(command), exc)
        return False
    if result.returncode != 0:
        LOGGER.warning("[display] %s exited %d: %s", " ".join(command), result.returncode, result.stderr.strip())
        return False
    return True


def mark_display_woke(sentinel: Path) -> bool:
    """Create the display-woke sentinel for the session controller to consume."""
    try:
        sentinel.parent.mkdir(parents=True, exist_ok=True)
        sentinel.touch()
    except OSError as exc:
        LOGGER.error("[display] Cannot write wake sentinel '%s': %s", sentinel, exc)
        return False
    return True


def apply_schedule(
    now: datetime,
    off_at: time,
    on_at: time,
    sentinel: Path,
    previous_off: bool | None,
) -> bool:
    """Bring the display in line with the schedule. Returns the new off state.

    The sentinel is written only on a real off -> on transition so a service
    restart during the day does not lock the kiosk.
    """
    should_be_off = display_should_be_off(now.time(), off_at, on_at)
    if should_be_off == previous_off:
        return should_be_off
    LOGGER.info("[display] Turning display %s", "off" if should_be_off else "on")
    set_display_power(not should_be_off)
    if previous_off and not should_be_off:
        mark_display_woke(sentinel)
    return should_be_off
