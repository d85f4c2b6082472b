#!/usr/bin/env python3
"""Blank the kiosk display overnight and flag the wake-up for the lockout."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from datetime import datetime
from pathlib import Path

try:
    from kiosk.config import KioskSettings
except ModuleNotFoundError:
    repo_dir = Path(__file__).resolve().parents[1]
    if str(repo_dir) not in sys.path:
        sys.path.insert(0, str(repo_dir))
    from kiosk.config import KioskSettings

from kiosk.display import apply_schedule, next_transition, parse_window

LOGGER = logging.getLogger("kiosk-display-schedule")


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--once", action="store_true", help="Apply the schedule once and exit")
    args = parser.parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    settings = KioskSettings.from_env()
    if not settings.display_off_at or not settings.display_on_at:
        LOGGER.info("KIOSK_DISPLAY_OFF/KIOSK_DISPLAY_ON not set; nothing to do")
        return 0
    off_at, on_at = parse_window(settings.display_off_at, settings.display_on_at)
    LOGGER.info("Display off %s-%s", settings.display_off_at, settings.display_on_at)

    display_off: bool | None = None
    while True:
        now = datetime.now()
        display_off = apply_schedule(now, off_at, on_at, settings.wake_sentinel, display_off)
        if args.once:
            return 0
        sleep_seconds = max(30, min(24 * 3600, int((next_transition(now, off_at, on_at) - now).total_seconds()) + 2))
        time.sleep(sleep_seconds)


if __name__ == "__main__":
    sys.exit(main())
