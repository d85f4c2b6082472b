"""
Password lockout state machine

States are ``unlocked`` and ``locked``. The kiosk locks when:

- the wall clock reaches ``lockoutAtTime`` (evaluated once per changed minute),
- the user has been idle for ``lockoutTimeoutMinutes`` outside an extension
  window (0 disables this trigger),
- the display-woke sentinel appears (checked every tick), or
- the boot sentinel is present at startup and ``requirePasswordOnBoot`` is set.

Every trigger requires password protection to be enabled with a password
hash configured. Locking detaches every content surface before the password
dialog appears so nothing stays visible underneath it. Only a value whose
SHA-256 hex digest matches ``lockoutPasswordHash`` unlocks.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from kiosk.dialogs import DialogCoordinator

if TYPE_CHECKING:
    from kiosk.config import KioskConfig
    from kiosk.host import KioskHost
    from kiosk.session import RuntimeSession

LOGGER = logging.getLogger(__name__)

LockoutState = Literal["unlocked", "locked"]
LockReason = Literal["scheduled", "inactivity", "display_wake", "boot", "remote"]
UnlockResult = Literal["unlocked", "incorrect", "not_locked"]

INCORRECT_PASSWORD_MESSAGE = "Incorrect password"


def hash_password(value: str) -> str:
    """SHA-256 hex digest in the format stored as ``lockoutPasswordHash``."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


class SentinelFiles:
    """Zero-byte marker files dropped by boot and display-schedule tooling."""

    def __init__(self, boot: Path, wake: Path, logger: logging.Logger | None = None) -> None:
        self.boot = boot
        self.wake = wake
        self.logger = logger or LOGGER

    def consume(self, path: Path) -> bool:
        """Delete ``path`` if present. Returns True only if it existed and is gone.

        A marker that cannot be removed is reported as absent; acting on it
        would re-lock on every tick.
        """
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            self.logger.error("[lockout] Cannot remove sentinel '%s': %s", path, exc)
            return False
        self.logger.info("[lockout] Consumed sentinel '%s'", path)
        return True

    def consume_boot(self) -> bool:
        return self.consume(self.boot)

    def consume_wake(self) -> bool:
        return self.consume(self.wake)


class LockoutStateMachine:
    def __init__(
        self,
        session: RuntimeSession,
        config: KioskConfig,
        dialogs: DialogCoordinator,
        host: KioskHost,
        sentinels: SentinelFiles,
        logger: logging.Logger | None = None,
    ) -> None:
        self.session = session
        self.config = config
        self.dialogs = dialogs
        self.host = host
        self.sentinels = sentinels
        self.logger = logger or LOGGER
        self._on_unlock: Callable[[float], None] | None = None

    def set_unlock_callback(self, callback: Callable[[float], None]) -> None:
        """Set the callback that re-attaches the previously active view."""
        self._on_unlock = callback

    @property
    def state(self) -> LockoutState:
        return "locked" if self.session.is_locked_out else "unlocked"

    @property
    def is_locked(self) -> bool:
        return self.session.is_locked_out

    @property
    def policy_enabled(self) -> bool:
        return self.config.lockout_enabled

    def check_timers(self, now: float, wall_now: datetime) -> LockReason | None:
        """Evaluate the scheduled-time and inactivity triggers."""
        minute = wall_now.strftime("%H:%M")
        minute_changed = minute != self.session.last_lock_check_minute
        self.session.last_lock_check_minute = minute
        if self.session.is_locked_out or not self.policy_enabled:
            return None

        if minute_changed and self.config.lockout_at_time and minute == self.config.lockout_at_time:
            self.lock(now, "scheduled")
            return "scheduled"

        timeout_minutes = self.config.lockout_timeout_minutes
        if timeout_minutes > 0 and not self.session.extension_active(now):
            idle = now - self.session.lockout_activity_time
            if idle >= timeout_minutes * 60:
                self.lock(now, "inactivity")
                return "inactivity"
        return None

    def check_wake_signal(self, now: float) -> bool:
        if self.session.is_locked_out or not self.policy_enabled:
            return False
        if not self.sentinels.consume_wake():
            return False
        return self.lock(now, "display_wake")

    def discard_wake_signal(self) -> bool:
        """Consume a display-woke marker written while already locked so it cannot re-lock after unlock."""
        if not self.session.is_locked_out:
            return False
        return self.sentinels.consume_wake()

    def check_boot_signal(self, now: float) -> bool:
        if not (self.policy_enabled and self.config.require_password_on_boot):
            return False
        if not self.sentinels.consume_boot():
            return False
        return self.lock(now, "boot")

    def lock(self, now: float, reason: LockReason) -> bool:
        """Enter the locked state. Returns False when already locked or disabled."""
        if self.session.is_locked_out:
            return False
        if not self.policy_enabled:
            self.logger.debug("[lockout] Ignoring %s lock; password protection is off", reason)
            return False
        self.session.is_locked_out = True
        self.logger.info("[lockout] Locking kiosk (%s)", reason)
        try:
            self.host.detach_all()
        except Exception as exc:
            self.logger.error("[lockout] Failed to detach views: %s", exc)
        self.dialogs.open("lockout", now)
        return True

    def verify_password(self, value: object) -> bool:
        expected = self.config.lockout_password_hash
        if not expected or not isinstance(value, str):
            return False
        try:
            digest = hash_password(value)
        except (UnicodeError, ValueError) as exc:
            self.logger.debug("[lockout] Password hashing failed: %s", exc)
            return False
        return hmac.compare_digest(digest, expected)

    def submit_password(self, value: object, now: float) -> UnlockResult:
        if not self.session.is_locked_out:
            return "not_locked"
        if not self.verify_password(value):
            self.logger.info("[lockout] Incorrect password submitted")
            self.dialogs.report_error("lockout", INCORRECT_PASSWORD_MESSAGE)
            return "incorrect"
        self.session.is_locked_out = False
        self.session.reset_activity_baselines(now)
        self.dialogs.close("lockout", force=True)
        self.logger.info("[lockout] Unlocked")
        if self._on_unlock:
            self._on_unlock(now)
        return "unlocked"
