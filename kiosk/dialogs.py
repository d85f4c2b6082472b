"""
Modal dialog coordination

Four mutually exclusive overlays share one slot:

- inactivity: "are you still here" prompt raised by the home-return check.
  Choices: present, extend N minutes, return home. Resolves to return home
  after 15 seconds without an answer.
- pause: manually opened duration picker. Choices: extend N minutes or cancel.
- pin: numeric PIN entry guarding the hidden-site stack.
- lockout: password entry shown while locked. It has no timeout and nothing
  but a correct password closes it.

Opening a dialog replaces whatever is open, except that nothing replaces the
lockout dialog. Timeouts are resolved on the controller thread through
``expire()``; whichever of a response or a timeout arrives first clears the
slot, so the other becomes a no-op.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from kiosk.host import KioskHost
    from kiosk.session import RuntimeSession

LOGGER = logging.getLogger(__name__)

DialogKind = Literal["inactivity", "pause", "pin", "lockout"]
DialogChoice = Literal["present", "extend", "return_home", "cancel", "timeout"]

EXTENSION_CHOICES_MINUTES: tuple[int, ...] = (15, 30, 60, 120)
MAX_EXTENSION_SECONDS = 4 * 60 * 60

DIALOG_TIMEOUTS: dict[str, float | None] = {
    "inactivity": 15.0,
    "pause": 60.0,
    "pin": 60.0,
    "lockout": None,
}

_ALLOWED_CHOICES: dict[str, frozenset[str]] = {
    "inactivity": frozenset({"present", "extend", "return_home"}),
    "pause": frozenset({"extend", "cancel"}),
    "pin": frozenset({"cancel"}),
    "lockout": frozenset(),
}

_TIMEOUT_CHOICES: dict[str, DialogChoice] = {
    "inactivity": "return_home",
    "pause": "cancel",
    "pin": "cancel",
}


@dataclass(frozen=True)
class DialogResponse:
    choice: DialogChoice
    minutes: int | None = None


@dataclass(frozen=True)
class ActiveDialog:
    kind: DialogKind
    token: int
    opened_at: float
    deadline: float | None
    error: str | None = None

    def remaining(self, now: float) -> float | None:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - now)


def validate_response(kind: DialogKind, response: DialogResponse) -> None:
    """Raise ValueError when ``response`` is not a legal answer to ``kind``."""
    if response.choice not in _ALLOWED_CHOICES[kind]:
        raise ValueError(f"'{response.choice}' is not a valid response to the {kind} dialog")
    if response.choice == "extend" and response.minutes not in EXTENSION_CHOICES_MINUTES:
        raise ValueError(f"Extension must be one of {EXTENSION_CHOICES_MINUTES} minutes, got {response.minutes!r}")


def apply_extension(session: RuntimeSession, now: float, minutes: int) -> float:
    """Suspend inactivity transitions for ``minutes``, capped at four hours."""
    seconds = min(max(0, minutes) * 60, MAX_EXTENSION_SECONDS)
    session.inactivity_extension_until = now + seconds
    session.reset_activity_baselines(now)
    return session.inactivity_extension_until


class DialogCoordinator:
    """Owns the single modal slot and mirrors it onto the host."""

    def __init__(self, host: KioskHost, logger: logging.Logger | None = None) -> None:
        self.host = host
        self.logger = logger or LOGGER
        self._active: ActiveDialog | None = None
        self._tokens = itertools.count(1)

    @property
    def active(self) -> ActiveDialog | None:
        return self._active

    def is_open(self, kind: DialogKind | None = None) -> bool:
        if self._active is None:
            return False
        return kind is None or self._active.kind == kind

    def open(self, kind: DialogKind, now: float) -> ActiveDialog | None:
        """Show ``kind``, replacing any other dialog. Returns None if refused."""
        current = self._active
        if current is not None:
            if current.kind == "lockout":
                if kind == "lockout":
                    return current
                self.logger.debug("[dialogs] Refusing %s dialog while lockout is showing", kind)
                return None
            self.logger.debug("[dialogs] %s dialog replaces %s", kind, current.kind)
            self._dismiss(current)
        timeout = DIALOG_TIMEOUTS[kind]
        dialog = ActiveDialog(
            kind=kind,
            token=next(self._tokens),
            opened_at=now,
            deadline=None if timeout is None else now + timeout,
        )
        self._active = dialog
        self.logger.info("[dialogs] Showing %s dialog", kind)
        self._safe_host_call("show_dialog", dialog)
        return dialog

    def close(self, kind: DialogKind | None = None, *, force: bool = False) -> bool:
        """Close the active dialog (if it matches ``kind``).

        The lockout dialog only closes with ``force=True``, which the lockout
        state machine passes after a correct password.
        """
        current = self._active
        if current is None or (kind is not None and current.kind != kind):
            return False
        if current.kind == "lockout" and not force:
            return False
        self._dismiss(current)
        return True

    def take_response(self, kind: DialogKind, response: DialogResponse) -> ActiveDialog | None:
        """Consume a user answer for ``kind``; None if that dialog is not open."""
        current = self._active
        if current is None or current.kind != kind:
            self.logger.debug("[dialogs] Ignoring %s response; active=%s", kind, current.kind if current else None)
            return None
        validate_response(kind, response)
        self._dismiss(current)
        return current

    def expire(self, now: float) -> tuple[ActiveDialog, DialogResponse] | None:
        """Resolve a dialog whose deadline passed, returning its default answer."""
        current = self._active
        if current is None or current.deadline is None or now < current.deadline:
            return None
        self.logger.info("[dialogs] %s dialog timed out", current.kind)
        self._dismiss(current)
        return current, DialogResponse(_TIMEOUT_CHOICES[current.kind])

    def report_error(self, kind: DialogKind, message: str) -> None:
        """Keep ``kind`` open and ask the host to show ``message`` and clear input."""
        current = self._active
        if current is None or current.kind != kind:
            return
        self._active = replace(current, error=message)
        self._safe_host_call("notify_dialog_error", kind, message)

    def _dismiss(self, dialog: ActiveDialog) -> None:
        self._active = None
        self._safe_host_call("close_dialog", dialog.kind)

    def _safe_host_call(self, method: str, *args: object) -> None:
        try:
            getattr(self.host, method)(*args)
        except Exception as exc:
            self.logger.warning("[dialogs] Host %s failed: %s", method, exc)
