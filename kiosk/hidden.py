"""
Hidden-site gate

Sites configured with duration -1 never rotate. They live in a separate stack
reached by toggling: the first toggle asks for a PIN and shows hidden site 0,
further toggles step through the stack and the toggle after the last one
returns to normal rotation, which resumes on the view it left.

The PIN is a 4-8 digit number stored in plaintext in a small file, re-read on
every use so edits apply immediately. The word ``DISABLED`` in that file turns
the PIN prompt off. Unlike the lockout password the PIN is not hashed.
"""

from __future__ import annotations

import hmac
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from kiosk.dialogs import DialogCoordinator
    from kiosk.rotation import RotationEngine
    from kiosk.session import RuntimeSession
    from kiosk.sites import SiteRegistry

LOGGER = logging.getLogger(__name__)

PIN_DISABLED_SENTINEL = "DISABLED"
INCORRECT_PIN_MESSAGE = "Incorrect PIN"
INVALID_PIN_MESSAGE = "PIN must be 4-8 digits"

_PIN_RE = re.compile(r"[0-9]{4,8}")

ToggleResult = Literal["blocked", "no_hidden_sites", "unavailable", "pin_requested", "entered", "advanced", "returned"]
PinResult = Literal["blocked", "not_requested", "invalid", "incorrect", "unavailable", "accepted"]


def is_valid_pin(value: object) -> bool:
    return isinstance(value, str) and bool(_PIN_RE.fullmatch(value))


@dataclass(frozen=True)
class PinSetting:
    required: bool
    pin: str | None = None


class PinStore:
    def __init__(self, path: Path, logger: logging.Logger | None = None) -> None:
        self.path = path
        self.logger = logger or LOGGER

    def read(self) -> PinSetting | None:
        """Current PIN setting, or None when the store is missing or malformed."""
        try:
            raw = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as exc:
            self.logger.warning("[hidden] Cannot read PIN file '%s': %s", self.path, exc)
            return None
        if raw.upper() == PIN_DISABLED_SENTINEL:
            return PinSetting(required=False)
        if is_valid_pin(raw):
            return PinSetting(required=True, pin=raw)
        self.logger.warning("[hidden] PIN file '%s' does not hold a 4-8 digit PIN", self.path)
        return None


class HiddenSiteGate:
    def __init__(
        self,
        *,
        session: RuntimeSession,
        registry: SiteRegistry,
        engine: RotationEngine,
        dialogs: DialogCoordinator,
        pin_store: PinStore,
        logger: logging.Logger | None = None,
    ) -> None:
        self.session = session
        self.registry = registry
        self.engine = engine
        self.dialogs = dialogs
        self.pin_store = pin_store
        self.logger = logger or LOGGER

    def toggle(self, now: float) -> ToggleResult:
        if self.session.is_locked_out:
            return "blocked"
        if not self.registry.hidden:
            return "no_hidden_sites"
        if self.session.showing_hidden:
            next_index = (self.session.current_hidden_index or 0) + 1
            if next_index >= len(self.registry.hidden):
                self.logger.info("[hidden] Leaving hidden sites")
                self.engine.leave_hidden(now)
                return "returned"
            self.engine.show_hidden(next_index, now)
            return "advanced"

        setting = self.pin_store.read()
        if setting is None:
            self.logger.warning("[hidden] No usable PIN configured; hidden sites unavailable")
            return "unavailable"
        if not setting.required:
            self._enter(now)
            return "entered"
        self.dialogs.open("pin", now)
        return "pin_requested"

    def submit_pin(self, value: object, now: float) -> PinResult:
        if self.session.is_locked_out:
            return "blocked"
        if not self.dialogs.is_open("pin"):
            return "not_requested"
        if not is_valid_pin(value):
            self.dialogs.report_error("pin", INVALID_PIN_MESSAGE)
            return "invalid"
        setting = self.pin_store.read()
        if setting is None:
            self.dialogs.close("pin")
            return "unavailable"
        if setting.required and not hmac.compare_digest(str(value), setting.pin or ""):
            self.logger.info("[hidden] Incorrect PIN entered")
            self.dialogs.report_error("pin", INCORRECT_PIN_MESSAGE)
            return "incorrect"
        self.dialogs.close("pin")
        self._enter(now)
        return "accepted"

    def cancel_pin(self) -> bool:
        return self.dialogs.close("pin")

    def _enter(self, now: float) -> None:
        self.logger.info("[hidden] Entering hidden sites")
        self.session.reset_activity_baselines(now)
        self.engine.show_hidden(0, now)
