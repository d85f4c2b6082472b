"""Power menu actions requested from the hosting shell."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from kiosk.host import KioskHost

LOGGER = logging.getLogger(__name__)

PowerAction = Literal["poweroff", "restart", "reload"]
POWER_ACTIONS: tuple[PowerAction, ...] = ("poweroff", "restart", "reload")
LOCKED_POWER_ACTIONS: tuple[PowerAction, ...] = ("poweroff", "restart")


def available_actions(locked: bool) -> tuple[PowerAction, ...]:
    """Reload would reveal content, so it is withheld while locked."""
    return LOCKED_POWER_ACTIONS if locked else POWER_ACTIONS


class PowerMenu:
    def __init__(self, host: KioskHost, logger: logging.Logger | None = None) -> None:
        self.host = host
        self.logger = logger or LOGGER

    def request(self, action: str, *, locked: bool) -> bool:
        normalized = action.strip().lower()
        if normalized not in available_actions(locked):
            self.logger.warning("[power] Refusing '%s' (locked=%s)", action, locked)
            return False
        self.logger.info("[power] Requesting %s", normalized)
        self.host.request_power_action(normalized)  # type: ignore[arg-type]
        return True
