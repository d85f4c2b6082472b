"""User and media activity tracking."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from kiosk.dialogs import DialogCoordinator

if TYPE_CHECKING:
    from kiosk.session import RuntimeSession

LOGGER = logging.getLogger(__name__)

RECENT_ACTIVITY_SECONDS = 60.0
MEDIA_GRACE_SECONDS = 30.0


class ActivityTracker:
    """Records the last user input and media state change on the session."""

    def __init__(
        self,
        session: RuntimeSession,
        dialogs: DialogCoordinator,
        logger: logging.Logger | None = None,
    ) -> None:
        self.session = session
        self.dialogs = dialogs
        self.logger = logger or LOGGER

    def mark_user_activity(self, now: float) -> None:
        """Note user input. An open inactivity prompt counts as answered "present"."""
        self.session.reset_activity_baselines(now)
        if self.dialogs.is_open("inactivity"):
            self.logger.debug("[activity] Input while inactivity prompt open; dismissing")
            self.dialogs.close("inactivity")

    def mark_media_playing(self, now: float, playing: bool) -> bool:
        """Record a media poll result. Returns True when the state changed."""
        if playing == self.session.media_playing:
            return False
        self.session.media_playing = playing
        self.session.last_media_state_change = now
        self.logger.info("[activity] Media %s", "playing" if playing else "stopped")
        return True

    def idle_duration(self, now: float) -> float:
        return max(0.0, now - self.session.last_user_interaction)

    def is_user_recently_active(self, now: float) -> bool:
        return self.idle_duration(now) < RECENT_ACTIVITY_SECONDS

    def media_hold_active(self, now: float) -> bool:
        """Playing, or stopped less than the grace period ago."""
        if self.session.media_playing:
            return True
        changed = self.session.last_media_state_change
        return changed is not None and now - changed < MEDIA_GRACE_SECONDS
