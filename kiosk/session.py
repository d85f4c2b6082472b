"""In-memory runtime session shared by the engine, lockout and dialogs."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class RuntimeSession:
    """Mutable state for one kiosk process.

    Created once when the host is ready and passed by reference to every
    component; nothing keeps session state at module level. All timestamps
    are monotonic seconds.
    """

    current_visible_index: int = 0
    showing_hidden: bool = False
    current_hidden_index: int | None = None
    last_user_interaction: float = 0.0
    last_media_state_change: float | None = None
    media_playing: bool = False
    site_start_time: float = 0.0
    inactivity_extension_until: float | None = None
    is_locked_out: bool = False
    lockout_activity_time: float = 0.0
    last_lock_check_minute: str | None = None
    manual_navigation_mode: bool = False

    @classmethod
    def started_at(cls, now: float) -> RuntimeSession:
        return cls(last_user_interaction=now, site_start_time=now, lockout_activity_time=now)

    def extension_active(self, now: float) -> bool:
        until = self.inactivity_extension_until
        return until is not None and now < until

    def reset_activity_baselines(self, now: float) -> None:
        self.last_user_interaction = now
        self.lockout_activity_time = now

    def describe(self) -> dict[str, object]:
        """Diagnostic snapshot for logs and the state endpoint."""
        return {
            "visible_index": self.current_visible_index,
            "showing_hidden": self.showing_hidden,
            "hidden_index": self.current_hidden_index,
            "locked": self.is_locked_out,
            "media_playing": self.media_playing,
            "manual_navigation": self.manual_navigation_mode,
            "extension_until": self.inactivity_extension_until,
        }
