"""Tests for ActivityTracker."""

from __future__ import annotations

import pytest
from kiosk.activity import ActivityTracker
from kiosk.dialogs import DialogCoordinator
from kiosk.session import RuntimeSession


@pytest.fixture
def session():
    return RuntimeSession.started_at(0.0)


@pytest.fixture
def dialogs(host):
    return DialogCoordinator(host)


@pytest.fixture
def tracker(session, dialogs):
    return ActivityTracker(session, dialogs)


class TestUserActivity:
    def test_updates_both_baselines(self, tracker, session):
        tracker.mark_user_activity(42.0)
        assert session.last_user_interaction == 42.0
        assert session.lockout_activity_time == 42.0

    def test_dismisses_inactivity_prompt(self, tracker, dialogs):
        dialogs.open("inactivity", 10.0)
        tracker.mark_user_activity(11.0)
        assert dialogs.active is None

    def test_leaves_other_dialogs(self, tracker, dialogs):
        dialogs.open("pin", 10.0)
        tracker.mark_user_activity(11.0)
        assert dialogs.is_open("pin")

    def test_recently_active_window(self, tracker):
        tracker.mark_user_activity(100.0)
        assert tracker.is_user_recently_active(159.9)
        assert not tracker.is_user_recently_active(160.0)
        assert tracker.idle_duration(160.0) == 60.0


class TestMedia:
    def test_only_transitions_update_timestamp(self, tracker, session):
        assert tracker.mark_media_playing(5.0, True) is True
        assert tracker.mark_media_playing(8.0, True) is False
        assert session.last_media_state_change == 5.0

    def test_hold_while_playing_and_grace(self, tracker):
        assert not tracker.media_hold_active(1.0)
        tracker.mark_media_playing(10.0, True)
        assert tracker.media_hold_active(500.0)
        tracker.mark_media_playing(500.0, False)
        assert tracker.media_hold_active(529.9)
        assert not tracker.media_hold_active(530.0)
