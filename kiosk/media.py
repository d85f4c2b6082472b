"""
Media playback probes

The rotation engine only asks one question, ``is_playing()``. Three probes
answer it:

- DomHeuristicMediaProbe: evaluates a script in the active view that looks for
  playing <video>/<audio> elements and recognised embedded players.
- ExplicitMediaProbe: state pushed in from outside (MQTT, HTTP).
- NullMediaProbe: never playing.

Probes must avoid false positives since a stuck "playing" blocks rotation
forever; any failure reads as "not playing".
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, Protocol

LOGGER = logging.getLogger(__name__)

MEDIA_POLL_INTERVAL_SECONDS = 3.0

# Muted autoplay loops (background videos) are not "watching" and must not
# hold rotation, hence the muted/volume check.
MEDIA_DETECTION_SCRIPT = """
(() => {
  const audible = (el) => !el.paused && !el.ended && el.readyState > 2 &&
    el.currentTime > 0 && !el.muted && el.volume > 0;
  for (const el of document.querySelectorAll('video, audio')) {
    if (audible(el)) { return true; }
  }
  if (document.querySelector('.html5-video-player.playing-mode:not(.unstarted-mode)')) {
    return true;
  }
  if (document.querySelector('.vjs-playing:not(.vjs-muted)')) {
    return true;
  }
  return false;
})()
""".strip()


class MediaProbe(Protocol):
    def is_playing(self) -> bool: ...


class NullMediaProbe:
    def is_playing(self) -> bool:
        return False


class ExplicitMediaProbe:
    """Media state reported by an external API; thread-safe."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._playing = False

    def set_playing(self, playing: bool) -> None:
        with self._lock:
            self._playing = playing

    def is_playing(self) -> bool:
        with self._lock:
            return self._playing


class DomHeuristicMediaProbe:
    """Runs ``MEDIA_DETECTION_SCRIPT`` through an injected evaluator.

    ``evaluate`` receives the script and returns its value (the DevTools
    host's ``evaluate_in_active_view``). Anything but a literal ``True``
    counts as not playing.
    """

    def __init__(
        self,
        evaluate: Callable[[str], Any],
        logger: logging.Logger | None = None,
    ) -> None:
        self._evaluate = evaluate
        self.logger = logger or LOGGER

    def is_playing(self) -> bool:
        try:
            result = self._evaluate(MEDIA_DETECTION_SCRIPT)
        except Exception as exc:
            self.logger.debug("[media] Detection script failed: %s", exc)
            return False
        return result is True
