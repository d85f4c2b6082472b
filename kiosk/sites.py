"""Site registry: visible/hidden partition and stable index mapping."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType

from kiosk.config import Site

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ViewRef:
    """A runtime view backed by one configured tab."""

    view_index: int
    tab_index: int
    site: Site
    hidden: bool = False

    @property
    def url(self) -> str:
        return self.site.load_url

    @property
    def duration(self) -> int:
        return self.site.duration


@dataclass(frozen=True)
class SiteRegistry:
    """Immutable partition of configured tabs, computed once per session.

    ``tab_index_to_view_index`` maps each configuration tab to its index in
    ``visible`` or ``hidden`` (whichever holds it) and is the only way other
    components resolve a tab index such as ``homeTabIndex``.
    """

    visible: tuple[ViewRef, ...]
    hidden: tuple[ViewRef, ...]
    tab_index_to_view_index: Mapping[int, int]

    @classmethod
    def load(cls, tabs: Sequence[Site]) -> SiteRegistry:
        visible: list[ViewRef] = []
        hidden: list[ViewRef] = []
        mapping: dict[int, int] = {}
        for tab_index, site in enumerate(tabs):
            if site.is_hidden:
                mapping[tab_index] = len(hidden)
                hidden.append(ViewRef(len(hidden), tab_index, site, hidden=True))
            else:
                mapping[tab_index] = len(visible)
                visible.append(ViewRef(len(visible), tab_index, site))
        LOGGER.debug("[sites] %d visible, %d hidden view(s)", len(visible), len(hidden))
        return cls(tuple(visible), tuple(hidden), MappingProxyType(mapping))

    @property
    def empty(self) -> bool:
        return not self.visible and not self.hidden

    def view_for_tab(self, tab_index: int) -> ViewRef | None:
        view_index = self.tab_index_to_view_index.get(tab_index)
        if view_index is None:
            return None
        for views in (self.visible, self.hidden):
            if view_index < len(views) and views[view_index].tab_index == tab_index:
                return views[view_index]
        return None

    def home_view_index(self, home_tab_index: int) -> int | None:
        """Visible view index of the home tab, or None when home is unusable."""
        if home_tab_index < 0:
            return None
        view = self.view_for_tab(home_tab_index)
        if view is None or view.hidden:
            return None
        return view.view_index

    def visible_view(self, index: int) -> ViewRef | None:
        if 0 <= index < len(self.visible):
            return self.visible[index]
        return None

    def hidden_view(self, index: int | None) -> ViewRef | None:
        if index is not None and 0 <= index < len(self.hidden):
            return self.hidden[index]
        return None

    def next_rotating_index(self, current: int) -> int | None:
        """Scan forward from ``current + 1``; first other view with duration > 0 wins."""
        count = len(self.visible)
        if count == 0:
            return None
        for step in range(1, count):
            candidate = (current + step) % count
            if self.visible[candidate].site.is_rotating:
                return candidate
        return None

    def first_rotating_index(self) -> int | None:
        for view in self.visible:
            if view.site.is_rotating:
                return view.view_index
        return 0 if self.visible else None

    def step_visible_index(self, current: int, direction: int) -> int | None:
        """Manual navigation: wrap through every visible view, manual ones included."""
        count = len(self.visible)
        if count == 0:
            return None
        step = 1 if direction >= 0 else -1
        return (current + step) % count
