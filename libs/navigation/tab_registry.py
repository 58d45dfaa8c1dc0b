"""
Tab Registry - per-conversation ordered set of navigation targets.

Invariant: exactly one tab is active whenever the registry is non-empty,
and none when it is empty.
"""

import logging
from typing import Optional
from urllib.parse import urlparse

from libs.core.exceptions import TabNotFoundError
from libs.core.models import Tab
from libs.navigation.link_ranker import parse_ordinal

logger = logging.getLogger(__name__)


def favicon_for(url: str) -> Optional[str]:
    host = urlparse(url).netloc
    if not host:
        return None
    return f"https://www.google.com/s2/favicons?domain={host}&sz=16"


class TabRegistry:
    """Ordered tabs, most recently opened last."""

    def __init__(self):
        self._tabs: list[Tab] = []

    def __len__(self) -> int:
        return len(self._tabs)

    def open(self, url: str, title: Optional[str] = None) -> str:
        """Deactivate all tabs, append a new active one and return its id."""
        for tab in self._tabs:
            tab.active = False
        tab = Tab(
            url=url,
            title=title or urlparse(url).netloc or url,
            favicon_url=favicon_for(url),
            active=True,
        )
        self._tabs.append(tab)
        logger.info(f"[TabRegistry] Opened {tab.id}: {url}")
        return tab.id

    def close(self, tab_id: str) -> Tab:
        """Remove a tab; if it was active, the most recently opened remaining tab takes over."""
        tab = self.get(tab_id)
        self._tabs.remove(tab)
        if tab.active and self._tabs:
            self._tabs[-1].active = True
        logger.info(f"[TabRegistry] Closed {tab_id} ({len(self._tabs)} left)")
        return tab

    def switch_to(self, tab_id: str) -> Tab:
        target = self.get(tab_id)
        for tab in self._tabs:
            tab.active = tab is target
        return target

    def list(self) -> list[Tab]:
        return list(self._tabs)

    def get(self, tab_id: str) -> Tab:
        for tab in self._tabs:
            if tab.id == tab_id:
                return tab
        raise TabNotFoundError(tab_id)

    @property
    def active(self) -> Optional[Tab]:
        return next((t for t in self._tabs if t.active), None)

    def update_title(self, tab_id: str, title: str) -> None:
        self.get(tab_id).title = title


def find_tab(registry: TabRegistry, reference: str) -> Tab:
    """
    Resolve a human reference to a tab: a 1-indexed position ("2"), an
    ordinal word ("second", "last"), "current"/"active", or a case-insensitive
    substring of the tab's URL or title.

    Raises:
        TabNotFoundError: nothing matches
    """
    tabs = registry.list()
    ref = (reference or "").strip()
    lowered = ref.lower()

    if lowered in ("", "current", "active", "this", "this tab"):
        active = registry.active
        if active is None:
            raise TabNotFoundError(reference)
        return active

    digits = lowered.lstrip("#")
    if digits.isdigit():
        position = int(digits)
        if 1 <= position <= len(tabs):
            return tabs[position - 1]

    for tab in tabs:
        if tab.id == ref:
            return tab

    for tab in tabs:
        if lowered in tab.url.lower() or lowered in (tab.title or "").lower():
            return tab

    index = parse_ordinal(lowered)
    if index is not None and -len(tabs) <= index < len(tabs):
        return tabs[index]

    raise TabNotFoundError(reference)
