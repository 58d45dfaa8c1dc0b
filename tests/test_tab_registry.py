"""
Unit tests for the tab registry and conversation session state.

Tests libs/navigation/tab_registry.py and libs/navigation/session.py
"""

import itertools
import random

import pytest

from libs.core.exceptions import TabNotFoundError
from libs.core.models import FetchedPage, MessageRole
from libs.navigation.session import CancellationToken, DeepReadChain, SessionStore
from libs.navigation.tab_registry import TabRegistry, favicon_for, find_tab


def active_ids(registry: TabRegistry) -> list[str]:
    return [t.id for t in registry.list() if t.active]


@pytest.fixture
def registry():
    registry = TabRegistry()
    registry.open("https://youtube.com", "YouTube")
    registry.open("https://www.reddit.com/r/cats", "r/cats")
    registry.open("https://en.wikipedia.org/wiki/Red_panda", "Red panda - Wikipedia")
    return registry


class TestTabRegistry:
    """Single-active invariant through open / switch / close."""

    def test_open_makes_new_tab_only_active(self, registry):
        tabs = registry.list()
        assert active_ids(registry) == [tabs[-1].id]
        assert registry.active.url == "https://en.wikipedia.org/wiki/Red_panda"

    def test_default_title_and_favicon(self):
        registry = TabRegistry()
        tab_id = registry.open("https://example.com/page")
        tab = registry.get(tab_id)
        assert tab.title == "example.com"
        assert tab.favicon_url == favicon_for("https://example.com/page")

    def test_switch(self, registry):
        first = registry.list()[0]
        registry.switch_to(first.id)
        assert active_ids(registry) == [first.id]

    def test_close_active_promotes_most_recent(self, registry):
        tabs = registry.list()
        registry.close(tabs[2].id)
        assert active_ids(registry) == [tabs[1].id]

    def test_close_inactive_keeps_active(self, registry):
        tabs = registry.list()
        registry.close(tabs[0].id)
        assert active_ids(registry) == [tabs[2].id]
        assert len(registry) == 2

    def test_close_all_leaves_none_active(self, registry):
        for tab in registry.list():
            registry.close(tab.id)
        assert registry.active is None
        assert len(registry) == 0

    def test_unknown_id(self, registry):
        with pytest.raises(TabNotFoundError) as exc_info:
            registry.close("tab_missing")
        assert exc_info.value.reference == "tab_missing"

    @pytest.mark.parametrize("seed", range(20))
    def test_random_operations_keep_one_active(self, seed):
        rng = random.Random(seed)
        registry = TabRegistry()
        for step in range(100):
            tabs = registry.list()
            operation = rng.choice(["open", "close", "switch"]) if tabs else "open"
            if operation == "open":
                registry.open(f"https://site{step}.example/")
            elif operation == "close":
                registry.close(rng.choice(tabs).id)
            else:
                registry.switch_to(rng.choice(tabs).id)

            assert len(active_ids(registry)) == (1 if len(registry) else 0)
            if len(registry):
                assert registry.active.id == active_ids(registry)[0]
            else:
                assert registry.active is None

    @pytest.mark.parametrize("operations", list(itertools.product("ocs", repeat=5)))
    def test_every_short_sequence_keeps_one_active(self, operations):
        registry = TabRegistry()
        for step, operation in enumerate(operations):
            tabs = registry.list()
            if operation == "o" or not tabs:
                registry.open(f"https://site{step}.example/")
            elif operation == "c":
                registry.close(tabs[step % len(tabs)].id)
            else:
                registry.switch_to(tabs[step % len(tabs)].id)
            assert len(active_ids(registry)) == (1 if len(registry) else 0)


class TestFindTab:
    """Human references to tabs."""

    @pytest.mark.parametrize(
        "reference,expected_url",
        [
            ("1", "https://youtube.com"),
            ("#2", "https://www.reddit.com/r/cats"),
            ("second", "https://www.reddit.com/r/cats"),
            ("last", "https://en.wikipedia.org/wiki/Red_panda"),
            ("reddit", "https://www.reddit.com/r/cats"),
            ("Red Panda", "https://en.wikipedia.org/wiki/Red_panda"),
            ("current", "https://en.wikipedia.org/wiki/Red_panda"),
        ],
    )
    def test_references(self, registry, reference, expected_url):
        assert find_tab(registry, reference).url == expected_url

    def test_by_id(self, registry):
        tab = registry.list()[1]
        assert find_tab(registry, tab.id) is tab

    @pytest.mark.parametrize("reference", ["9", "twitch"])
    def test_no_match(self, registry, reference):
        with pytest.raises(TabNotFoundError):
            find_tab(registry, reference)

    def test_current_on_empty_registry(self):
        with pytest.raises(TabNotFoundError):
            find_tab(TabRegistry(), "current")


class TestSessionState:
    def test_deep_read_chain_is_immutable(self):
        chain = DeepReadChain(original_user_request="find the eevee video")
        child = chain.descend("https://videosite.com/")
        assert chain.depth == 0 and chain.visited_urls == frozenset()
        assert child.depth == 1
        assert child.original_user_request == "find the eevee video"
        assert child.has_visited("https://videosite.com")

    def test_cancellation_token(self):
        token = CancellationToken()
        assert not token.cancelled
        token.cancel("user hit stop")
        token.cancel("second call ignored")
        assert token.cancelled
        assert token.reason == "user hit stop"

    def test_session_store(self):
        store = SessionStore()
        session = store.get_or_create("conv-9", "user-9")
        assert store.get_or_create("conv-9") is session
        assert session.user_id == "user-9"
        assert store.drop("conv-9")
        assert store.get("conv-9") is None
        assert not store.drop("conv-9")

    def test_session_messages_and_pages(self, session):
        session.add_message(MessageRole.USER, "hi")
        reply = session.add_message(MessageRole.ASSISTANT, "hello!")
        session.add_message(MessageRole.ASSISTANT, "")
        assert session.find_message(reply.id) is reply
        assert session.recent_assistant_texts() == ["hello!"]

        session.remember_page(FetchedPage(url="https://a.com/"))
        assert "https://a.com/" in session.scraped_pages
