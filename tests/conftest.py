# conftest.py
# Ensure the repository root is on sys.path so pytest can import the
# namespace packages (libs.*, apps.*) without an editable install.

import asyncio
import sys
from pathlib import Path
from typing import Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)

if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)

from apps.tools.memory import MemoryFactStore  # noqa: E402
from apps.tools.web import AppLaunch, Screenshot  # noqa: E402
from libs.core.config import NavigationSettings  # noqa: E402
from libs.core.exceptions import ToolError  # noqa: E402
from libs.core.models import FetchedPage, PageLink, SearchResult  # noqa: E402
from libs.navigation.orchestrator import NavigationOrchestrator  # noqa: E402
from libs.navigation.refusal import RefusalBypass  # noqa: E402
from libs.navigation.search_pages import SearchPageDetector  # noqa: E402
from libs.navigation.session import ConversationSession  # noqa: E402
from libs.search.cascade import SearchOutcome  # noqa: E402
from libs.search.logger import (  # noqa: E402
    SearchAttempt,
    SearchEngineName,
    SearchErrorCode,
    SearchLogger,
)


TEST_REGISTRY = {
    "sites": {
        "youtube": {
            "url": "https://youtube.com",
            "search": "https://www.youtube.com/results?search_query={query}",
        },
        "reddit": {
            "url": "https://www.reddit.com",
            "search": "https://www.reddit.com/search/?q={query}",
        },
        "wikipedia": {
            "url": "https://en.wikipedia.org",
            "search": "https://en.wikipedia.org/w/index.php?search={query}",
        },
    }
}


def make_page(url: str, links: Optional[list[tuple[str, str]]] = None, **kwargs) -> FetchedPage:
    """FetchedPage with (href, text) links."""
    kwargs.setdefault("title", url)
    kwargs.setdefault("content", f"Content of {url}")
    return FetchedPage(
        url=url,
        links=[PageLink(url=href, text=text) for href, text in (links or [])],
        **kwargs,
    )


class FakeModel:
    """
    Model collaborator with queued ``complete`` responses.

    A queued item may be a string, an exception to raise, or a callable
    taking the cancellation token and returning a string.
    """

    def __init__(self, responses=None, summary_chunks=None):
        self.responses = list(responses or [])
        self.summary_chunks = list(summary_chunks or [])
        self.calls: list[tuple[list, str]] = []
        self.stream_calls: list[list] = []

    async def complete(self, messages, system_prompt="", token=None):
        self.calls.append((messages, system_prompt))
        if not self.responses:
            return ""
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(token)
        return item

    async def stream(self, messages, system_prompt="", token=None):
        self.stream_calls.append(messages)
        for chunk in self.summary_chunks:
            yield chunk


class FakeTools:
    """Page tools backed by a url -> page map; unknown urls fail like a 404."""

    def __init__(self, pages=None, failing_apps=()):
        self.pages: dict[str, FetchedPage] = {}
        for page in pages or []:
            self.pages[page.url.rstrip("/")] = page
        self.failing_apps = set(failing_apps)
        self.fetched: list[str] = []
        self.apps: list[str] = []
        self.screenshots: list[str] = []

    async def fetch_page(self, url: str) -> FetchedPage:
        self.fetched.append(url)
        page = self.pages.get(url.rstrip("/"))
        if page is None:
            raise ToolError(f"HTTP 404 for {url}", tool="fetch", context={"url": url})
        return page

    async def screenshot(self, url: str) -> Screenshot:
        self.screenshots.append(url)
        return Screenshot(url=url, image="data:image/png;base64,iVBORw0KGgo=", title="Screenshot")

    async def open_app(self, app: str) -> AppLaunch:
        if app in self.failing_apps:
            raise ToolError(f"{app} is not installed", tool="open_app")
        self.apps.append(app)
        return AppLaunch(app=app, platform="linux")


class FakeSearch:
    """Search backend answering from a query -> results map with a real sealed log."""

    def __init__(self, results=None, delay: float = 0.0):
        self.results: dict[str, list[SearchResult]] = results or {}
        self.delay = delay
        self.queries: list[str] = []

    async def execute(self, query: str) -> SearchOutcome:
        self.queries.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)

        hits = self.results.get(query, [])
        log = SearchLogger(query)
        log.log_attempt(
            SearchAttempt(
                engine=SearchEngineName.RENDER_API,
                status_code=200,
                success=bool(hits),
                error=None if hits else "no results",
                retry_count=0,
            )
        )
        if hits:
            return SearchOutcome(results=hits, log=log.build_success(SearchEngineName.RENDER_API, len(hits)))
        entry = log.build_failure(
            SearchErrorCode.ALL_FALLBACKS_EXHAUSTED, "no results", SearchEngineName.RENDER_API, 1
        )
        return SearchOutcome(results=[], log=entry)


@pytest.fixture
def nav_settings():
    return NavigationSettings(auto_summarize=False)


@pytest.fixture
def memory_store():
    return MemoryFactStore(max_facts=50)


@pytest.fixture
def session():
    return ConversationSession(conversation_id="conv-1", user_id="user-1")


@pytest.fixture
def make_orchestrator(nav_settings, memory_store):
    """Build an orchestrator around fakes; keyword overrides for each collaborator."""

    def _make(model=None, tools=None, search=None, settings=None):
        return NavigationOrchestrator(
            model=model or FakeModel(),
            tools=tools or FakeTools(),
            search=search or FakeSearch(),
            memory=memory_store,
            settings=settings or nav_settings,
            refusal=RefusalBypass(TEST_REGISTRY),
            search_pages=SearchPageDetector(TEST_REGISTRY),
        )

    return _make
