"""
Unit tests for the five-tier search cascade.

Tests libs/search/cascade.py with scripted engines and a recording sleep.
"""

import pytest

from libs.core.config import SearchSettings
from libs.core.models import SearchResult
from libs.search.cascade import (
    SearchCascade,
    backoff_delay_ms,
    classify_error,
    is_non_retryable,
)
from libs.search.engines import EngineResponse, SearchEngine
from libs.search.logger import SearchEngineName, SearchErrorCode

HITS = [
    SearchResult(url="https://cats.example/a", title="Cats A", snippet="all about cats"),
    SearchResult(url="https://cats.example/b", title="Cats B"),
]

NOT_CONFIGURED = EngineResponse(status=0, error="SEARCH_API_URL not configured, skipping render API")
DDG_BLOCKED = EngineResponse(status=403, error="DuckDuckGo VQD bot detection triggered")
GOOGLE_CAPTCHA = EngineResponse(status=429, error="Google captcha / bot detection triggered")
SERPER_NO_KEY = EngineResponse(status=401, error="SERPER_API_KEY not configured, skipping Serper")
BROWSER_UNAVAILABLE = EngineResponse(status=0, error="Neither key configured, browser search unavailable")


class ScriptedEngine(SearchEngine):
    """Engine returning queued responses; the last one repeats."""

    def __init__(self, name, prefix, responses, settings):
        super().__init__(settings=settings)
        self.name = name
        self.error_prefix = prefix
        self.responses = list(responses)
        self.calls = 0

    async def search(self, query):
        self.calls += 1
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def settings():
    return SearchSettings(max_retries=3, backoff_base_ms=100, backoff_max_ms=1000, level_delay_ms=200)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def build(settings, sleeps):
    async def record_sleep(seconds):
        sleeps.append(seconds)

    def _build(render, ddg, google, serper, puppeteer):
        engines = [
            ScriptedEngine(SearchEngineName.RENDER_API, "RENDER", render, settings),
            ScriptedEngine(SearchEngineName.DUCKDUCKGO, "DDG", ddg, settings),
            ScriptedEngine(SearchEngineName.GOOGLE_SCRAPE, "GOOGLE", google, settings),
            ScriptedEngine(SearchEngineName.SERPER, "SERPER", serper, settings),
            ScriptedEngine(SearchEngineName.PUPPETEER, "PUPPETEER", puppeteer, settings),
        ]
        return SearchCascade(engines=engines, settings=settings, sleep=record_sleep), engines

    return _build


class TestCascade:
    @pytest.mark.asyncio
    async def test_first_tier_success(self, build, sleeps):
        ok = EngineResponse(results=HITS, status=200)
        cascade, engines = build([ok], [ok], [ok], [ok], [ok])

        outcome = await cascade.execute("cats")

        assert outcome.success
        assert outcome.results == HITS
        assert outcome.log.resolved_by == SearchEngineName.RENDER_API
        assert outcome.log.result_count == 2
        assert [a.fallback_level for a in outcome.log.attempts] == [1]
        assert [e.calls for e in engines] == [1, 0, 0, 0, 0]
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_escalation_and_retry(self, build, sleeps):
        ok = EngineResponse(results=HITS, status=200)
        cascade, engines = build([NOT_CONFIGURED], [DDG_BLOCKED, ok], [ok], [ok], [ok])

        outcome = await cascade.execute("cats")

        assert outcome.log.resolved_by == SearchEngineName.DUCKDUCKGO
        attempts = outcome.log.attempts
        assert [(a.engine, a.retry_count, a.fallback_level, a.success) for a in attempts] == [
            (SearchEngineName.RENDER_API, 0, 1, False),
            (SearchEngineName.DUCKDUCKGO, 0, 2, False),
            (SearchEngineName.DUCKDUCKGO, 1, 2, True),
        ]
        assert engines[0].calls == 1
        # level delay after render, then one backoff before the ddg retry
        assert sleeps[0] == pytest.approx(0.2)
        assert 0.1 <= sleeps[1] <= 0.15

    @pytest.mark.asyncio
    async def test_all_tiers_exhausted(self, build):
        cascade, engines = build(
            [NOT_CONFIGURED], [DDG_BLOCKED], [GOOGLE_CAPTCHA], [SERPER_NO_KEY], [BROWSER_UNAVAILABLE]
        )

        outcome = await cascade.execute("cats")

        assert not outcome.success
        assert outcome.results == []
        assert [e.calls for e in engines] == [1, 3, 3, 1, 1]
        assert len(outcome.log.attempts) == 9
        error = outcome.log.error
        assert error.code == SearchErrorCode.PUPPETEER_UNAVAILABLE
        assert error.source == SearchEngineName.PUPPETEER
        assert error.fallback_level == 5

    @pytest.mark.asyncio
    async def test_unknown_last_error_becomes_exhausted(self, settings):
        settings.max_retries = 1
        engine = ScriptedEngine(
            SearchEngineName.RENDER_API, "RENDER", [EngineResponse(status=0, error="weird")], settings
        )

        async def no_sleep(_):
            return None

        outcome = await SearchCascade([engine], settings, sleep=no_sleep).execute("cats")

        assert outcome.log.error.code == SearchErrorCode.ALL_FALLBACKS_EXHAUSTED
        assert outcome.log.error.fallback_level == 1

    @pytest.mark.asyncio
    async def test_engine_exception_is_recorded(self, build):
        ok = EngineResponse(results=HITS, status=200)
        cascade, _ = build([RuntimeError("boom")], [ok], [ok], [ok], [ok])
        cascade.settings.max_retries = 1

        outcome = await cascade.execute("cats")

        first = outcome.log.attempts[0]
        assert not first.success
        assert "boom" in first.error
        assert outcome.log.resolved_by == SearchEngineName.DUCKDUCKGO

    def test_needs_an_engine(self, settings):
        with pytest.raises(ValueError):
            SearchCascade(engines=[], settings=settings)


class TestClassifyError:
    @pytest.mark.parametrize(
        "prefix,status,error,expected",
        [
            ("SERPER", 401, "SERPER_API_KEY not configured", SearchErrorCode.SERPER_AUTH_FAILED),
            ("DDG", 403, "DuckDuckGo VQD bot detection triggered", SearchErrorCode.DDG_VQD_BLOCKED),
            ("GOOGLE", 429, "Google captcha / bot detection triggered", SearchErrorCode.GOOGLE_CAPTCHA),
            ("SERPER", 429, "Serper API rate limit exceeded", SearchErrorCode.SERPER_RATE_LIMITED),
            ("DDG", 429, "HTTP 429", SearchErrorCode.DDG_HTTP_ERROR),
            ("RENDER", 408, "Render search API timed out after 20000ms", SearchErrorCode.RENDER_TIMEOUT),
            ("GOOGLE", 200, "no extractable results", SearchErrorCode.GOOGLE_EMPTY_RESULTS),
            ("PUPPETEER", 0, "Remote browser crashed: boom", SearchErrorCode.PUPPETEER_CRASH),
            ("RENDER", 0, "SEARCH_API_URL not configured", SearchErrorCode.RENDER_UNAVAILABLE),
            ("RENDER", 502, "HTTP 502", SearchErrorCode.RENDER_HTTP_ERROR),
            ("GOOGLE", 403, "Forbidden", SearchErrorCode.GOOGLE_HTTP_ERROR),
            ("PUPPETEER", 403, "ScraperAPI authentication failed", SearchErrorCode.UNKNOWN_ERROR),
        ],
    )
    def test_codes(self, prefix, status, error, expected):
        assert classify_error(prefix, EngineResponse(status=status, error=error)) == expected

    @pytest.mark.parametrize(
        "error,expected",
        [
            ("SERPER_API_KEY not configured", True),
            ("authentication failed", True),
            ("browser search unavailable", True),
            ("DuckDuckGo VQD bot detection triggered", False),
            (None, False),
        ],
    )
    def test_non_retryable(self, error, expected):
        assert is_non_retryable(EngineResponse(error=error)) is expected


class TestBackoff:
    def test_exponential_with_cap(self, monkeypatch):
        monkeypatch.setattr("libs.search.cascade.random.random", lambda: 1.0)
        assert backoff_delay_ms(0, 1000, 15000) == 1500
        assert backoff_delay_ms(2, 1000, 15000) == 4500
        assert backoff_delay_ms(5, 1000, 15000) == 15000

    def test_jitter_bounds(self):
        for attempt in range(4):
            delay = backoff_delay_ms(attempt, 1000, 60000)
            assert 1000 * 2 ** attempt <= delay <= 1000 * 2 ** attempt + 500
