"""
Search Cascade - five engine tiers tried in order until one returns results.

Each tier gets up to ``max_retries`` tries with exponential backoff and
jitter between them. Errors that retrying cannot fix (missing keys, auth,
unavailable backends) escalate to the next tier straight away. Every try is
recorded in a ``SearchLogger``; the run ends with exactly one sealed
``SearchLogEntry``.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from libs.core.config import SearchSettings, get_settings
from libs.core.models import SearchResult
from libs.search.engines import EngineResponse, SearchEngine, default_engines
from libs.search.logger import (
    SearchAttempt,
    SearchErrorCode,
    SearchLogEntry,
    SearchLogger,
)

logger = logging.getLogger(__name__)

NON_RETRYABLE_MARKERS = ("not configured", "auth", "api_key", "unavailable")


def _code(prefix: str, suffix: str) -> SearchErrorCode:
    """Typed code for a tier, falling back to its generic HTTP error code."""
    for candidate in (f"{prefix}_{suffix}", f"{prefix}_HTTP_ERROR"):
        if candidate in SearchErrorCode.__members__:
            return SearchErrorCode[candidate]
    return SearchErrorCode.UNKNOWN_ERROR


def classify_error(prefix: str, response: EngineResponse) -> SearchErrorCode:
    """Map a failed engine response to a typed error code by status and message."""
    err = (response.error or "").lower()
    status = response.status

    if status in (401, 403):
        if "auth" in err or "api_key" in err or "key" in err:
            return _code(prefix, "AUTH_FAILED")
        if "captcha" in err or "bot" in err or "vqd" in err:
            return _code(prefix, "VQD_BLOCKED" if prefix == "DDG" else "CAPTCHA")
        return _code(prefix, "HTTP_ERROR")

    if "captcha" in err:
        return _code(prefix, "CAPTCHA")

    if status == 429 or "rate limit" in err:
        return _code(prefix, "RATE_LIMITED")

    if status == 408 or "timeout" in err or "timed out" in err:
        return _code(prefix, "TIMEOUT")

    if status == 200 and not response.results:
        return _code(prefix, "EMPTY_RESULTS")

    if "vqd" in err or "bot detection" in err:
        return _code(prefix, "BOT_DETECTION")

    if "unavailable" in err or "not configured" in err:
        return _code(prefix, "UNAVAILABLE")

    if "crash" in err:
        return _code(prefix, "CRASH")

    if status not in (0, 200):
        return _code(prefix, "HTTP_ERROR")

    return SearchErrorCode.UNKNOWN_ERROR


def is_non_retryable(response: EngineResponse) -> bool:
    err = (response.error or "").lower()
    return any(marker in err for marker in NON_RETRYABLE_MARKERS)


def backoff_delay_ms(attempt: int, base_ms: int, max_ms: int) -> float:
    """``min(base * 2^attempt + jitter, max)`` with jitter up to half of base."""
    jitter = random.random() * base_ms * 0.5
    return min(base_ms * (2 ** attempt) + jitter, max_ms)


@dataclass
class SearchOutcome:
    results: list[SearchResult] = field(default_factory=list)
    log: Optional[SearchLogEntry] = None

    @property
    def success(self) -> bool:
        return bool(self.log and self.log.success)


class SearchCascade:
    """Runs the tiers in order for one query at a time."""

    def __init__(
        self,
        engines: Optional[list[SearchEngine]] = None,
        settings: Optional[SearchSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings or get_settings().search
        self.engines = engines if engines is not None else default_engines(self.settings)
        if not self.engines:
            raise ValueError("SearchCascade needs at least one engine")
        self._sleep = sleep

    async def _try(self, engine: SearchEngine, query: str) -> tuple[EngineResponse, int]:
        started = time.monotonic()
        try:
            response = await engine.search(query)
        except Exception as e:
            logger.exception(f"[search][{engine.name.value}] Engine raised")
            response = EngineResponse(status=0, error=f"Unexpected error in {engine.name.value}: {e}")
        return response, int((time.monotonic() - started) * 1000)

    async def execute(self, query: str) -> SearchOutcome:
        search_log = SearchLogger(query)
        max_retries = max(1, self.settings.max_retries)

        last_code = SearchErrorCode.UNKNOWN_ERROR
        last_message = ""
        last_engine = self.engines[0]

        for position, engine in enumerate(self.engines):
            retry = 0
            while retry < max_retries:
                if retry > 0:
                    delay = backoff_delay_ms(retry - 1, self.settings.backoff_base_ms, self.settings.backoff_max_ms)
                    logger.info(
                        f"[search][{engine.name.value}] backoff {round(delay)}ms "
                        f"before retry {retry + 1}/{max_retries}"
                    )
                    await self._sleep(delay / 1000)

                response, elapsed_ms = await self._try(engine, query)
                search_log.log_attempt(
                    SearchAttempt(
                        engine=engine.name,
                        status_code=response.status,
                        success=response.ok,
                        response_time_ms=elapsed_ms,
                        error=response.error,
                        retry_count=retry,
                    )
                )

                if response.ok:
                    entry = search_log.build_success(engine.name, len(response.results))
                    return SearchOutcome(results=response.results, log=entry)

                last_code = classify_error(engine.error_prefix, response)
                last_message = response.error or f"{engine.name.value} returned no results"
                last_engine = engine

                if is_non_retryable(response):
                    logger.info(f"[search][{engine.name.value}] non-retryable error, escalating")
                    break
                retry += 1

            if position < len(self.engines) - 1:
                await self._sleep(self.settings.level_delay_ms / 1000)

        if last_code == SearchErrorCode.UNKNOWN_ERROR:
            last_code = SearchErrorCode.ALL_FALLBACKS_EXHAUSTED
        entry = search_log.build_failure(
            last_code,
            last_message,
            last_engine.name,
            search_log.level_of(last_engine.name),
        )
        return SearchOutcome(results=[], log=entry)


_cascade: Optional[SearchCascade] = None


def get_search_cascade() -> SearchCascade:
    """Get singleton search cascade."""
    global _cascade
    if _cascade is None:
        _cascade = SearchCascade()
    return _cascade
