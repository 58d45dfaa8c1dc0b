"""
Search Cascade Logger - structured record of one fallback-cascade run.

One ``SearchLogger`` per query. Attempts are appended in the order engines
are tried; the run is sealed exactly once with ``build_success`` or
``build_failure``, which produce an immutable ``SearchLogEntry``.

Each attempt carries the fallback level of its engine: the 1-based position
of that engine among the distinct engines tried so far in this run. Going
back to an engine that was already left behind is rejected.
"""

import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from libs.core.exceptions import SearchLogError

logger = logging.getLogger(__name__)


class SearchEngineName(str, Enum):
    RENDER_API = "render-api"
    DUCKDUCKGO = "duckduckgo"
    GOOGLE_SCRAPE = "google-scrape"
    SERPER = "serper"
    PUPPETEER = "puppeteer"


class SearchErrorCode(str, Enum):
    RENDER_TIMEOUT = "RENDER_TIMEOUT"
    RENDER_HTTP_ERROR = "RENDER_HTTP_ERROR"
    RENDER_EMPTY_RESULTS = "RENDER_EMPTY_RESULTS"
    RENDER_UNAVAILABLE = "RENDER_UNAVAILABLE"
    DDG_VQD_BLOCKED = "DDG_VQD_BLOCKED"
    DDG_BOT_DETECTION = "DDG_BOT_DETECTION"
    DDG_TIMEOUT = "DDG_TIMEOUT"
    DDG_EMPTY_RESULTS = "DDG_EMPTY_RESULTS"
    DDG_HTTP_ERROR = "DDG_HTTP_ERROR"
    SERPER_AUTH_FAILED = "SERPER_AUTH_FAILED"
    SERPER_RATE_LIMITED = "SERPER_RATE_LIMITED"
    SERPER_TIMEOUT = "SERPER_TIMEOUT"
    SERPER_EMPTY_RESULTS = "SERPER_EMPTY_RESULTS"
    SERPER_HTTP_ERROR = "SERPER_HTTP_ERROR"
    PUPPETEER_UNAVAILABLE = "PUPPETEER_UNAVAILABLE"
    PUPPETEER_TIMEOUT = "PUPPETEER_TIMEOUT"
    PUPPETEER_CRASH = "PUPPETEER_CRASH"
    PUPPETEER_EMPTY_RESULTS = "PUPPETEER_EMPTY_RESULTS"
    PUPPETEER_CAPTCHA = "PUPPETEER_CAPTCHA"
    GOOGLE_HTTP_ERROR = "GOOGLE_HTTP_ERROR"
    GOOGLE_TIMEOUT = "GOOGLE_TIMEOUT"
    GOOGLE_EMPTY_RESULTS = "GOOGLE_EMPTY_RESULTS"
    GOOGLE_CAPTCHA = "GOOGLE_CAPTCHA"
    ALL_FALLBACKS_EXHAUSTED = "ALL_FALLBACKS_EXHAUSTED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class SearchAttempt(BaseModel):
    """One try of one engine. Never mutated after it is logged."""

    model_config = ConfigDict(frozen=True)

    engine: SearchEngineName
    status_code: int = 0
    success: bool = False
    response_time_ms: int = 0
    error: Optional[str] = None
    retry_count: Optional[int] = None
    fallback_level: Optional[int] = None


class SearchError(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: SearchErrorCode
    message: str
    source: SearchEngineName
    fallback_level: int = Field(ge=1, le=5)
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class SearchLogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    query: str
    total_time_ms: int
    resolved_by: Optional[SearchEngineName] = None
    result_count: int = 0
    error: Optional[SearchError] = None
    attempts: tuple[SearchAttempt, ...] = ()


class SearchLogger:
    """Append-only attempt log for one cascade run, sealed exactly once."""

    def __init__(self, query: str):
        self.query = query
        self._started = time.monotonic()
        self._attempts: list[SearchAttempt] = []
        self._engines: list[SearchEngineName] = []
        self._entry: Optional[SearchLogEntry] = None

    @property
    def sealed(self) -> bool:
        return self._entry is not None

    @property
    def entry(self) -> Optional[SearchLogEntry]:
        return self._entry

    def level_of(self, engine: SearchEngineName) -> Optional[int]:
        """1-based position of the engine among the engines attempted so far."""
        if engine not in self._engines:
            return None
        return self._engines.index(engine) + 1

    def _elapsed_ms(self) -> int:
        return int((time.monotonic() - self._started) * 1000)

    def _check_open(self) -> None:
        if self._entry is not None:
            raise SearchLogError(
                f"Search log for '{self.query}' is already sealed",
                {"query": self.query, "attempts": len(self._attempts)},
            )

    def log_attempt(self, attempt: SearchAttempt) -> SearchAttempt:
        """Append an attempt, stamping its fallback level. Returns the stored attempt."""
        self._check_open()

        if not self._engines or self._engines[-1] != attempt.engine:
            if attempt.engine in self._engines:
                raise SearchLogError(
                    f"Engine {attempt.engine.value} was already left behind in this run",
                    {"query": self.query, "engines": [e.value for e in self._engines]},
                )
            self._engines.append(attempt.engine)

        level = len(self._engines)
        if attempt.fallback_level is not None and attempt.fallback_level != level:
            raise SearchLogError(
                f"Attempt for {attempt.engine.value} claims level {attempt.fallback_level}, expected {level}",
                {"query": self.query},
            )

        stored = attempt.model_copy(update={"fallback_level": level})
        self._attempts.append(stored)

        mark = "ok" if stored.success else "fail"
        retry = f" (retry {stored.retry_count})" if stored.retry_count is not None else ""
        err = f' err="{stored.error}"' if stored.error else ""
        logger.info(
            f"[search][{stored.engine.value}] {mark} status={stored.status_code} "
            f"time={stored.response_time_ms}ms level={level}{retry}{err}"
        )
        return stored

    def build_success(self, resolved_by: SearchEngineName, result_count: int) -> SearchLogEntry:
        self._check_open()
        if self.level_of(resolved_by) is None:
            raise SearchLogError(
                f"{resolved_by.value} resolved the search but was never attempted",
                {"query": self.query},
            )

        self._entry = SearchLogEntry(
            success=True,
            query=self.query,
            total_time_ms=self._elapsed_ms(),
            resolved_by=resolved_by,
            result_count=result_count,
            attempts=tuple(self._attempts),
        )
        logger.info(
            f"[search] resolved by {resolved_by.value} with {result_count} results "
            f"in {self._entry.total_time_ms}ms after {len(self._attempts)} attempt(s)"
        )
        return self._entry

    def build_failure(
        self,
        code: SearchErrorCode,
        message: str,
        source: SearchEngineName,
        fallback_level: int,
    ) -> SearchLogEntry:
        self._check_open()
        expected = self.level_of(source)
        if expected != fallback_level:
            raise SearchLogError(
                f"Fallback level {fallback_level} does not match position {expected} "
                f"of {source.value} in this run",
                {"query": self.query, "engines": [e.value for e in self._engines]},
            )

        self._entry = SearchLogEntry(
            success=False,
            query=self.query,
            total_time_ms=self._elapsed_ms(),
            error=SearchError(
                code=code,
                message=message,
                source=source,
                fallback_level=fallback_level,
            ),
            attempts=tuple(self._attempts),
        )
        logger.error(
            f'[search] all fallbacks exhausted for "{self.query}" after {len(self._attempts)} '
            f"attempt(s) in {self._entry.total_time_ms}ms, last error: {code.value} from {source.value}"
        )
        return self._entry

    def get_attempts(self) -> list[SearchAttempt]:
        return list(self._attempts)
