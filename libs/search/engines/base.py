"""Shared types for the search engine tiers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

import httpx

from libs.core.config import SearchSettings, get_settings
from libs.core.models import SearchResult
from libs.search.logger import SearchEngineName

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36"
)

BROWSER_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
}


@dataclass
class EngineResponse:
    """What a tier returns. ``status`` 0 means no HTTP response was received."""

    results: list[SearchResult] = field(default_factory=list)
    status: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return bool(self.results)


class SearchEngine(ABC):
    """
    One tier of the cascade.

    ``search`` never raises: network failures, timeouts and unusable pages
    all come back as an ``EngineResponse`` with an error string the cascade
    can classify.
    """

    name: SearchEngineName
    error_prefix: str

    def __init__(
        self,
        settings: Optional[SearchSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings().search
        self.transport = transport

    def client(self, timeout: Optional[float] = None, **kwargs) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout if timeout is not None else self.settings.timeout_seconds,
            follow_redirects=True,
            transport=self.transport,
            **kwargs,
        )

    @abstractmethod
    async def search(self, query: str) -> EngineResponse:
        ...

    def failure_from(self, exc: Exception, label: str, timeout_ms: int) -> EngineResponse:
        """Map a transport exception to the tier's timeout or network-error response."""
        if isinstance(exc, httpx.TimeoutException):
            return EngineResponse(status=408, error=f"{label} timed out after {timeout_ms}ms")
        return EngineResponse(status=0, error=f"{label} network error: {exc}")
