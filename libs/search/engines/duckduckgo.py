"""
Tier 2: DuckDuckGo HTML endpoints.

Tries lite.duckduckgo.com first (least bot detection), then the html and
legacy endpoints. Cookies persist across calls on the engine instance.
"""

import logging
from typing import Optional
from urllib.parse import parse_qs, unquote, urlparse

import httpx
from bs4 import BeautifulSoup

from libs.core.models import SearchResult
from libs.search.engines.base import BROWSER_HEADERS, EngineResponse, SearchEngine
from libs.search.logger import SearchEngineName

logger = logging.getLogger(__name__)

ENDPOINTS = [
    ("https://lite.duckduckgo.com/lite/", "https://lite.duckduckgo.com/"),
    ("https://html.duckduckgo.com/html/", "https://duckduckgo.com/"),
    ("https://duckduckgo.com/html/", "https://duckduckgo.com/"),
]

BLOCK_MARKERS = (
    "failed to get the vqd",
    "automated",
    "suspicious activity",
    "access denied",
    "captcha",
    "rate limit",
    "too many requests",
    "unusual traffic",
    "anomaly-modal",
)

MAX_RESULTS = 25


def is_blocked(html: str) -> bool:
    lowered = html.lower()
    return any(marker in lowered for marker in BLOCK_MARKERS)


def decode_result_url(raw: str) -> str:
    """Unwrap DuckDuckGo's ``/l/?uddg=<url>`` redirect links."""
    raw = (raw or "").strip()
    if raw.startswith("//"):
        raw = "https:" + raw
    parsed = urlparse(raw)
    if parsed.path.startswith("/l/") or "uddg=" in parsed.query:
        target = parse_qs(parsed.query).get("uddg")
        if target:
            return unquote(target[0])
    return raw


def extract_results(html: str) -> list[SearchResult]:
    soup = BeautifulSoup(html, "html.parser")
    results: list[SearchResult] = []

    # html / legacy endpoints
    for anchor in soup.select("a.result__a"):
        url = decode_result_url(anchor.get("href", ""))
        title = anchor.get_text(" ", strip=True)
        if not title or not url.startswith("http"):
            continue
        container = anchor.find_parent(class_="result")
        snippet_el = container.select_one(".result__snippet") if container else None
        snippet = snippet_el.get_text(" ", strip=True) if snippet_el else ""
        results.append(SearchResult(title=title, url=url, snippet=snippet))
        if len(results) >= MAX_RESULTS:
            return results

    if results:
        return results

    # lite endpoint: table rows, snippet in the following row
    for anchor in soup.select("a.result-link"):
        url = decode_result_url(anchor.get("href", ""))
        title = anchor.get_text(" ", strip=True)
        if not title or not url.startswith("http"):
            continue
        snippet = ""
        row = anchor.find_parent("tr")
        next_row = row.find_next_sibling("tr") if row else None
        snippet_el = next_row.select_one(".result-snippet") if next_row else None
        if snippet_el:
            snippet = snippet_el.get_text(" ", strip=True)
        results.append(SearchResult(title=title, url=url, snippet=snippet))
        if len(results) >= MAX_RESULTS:
            break

    return results


class DuckDuckGoEngine(SearchEngine):
    name = SearchEngineName.DUCKDUCKGO
    error_prefix = "DDG"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.cookies = httpx.Cookies()

    async def search(self, query: str) -> EngineResponse:
        timeout_ms = self.settings.timeout_ms
        last_status = 0
        last_error: Optional[str] = None

        async with self.client(cookies=self.cookies) as client:
            for endpoint, referer in ENDPOINTS:
                try:
                    response = await client.get(
                        endpoint,
                        params={"q": query},
                        headers={**BROWSER_HEADERS, "Referer": referer},
                    )
                except httpx.HTTPError as e:
                    failure = self.failure_from(e, "DuckDuckGo request", timeout_ms)
                    last_status, last_error = failure.status, failure.error
                    continue

                self.cookies.update(response.cookies)
                last_status = response.status_code

                if response.status_code != 200:
                    last_error = f"HTTP {response.status_code} from {endpoint}"
                    continue

                html = response.text
                if is_blocked(html):
                    last_status = 403
                    last_error = "DuckDuckGo VQD bot detection triggered"
                    logger.info(f"[search][duckduckgo] Blocked at {endpoint}")
                    continue

                results = extract_results(html)
                if not results:
                    last_error = "DuckDuckGo returned HTML but no extractable results"
                    continue

                return EngineResponse(results=results, status=200)

        return EngineResponse(status=last_status, error=last_error)
