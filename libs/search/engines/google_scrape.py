"""Tier 3: direct Google HTML scrape, no API key needed."""

import logging
from urllib.parse import parse_qs, urlparse

import httpx
from bs4 import BeautifulSoup

from libs.core.models import SearchResult
from libs.search.engines.base import BROWSER_HEADERS, EngineResponse, SearchEngine
from libs.search.logger import SearchEngineName

logger = logging.getLogger(__name__)

GOOGLE_SEARCH_URL = "https://www.google.com/search"
CAPTCHA_MARKERS = ("unusual traffic", "captcha", "sorry/index")


def has_captcha(html: str) -> bool:
    lowered = html.lower()
    return any(marker in lowered for marker in CAPTCHA_MARKERS)


def google_search_params(query: str) -> dict[str, str]:
    return {"q": query, "hl": "en", "num": "15"}


def _result_url(href: str) -> str:
    if href.startswith("/url?"):
        target = parse_qs(urlparse(href).query).get("q")
        return target[0] if target else ""
    return href


def extract_google_results(html: str, limit: int = 15) -> list[SearchResult]:
    """
    Result links are anchors wrapping an ``h3`` title, usually through
    Google's ``/url?q=`` redirect. Falls back to pairing ``cite`` and ``h3``
    elements in document order.
    """
    soup = BeautifulSoup(html, "html.parser")
    results: list[SearchResult] = []
    seen: set[str] = set()

    for anchor in soup.select("a[href]"):
        heading = anchor.find("h3")
        if heading is None:
            continue
        url = _result_url(anchor["href"])
        title = heading.get_text(" ", strip=True)
        if not title or not url.startswith("http") or url in seen:
            continue
        if "google.com" in url or "youtube.com/results" in url:
            continue
        seen.add(url)
        results.append(SearchResult(title=title, url=url))
        if len(results) >= limit:
            return results

    if results:
        return results

    cites = [c.get_text("", strip=True) for c in soup.find_all("cite")]
    titles = [h.get_text(" ", strip=True) for h in soup.find_all("h3")]
    for cite, title in list(zip(cites, titles))[:limit]:
        url = cite.split(" ")[0]
        if not url.startswith("http"):
            url = "https://" + url
        if title and not title.startswith("http"):
            results.append(SearchResult(title=title, url=url))

    return results


class GoogleScrapeEngine(SearchEngine):
    name = SearchEngineName.GOOGLE_SCRAPE
    error_prefix = "GOOGLE"

    async def search(self, query: str) -> EngineResponse:
        timeout_ms = self.settings.timeout_ms
        try:
            async with self.client() as client:
                response = await client.get(
                    GOOGLE_SEARCH_URL,
                    params=google_search_params(query),
                    headers={**BROWSER_HEADERS, "Referer": "https://www.google.com/"},
                )
        except httpx.HTTPError as e:
            return self.failure_from(e, "Google scrape", timeout_ms)

        if response.status_code != 200:
            return EngineResponse(
                status=response.status_code,
                error=f"Google returned HTTP {response.status_code}",
            )

        html = response.text
        if has_captcha(html):
            return EngineResponse(status=429, error="Google captcha / bot detection triggered")

        results = extract_google_results(html)
        if not results:
            return EngineResponse(status=200, error="Google returned HTML but no extractable results")

        logger.info(f"[search][google-scrape] {len(results)} results")
        return EngineResponse(results=results, status=200)
