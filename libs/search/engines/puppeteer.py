"""
Tier 5: headless-browser search.

Strategy A proxies a rendered Google search through ScraperAPI. Strategy B
drives a remote browser over its CDP WebSocket endpoint with Playwright and
only runs when ScraperAPI was refused (auth / quota), not when it merely
found nothing.
"""

import logging
from urllib.parse import urlencode

import httpx

from libs.core.models import SearchResult
from libs.search.engines.base import USER_AGENT, EngineResponse, SearchEngine
from libs.search.engines.google_scrape import (
    GOOGLE_SEARCH_URL,
    extract_google_results,
    google_search_params,
    has_captcha,
)
from libs.search.logger import SearchEngineName

logger = logging.getLogger(__name__)

SCRAPER_API_URL = "https://api.scraperapi.com/"
PROXY_EXTRA_TIMEOUT_MS = 5000
RESULT_LIMIT = 25

EXTRACT_RESULTS_JS = """
() => {
  const items = [];
  document.querySelectorAll("#search .g").forEach((el) => {
    const anchor = el.querySelector("a[href]");
    const h3 = el.querySelector("h3");
    const snippet = el.querySelector("[data-sncf], .VwiC3b, .IsZvec");
    if (anchor && h3 && anchor.href.startsWith("http")) {
      items.push({
        title: (h3.textContent || "").trim(),
        url: anchor.href,
        snippet: snippet ? (snippet.textContent || "").trim() : "",
      });
    }
  });
  return items;
}
"""


class PuppeteerEngine(SearchEngine):
    name = SearchEngineName.PUPPETEER
    error_prefix = "PUPPETEER"

    def _target_url(self, query: str) -> str:
        return f"{GOOGLE_SEARCH_URL}?{urlencode(google_search_params(query))}"

    async def search(self, query: str) -> EngineResponse:
        if not self.settings.scraper_api_key and not self.settings.puppeteer_ws_endpoint:
            return EngineResponse(
                status=0,
                error="Neither SCRAPER_API_KEY nor PUPPETEER_WS_ENDPOINT configured, browser search unavailable",
            )

        proxied = await self.scraper_api_search(query)
        if proxied.ok:
            return proxied

        if proxied.status in (401, 403, 429) and self.settings.puppeteer_ws_endpoint:
            remote = await self.remote_browser_search(query)
            if remote.ok:
                return remote
            return EngineResponse(
                status=remote.status or proxied.status,
                error=remote.error or proxied.error,
            )

        return proxied

    async def scraper_api_search(self, query: str) -> EngineResponse:
        api_key = self.settings.scraper_api_key
        if not api_key:
            return EngineResponse(status=401, error="SCRAPER_API_KEY not configured, skipping ScraperAPI")

        timeout_ms = self.settings.timeout_ms + PROXY_EXTRA_TIMEOUT_MS
        params = {
            "api_key": api_key,
            "url": self._target_url(query),
            "render": "true",
            "country_code": "us",
        }
        try:
            async with self.client(timeout=timeout_ms / 1000) as client:
                response = await client.get(SCRAPER_API_URL, params=params, headers={"User-Agent": USER_AGENT})
        except httpx.HTTPError as e:
            return self.failure_from(e, "ScraperAPI request", timeout_ms)

        status = response.status_code
        if status in (401, 403):
            return EngineResponse(
                status=status,
                error=f"ScraperAPI authentication failed (HTTP {status}), check SCRAPER_API_KEY",
            )
        if status == 429:
            return EngineResponse(status=429, error="ScraperAPI rate limit exceeded")
        if status != 200:
            return EngineResponse(status=status, error=f"ScraperAPI returned HTTP {status}")

        html = response.text
        results = extract_google_results(html, limit=RESULT_LIMIT)
        if results:
            return EngineResponse(results=results, status=200)
        if has_captcha(html):
            return EngineResponse(status=403, error="ScraperAPI returned a Google captcha page")
        return EngineResponse(status=200, error="ScraperAPI returned HTML but no extractable Google results")

    async def remote_browser_search(self, query: str) -> EngineResponse:
        endpoint = self.settings.puppeteer_ws_endpoint
        if not endpoint:
            return EngineResponse(status=0, error="PUPPETEER_WS_ENDPOINT not configured, remote browser unavailable")

        from playwright.async_api import async_playwright

        try:
            async with async_playwright() as p:
                browser = await p.chromium.connect_over_cdp(endpoint)
                try:
                    context = await browser.new_context(
                        user_agent=USER_AGENT,
                        viewport={"width": 1920, "height": 1080},
                    )
                    page = await context.new_page()
                    await page.goto(
                        self._target_url(query),
                        wait_until="domcontentloaded",
                        timeout=self.settings.timeout_ms,
                    )
                    if has_captcha(await page.content()):
                        return EngineResponse(status=403, error="Remote browser hit a Google captcha")
                    items = await page.evaluate(EXTRACT_RESULTS_JS)
                    await context.close()
                finally:
                    await browser.close()
        except Exception as e:
            message = str(e)
            logger.warning(f"[search][puppeteer] Remote browser failed: {message}")
            if "timeout" in message.lower():
                return EngineResponse(status=408, error=f"Remote browser timed out: {message}")
            return EngineResponse(status=0, error=f"Remote browser crashed: {message}")

        results = [
            SearchResult(title=i.get("title", ""), url=i["url"], snippet=i.get("snippet", ""))
            for i in items[:RESULT_LIMIT]
            if i.get("url")
        ]
        if not results:
            return EngineResponse(status=200, error="Remote browser loaded the page but found no results")
        return EngineResponse(results=results, status=200)
