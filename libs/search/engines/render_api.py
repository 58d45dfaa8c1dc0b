"""Tier 1: the standalone search API (headless browser + multi-engine scraping)."""

import logging

import httpx

from libs.core.models import SearchResult
from libs.search.engines.base import EngineResponse, SearchEngine
from libs.search.logger import SearchEngineName

logger = logging.getLogger(__name__)

# The remote service runs its own browser fallback, so it gets extra time
EXTRA_TIMEOUT_MS = 10000


class RenderApiEngine(SearchEngine):
    name = SearchEngineName.RENDER_API
    error_prefix = "RENDER"

    async def search(self, query: str) -> EngineResponse:
        base_url = self.settings.search_api_url.rstrip("/")
        if not base_url:
            return EngineResponse(status=0, error="SEARCH_API_URL not configured, skipping render API")

        timeout_ms = self.settings.timeout_ms + EXTRA_TIMEOUT_MS
        try:
            async with self.client(timeout=timeout_ms / 1000) as client:
                logger.info(f"[search][render-api] GET {base_url}/search q={query!r}")
                response = await client.get(f"{base_url}/search", params={"q": query})
                if response.status_code != 200:
                    return EngineResponse(
                        status=response.status_code,
                        error=f"Render search API returned HTTP {response.status_code}",
                    )
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            return self.failure_from(e, "Render search API", timeout_ms)

        items = data.get("results") if isinstance(data, dict) else None
        if isinstance(items, list) and items:
            results = [
                SearchResult(
                    title=item.get("title") or "",
                    url=item.get("url") or "",
                    snippet=item.get("snippet") or "",
                )
                for item in items[:25]
                if isinstance(item, dict) and item.get("url")
            ]
            if results:
                return EngineResponse(results=results, status=200)

        error = data.get("error") if isinstance(data, dict) else None
        return EngineResponse(status=200, error=error or "Render search API returned no results")
