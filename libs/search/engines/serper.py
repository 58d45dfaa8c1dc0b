"""Tier 4: Serper.dev Google Search API (needs SERPER_API_KEY)."""

import httpx

from libs.core.models import SearchResult
from libs.search.engines.base import EngineResponse, SearchEngine
from libs.search.logger import SearchEngineName

SERPER_URL = "https://google.serper.dev/search"


class SerperEngine(SearchEngine):
    name = SearchEngineName.SERPER
    error_prefix = "SERPER"

    async def search(self, query: str) -> EngineResponse:
        api_key = self.settings.serper_api_key
        if not api_key:
            return EngineResponse(status=401, error="SERPER_API_KEY not configured, skipping Serper")

        timeout_ms = self.settings.timeout_ms
        try:
            async with self.client() as client:
                response = await client.post(
                    SERPER_URL,
                    headers={"X-API-KEY": api_key, "Content-Type": "application/json"},
                    json={"q": query, "num": self.settings.max_results},
                )
                status = response.status_code
                if status in (401, 403):
                    return EngineResponse(
                        status=status,
                        error=f"Serper API authentication failed (HTTP {status}), check SERPER_API_KEY",
                    )
                if status == 429:
                    return EngineResponse(status=429, error="Serper API rate limit exceeded")
                if status != 200:
                    return EngineResponse(status=status, error=f"Serper API returned HTTP {status}")
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            return self.failure_from(e, "Serper API request", timeout_ms)

        results = []
        for item in (data.get("organic") or [])[:10]:
            url = item.get("link") or item.get("url")
            if not url:
                continue
            results.append(
                SearchResult(
                    title=item.get("title") or "",
                    url=url,
                    snippet=item.get("snippet") or item.get("description") or "",
                )
            )

        if not results:
            return EngineResponse(status=200, error="Serper API returned no organic results")
        return EngineResponse(results=results, status=200)
