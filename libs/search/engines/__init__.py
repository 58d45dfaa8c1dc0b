"""Search engine tiers, in cascade order."""

from typing import Optional

import httpx

from libs.core.config import SearchSettings
from libs.search.engines.base import EngineResponse, SearchEngine
from libs.search.engines.duckduckgo import DuckDuckGoEngine
from libs.search.engines.google_scrape import GoogleScrapeEngine
from libs.search.engines.puppeteer import PuppeteerEngine
from libs.search.engines.render_api import RenderApiEngine
from libs.search.engines.serper import SerperEngine

ENGINE_ORDER = (
    RenderApiEngine,
    DuckDuckGoEngine,
    GoogleScrapeEngine,
    SerperEngine,
    PuppeteerEngine,
)


def default_engines(
    settings: Optional[SearchSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> list[SearchEngine]:
    return [engine(settings, transport) for engine in ENGINE_ORDER]


__all__ = [
    "EngineResponse",
    "SearchEngine",
    "RenderApiEngine",
    "DuckDuckGoEngine",
    "GoogleScrapeEngine",
    "SerperEngine",
    "PuppeteerEngine",
    "ENGINE_ORDER",
    "default_engines",
]
