"""
Web tools client - page fetch, screenshot and app launch.

Thin async wrapper over the tool service endpoints:

    GET  /api/url?url=...          structured page (title, content, links, headings, ...)
    GET  /api/screenshot?url=...   PNG data URL of the rendered page
    POST /api/open-app {"app"}     launch a desktop application

Every failure is raised as ``ToolError`` so directive handlers can catch it
at the directive boundary.
"""

import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel

from libs.core.config import ToolsSettings, get_settings
from libs.core.exceptions import ToolError
from libs.core.models import FetchedPage

logger = logging.getLogger(__name__)


class Screenshot(BaseModel):
    url: str
    image: str  # data:image/png;base64,...
    title: Optional[str] = None


class AppLaunch(BaseModel):
    app: str
    success: bool = True
    platform: Optional[str] = None


class WebToolsClient:
    """Async client for the page-fetch / screenshot / app-launch collaborators."""

    def __init__(
        self,
        settings: Optional[ToolsSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings().tools
        self._client = httpx.AsyncClient(
            base_url=self.settings.base_url.rstrip("/"),
            timeout=httpx.Timeout(self.settings.timeout, connect=10.0),
            transport=transport,
        )

    async def close(self):
        await self._client.aclose()

    async def _request(self, tool: str, method: str, path: str, **kwargs) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise ToolError(f"{tool} request failed: {e}", tool=tool) from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code != 200:
            message = data.get("error") if isinstance(data, dict) else None
            raise ToolError(
                message or f"{tool} returned HTTP {response.status_code}",
                tool=tool,
                context={"status": response.status_code, "path": path},
            )
        if not isinstance(data, dict):
            raise ToolError(f"{tool} returned an unexpected payload", tool=tool)
        return data

    async def fetch_page(self, url: str) -> FetchedPage:
        """
        Fetch a page's structure.

        Raises:
            ToolError: transport failure, non-200, or an error payload with nothing usable
        """
        data = await self._request("fetch", "GET", "/api/url", params={"url": url})
        data["url"] = data.get("url") or url
        if not data.get("meta"):
            data["meta"] = {"title": data.get("title"), "description": data.get("description")}
        page = FetchedPage.model_validate(data)

        if page.error and not page.content and not page.links:
            raise ToolError(page.error, tool="fetch", context={"url": url})

        logger.info(
            f"[WebTools] Fetched {url}: {len(page.links)} links, "
            f"{len(page.content or '')} chars"
        )
        return page

    async def screenshot(self, url: str) -> Screenshot:
        data = await self._request("screenshot", "GET", "/api/screenshot", params={"url": url})
        if data.get("error") or not data.get("screenshot"):
            raise ToolError(data.get("error") or "Screenshot failed", tool="screenshot", context={"url": url})
        return Screenshot(url=data.get("url") or url, image=data["screenshot"], title=data.get("title"))

    async def open_app(self, app: str) -> AppLaunch:
        data = await self._request("open_app", "POST", "/api/open-app", json={"app": app})
        if data.get("error"):
            raise ToolError(data["error"], tool="open_app", context={"app": app})
        return AppLaunch(app=data.get("app") or app, success=bool(data.get("success", True)), platform=data.get("platform"))


_client: Optional[WebToolsClient] = None


def get_web_tools() -> WebToolsClient:
    """Get singleton web tools client."""
    global _client
    if _client is None:
        _client = WebToolsClient()
    return _client
