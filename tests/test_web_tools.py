"""
Unit tests for the web tools client.

Tests apps/tools/web/client.py against httpx.MockTransport.
"""

import json

import httpx
import pytest

from apps.tools.web import WebToolsClient
from libs.core.config import ToolsSettings
from libs.core.exceptions import ToolError


def make_client(handler) -> WebToolsClient:
    return WebToolsClient(ToolsSettings(base_url="http://tools.test/"), httpx.MockTransport(handler))


class TestFetchPage:
    @pytest.mark.asyncio
    async def test_structured_page(self):
        def handler(request):
            assert request.url.path == "/api/url"
            assert request.url.params["url"] == "https://forum.example/"
            return httpx.Response(200, json={
                "title": "Forum",
                "description": "A forum",
                "content": "Welcome",
                "links": [{"url": "https://forum.example/thread/1", "text": "Thread one"}],
                "headings": [{"level": 1, "text": "Forum"}],
                "images": ["https://forum.example/logo.png"],
            })

        client = make_client(handler)
        page = await client.fetch_page("https://forum.example/")
        await client.close()

        assert page.url == "https://forum.example/"
        assert page.meta.title == "Forum"
        assert page.meta.description == "A forum"
        assert page.links[0].text == "Thread one"
        assert page.display_title == "Forum"

    @pytest.mark.asyncio
    async def test_error_payload_without_content(self):
        client = make_client(lambda request: httpx.Response(200, json={"error": "Blocked by site"}))
        with pytest.raises(ToolError) as exc_info:
            await client.fetch_page("https://blocked.example/")
        await client.close()
        assert exc_info.value.message == "Blocked by site"
        assert exc_info.value.tool == "fetch"

    @pytest.mark.asyncio
    async def test_http_error(self):
        client = make_client(lambda request: httpx.Response(502, json={"error": "upstream down"}))
        with pytest.raises(ToolError) as exc_info:
            await client.fetch_page("https://a.example/")
        await client.close()
        assert exc_info.value.context["status"] == 502

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler)
        with pytest.raises(ToolError):
            await client.fetch_page("https://a.example/")
        await client.close()


class TestScreenshotAndApps:
    @pytest.mark.asyncio
    async def test_screenshot(self):
        client = make_client(lambda request: httpx.Response(200, json={"screenshot": "data:image/png;base64,AA"}))
        shot = await client.screenshot("https://a.example/")
        await client.close()
        assert shot.image.startswith("data:image/png")
        assert shot.url == "https://a.example/"

    @pytest.mark.asyncio
    async def test_screenshot_missing_image(self):
        client = make_client(lambda request: httpx.Response(200, json={}))
        with pytest.raises(ToolError):
            await client.screenshot("https://a.example/")
        await client.close()

    @pytest.mark.asyncio
    async def test_open_app(self):
        def handler(request):
            assert request.method == "POST"
            assert json.loads(request.content) == {"app": "spotify"}
            return httpx.Response(200, json={"success": True, "platform": "darwin"})

        client = make_client(handler)
        launch = await client.open_app("spotify")
        await client.close()
        assert launch.app == "spotify"
        assert launch.platform == "darwin"
