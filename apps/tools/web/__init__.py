"""Web tools: page fetch, screenshot and app launch collaborators."""

from .client import AppLaunch, Screenshot, WebToolsClient, get_web_tools

__all__ = [
    "AppLaunch",
    "Screenshot",
    "WebToolsClient",
    "get_web_tools",
]
