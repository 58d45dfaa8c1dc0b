"""
Search-results page detection.

Opening a search engine's result page through the proxy tends to hit
anti-bot walls, so the orchestrator reroutes such targets to a SEARCH
directive. Recognized pages come from a built-in table plus every
``search`` template in the site registry.
"""

from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

from libs.core.config import load_site_registry

# host suffix -> (path prefix, query key)
BUILTIN_SEARCH_PAGES: list[tuple[str, str, str]] = [
    ("google.", "/search", "q"),
    ("bing.com", "/search", "q"),
    ("duckduckgo.com", "/", "q"),
    ("search.yahoo.com", "/search", "p"),
    ("youtube.com", "/results", "search_query"),
    ("yandex.", "/search", "text"),
    ("search.brave.com", "/search", "q"),
    ("ecosia.org", "/search", "q"),
]


def _host(url: str) -> str:
    return urlparse(url).netloc.lower().removeprefix("www.").removeprefix("m.")


class SearchPageDetector:
    def __init__(self, registry: Optional[dict[str, Any]] = None):
        registry = registry if registry is not None else load_site_registry()
        self.patterns = list(BUILTIN_SEARCH_PAGES)
        for entry in (registry.get("sites") or {}).values():
            template = (entry or {}).get("search")
            if not template:
                continue
            parsed = urlparse(template.replace("{query}", "x"))
            for key, values in parse_qs(parsed.query).items():
                if values == ["x"]:
                    self.patterns.append((_host(template), parsed.path or "/", key))

    def search_query(self, url: str) -> Optional[str]:
        """The query carried by a recognized search-results URL, else None."""
        host = _host(url)
        parsed = urlparse(url)
        query = parse_qs(parsed.query)
        for host_part, path_prefix, key in self.patterns:
            if host_part not in host:
                continue
            if not (parsed.path or "/").startswith(path_prefix):
                continue
            values = query.get(key)
            if values and values[0].strip():
                return values[0].strip()
        return None
