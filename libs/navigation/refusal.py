"""
Refusal Bypass - deterministic fallback when the model declines to act.

If the model's text reads like a refusal and carries no directive, an
``OPEN_URL`` or ``SEARCH`` directive is synthesized from the literal user
utterance (target site, query and ordinal pulled out with regexes). This is
not a retry of the model call.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from libs.core.config import load_site_registry
from libs.core.models import Directive, DirectiveKind
from libs.navigation.link_ranker import parse_ordinal

logger = logging.getLogger(__name__)

REFUSAL_RE = re.compile(
    r"\b(?:"
    r"i\s+(?:can['’]?t|cannot|won['’]?t|am\s+(?:not\s+able|unable))"
    r"|i['’]m\s+(?:not\s+able|unable|not\s+allowed|sorry)"
    r"|sorry,?\s+(?:but\s+)?i"
    r"|as\s+an\s+ai"
    r"|not\s+(?:able|allowed|permitted)\s+to"
    r"|unable\s+to\s+(?:help|assist|open|browse|access)"
    r"|against\s+my\s+(?:guidelines|policy)"
    r")",
    re.IGNORECASE,
)

OPEN_RE = re.compile(
    r"\b(?:open|go\s+to|goto|visit|launch|navigate\s+to|take\s+me\s+to|pull\s+up|bring\s+up|play)\s+(?P<target>.+)",
    re.IGNORECASE,
)
SEARCH_RE = re.compile(
    r"\b(?:search\s+(?:for\s+)?|look\s+up\s+|lookup\s+|find\s+(?:me\s+)?|google\s+|research\s+)(?P<query>.+)",
    re.IGNORECASE,
)
DOMAIN_RE = re.compile(r"\b((?:[a-z0-9-]+\.)+[a-z]{2,})(/\S*)?", re.IGNORECASE)
_SITE_SUFFIX_RE = re.compile(r"\s+(?:on|at|in|from)\s+(?:the\s+)?([\w.-]+)\s*$", re.IGNORECASE)
_TRAILING_RE = re.compile(r"[\s.!?,]+$")
_POLITE_RE = re.compile(r"\b(?:please|pls|for me|rn|right now)\b", re.IGNORECASE)


@dataclass
class SynthesizedAction:
    directive: Directive
    target_index: Optional[int] = None


def is_refusal(text: str) -> bool:
    return bool(REFUSAL_RE.search(text or ""))


def _clean(fragment: str) -> str:
    fragment = _POLITE_RE.sub(" ", fragment)
    fragment = re.sub(r"\s+", " ", fragment)
    return _TRAILING_RE.sub("", fragment).strip()


class RefusalBypass:
    """Build a directive straight from what the user asked for."""

    def __init__(self, registry: Optional[dict[str, Any]] = None):
        self.registry = registry if registry is not None else load_site_registry()
        self.sites: dict[str, dict[str, str]] = {
            name.lower(): entry for name, entry in (self.registry.get("sites") or {}).items()
        }

    def site_url(self, text: str) -> Optional[str]:
        """URL of a known site alias or a literal domain mentioned in the text."""
        domain = DOMAIN_RE.search(text)
        if domain:
            return f"https://{domain.group(1).lower()}{domain.group(2) or ''}"

        words = set(re.findall(r"[a-z0-9]+", text.lower()))
        for name, entry in self.sites.items():
            if name in words and entry.get("url"):
                return entry["url"]
        return None

    def synthesize(self, user_text: str) -> Optional[SynthesizedAction]:
        text = (user_text or "").strip()
        if not text:
            return None

        search = SEARCH_RE.search(text)
        opened = OPEN_RE.search(text)

        if opened and (not search or opened.start() <= search.start()):
            target = _clean(opened.group("target"))
            url = self.site_url(target)
            if url:
                action = SynthesizedAction(
                    directive=Directive(kind=DirectiveKind.OPEN_URL, value=url),
                    target_index=parse_ordinal(target),
                )
                logger.info(f"[RefusalBypass] Synthesized OPEN_URL {url} (index={action.target_index})")
                return action

        if search:
            query = _clean(search.group("query"))
            suffix = _SITE_SUFFIX_RE.search(query)
            if suffix and self.site_url(suffix.group(1)):
                query = query[: suffix.start()].strip()
            if query:
                logger.info(f"[RefusalBypass] Synthesized SEARCH '{query}'")
                return SynthesizedAction(directive=Directive(kind=DirectiveKind.SEARCH, value=query))

        if opened:
            target = _clean(opened.group("target"))
            if target:
                logger.info(f"[RefusalBypass] Synthesized SEARCH '{target}' from open request")
                return SynthesizedAction(directive=Directive(kind=DirectiveKind.SEARCH, value=target))

        return None

