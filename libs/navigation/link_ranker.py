"""
Link Ranker - pick one outbound link from a fetched page.

Candidates go through an exclusion pass and are then bucketed, highest
confidence first:

1. content-shaped URLs (/video/, /watch, viewkey=, /clip/)
2. links with meaningful anchor text (only if bucket 1 is empty)
3. any remaining link with anchor text longer than 5 chars (only if 1 and 2 are empty)

Inside the chosen bucket the first strategy that resolves wins: title hint,
hint derived from a fabricated URL's identifier, titles quoted in recent
assistant messages, then a positional index. ``None`` means the caller should
open the page itself.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urljoin

from libs.core.models import CandidateLink, FetchedPage, PageLink
from libs.navigation.link_classifier import (
    LinkClassifier,
    get_link_classifier,
    is_bare_url_text,
    normalize_text,
)

logger = logging.getLogger(__name__)

ACCEPT_THRESHOLD = 0.4
MIN_HINT_WORD_LEN = 3

ORDINAL_WORDS = {
    "first": 0,
    "second": 1,
    "third": 2,
    "fourth": 3,
    "fifth": 4,
    "sixth": 5,
    "seventh": 6,
    "eighth": 7,
    "ninth": 8,
    "tenth": 9,
    "last": -1,
}

_NUMERIC_ORDINAL_RE = re.compile(r"\b(\d{1,3})(?:st|nd|rd|th)\b", re.IGNORECASE)
_WORD_ORDINAL_RE = re.compile(r"\b(" + "|".join(ORDINAL_WORDS) + r")\b", re.IGNORECASE)
_NUMBER_REF_RE = re.compile(
    r"(?:#\s*|\bnumber\s+|\bno\.\s*|\b(?:video|result|link|item|option|clip)\s+#?)(\d{1,3})\b",
    re.IGNORECASE,
)

_HISTORY_TITLE_RES = (
    re.compile(r"\*\*([^*\n]{3,150})\*\*"),
    re.compile(r"\"([^\"\n]{3,150})\""),
    re.compile(r"“([^”\n]{3,150})”"),
    re.compile(r"\[([^\[\]\n:]{3,150})\]"),
)


# =============================================================================
# Pure helpers
# =============================================================================

def hint_words(text: str) -> list[str]:
    """Normalized words of at least three characters, order kept, no repeats."""
    words = [w for w in normalize_text(text).split() if len(w) >= MIN_HINT_WORD_LEN]
    return list(dict.fromkeys(words))


def title_similarity(hint: str, candidate_text: str) -> float:
    """Share of the hint's words found in the candidate text, in [0, 1]."""
    words = hint_words(hint)
    if not words:
        return 0.0
    candidate = set(hint_words(candidate_text))
    matched = sum(1 for w in words if w in candidate)
    return matched / len(words)


def parse_ordinal(text: str) -> Optional[int]:
    """
    Zero-based index from phrases like "the 3rd video", "the first one",
    "result #2". "last" maps to -1.
    """
    if not text:
        return None

    match = _NUMERIC_ORDINAL_RE.search(text)
    if match and int(match.group(1)) >= 1:
        return int(match.group(1)) - 1

    match = _WORD_ORDINAL_RE.search(text)
    if match:
        return ORDINAL_WORDS[match.group(1).lower()]

    match = _NUMBER_REF_RE.search(text)
    if match and int(match.group(1)) >= 1:
        return int(match.group(1)) - 1

    return None


# Words that say where a link is without saying what it is about
POSITIONAL_FILLER_WORDS = frozenset({
    "the", "a", "an", "one", "number", "no",
    "video", "videos", "link", "links", "result", "results", "item", "items",
    "option", "clip", "clips", "post", "thread", "article", "page", "entry", "tab",
    "on", "in", "of", "list",
})

_ORDINAL_TOKEN_RE = re.compile(r"\d{1,3}(?:st|nd|rd|th)?")


def is_ordinal_reference(text: str) -> bool:
    """
    True for purely positional references like "2nd video" or "the last one",
    where the words carry no title to match against.
    """
    if parse_ordinal(text) is None:
        return False
    for word in normalize_text(text).split():
        if word in ORDINAL_WORDS or word in POSITIONAL_FILLER_WORDS:
            continue
        if _ORDINAL_TOKEN_RE.fullmatch(word):
            continue
        return False
    return True


def extract_history_titles(messages: list[str]) -> list[str]:
    """Bold or quoted titles from messages, newest message first."""
    titles: list[str] = []
    for message in reversed(messages):
        for pattern in _HISTORY_TITLE_RES:
            for match in pattern.finditer(message or ""):
                title = match.group(1).strip()
                if title and title not in titles:
                    titles.append(title)
    return titles


# =============================================================================
# Ranker
# =============================================================================

@dataclass
class LinkLocator:
    """What the caller knows about the link it wants."""

    index: Optional[int] = None
    title_hint: Optional[str] = None
    fabricated_url: Optional[str] = None
    history: list[str] = field(default_factory=list)  # assistant messages, oldest first


@dataclass
class Resolution:
    link: Optional[CandidateLink]
    bucket: str
    method: Optional[str] = None
    candidates: int = 0

    @property
    def found(self) -> bool:
        return self.link is not None


class LinkRanker:
    """Filter, bucket and match a page's outbound links."""

    def __init__(
        self,
        classifier: Optional[LinkClassifier] = None,
        threshold: float = ACCEPT_THRESHOLD,
        history_window: int = 5,
    ):
        self.classifier = classifier or get_link_classifier()
        self.threshold = threshold
        self.history_window = history_window

    def _absolute(self, page: FetchedPage) -> list[PageLink]:
        seen: set[str] = set()
        links: list[PageLink] = []
        for link in page.links:
            url = urljoin(page.url, link.url.strip())
            if url in seen:
                continue
            seen.add(url)
            links.append(PageLink(url=url, text=(link.text or "").strip()))
        return links

    def candidates(self, page: FetchedPage) -> tuple[str, list[CandidateLink]]:
        """Return the highest-confidence non-empty bucket and its links in page order."""
        kept = [
            link for link in self._absolute(page)
            if not self.classifier.is_excluded(link, page.url)
        ]

        content = [l for l in kept if self.classifier.is_content_url(l.url)]
        if content:
            return "content", self._to_candidates(content)

        broad = [
            l for l in kept
            if not is_bare_url_text(l.text)
            and (
                self.classifier.is_content_url(l.url)
                or (len(l.text) > 10 and not l.text.isdigit())
            )
        ]
        if broad:
            return "broad", self._to_candidates(broad)

        catch_all = [l for l in kept if len(l.text) > 5]
        return "catch_all", self._to_candidates(catch_all)

    @staticmethod
    def _to_candidates(links: list[PageLink]) -> list[CandidateLink]:
        return [CandidateLink(url=l.url, anchor_text=l.text) for l in links]

    def best_match(
        self, hint: str, candidates: list[CandidateLink]
    ) -> Optional[CandidateLink]:
        """Highest-scoring candidate for the hint, earliest on ties; None below threshold."""
        best: Optional[CandidateLink] = None
        best_score = 0.0
        for candidate in candidates:
            score = title_similarity(hint, candidate.anchor_text)
            if score > best_score:
                best, best_score = candidate, score
        if best is None or best_score < self.threshold:
            return None
        return best.model_copy(update={"score": best_score})

    def resolve(self, page: FetchedPage, locator: LinkLocator) -> Resolution:
        bucket, candidates = self.candidates(page)
        resolution = Resolution(link=None, bucket=bucket, candidates=len(candidates))
        if not candidates:
            logger.info(f"[LinkRanker] No candidates on {page.url}")
            return resolution

        if locator.title_hint:
            match = self.best_match(locator.title_hint, candidates)
            if match:
                return self._found(resolution, match, "title_hint")

        if locator.fabricated_url:
            hint = self.classifier.identifier_hint(locator.fabricated_url)
            if hint:
                match = self.best_match(hint, candidates)
                if match:
                    return self._found(resolution, match, "identifier_hint")

        if locator.history:
            recent = locator.history[-self.history_window:]
            for title in extract_history_titles(recent):
                match = self.best_match(title, candidates)
                if match:
                    return self._found(resolution, match, "history_title")

        if locator.index is not None and -len(candidates) <= locator.index < len(candidates):
            match = candidates[locator.index].model_copy(update={"score": 1.0})
            return self._found(resolution, match, "index")

        logger.info(
            f"[LinkRanker] Unresolved on {page.url} "
            f"(bucket={bucket}, candidates={len(candidates)})"
        )
        return resolution

    @staticmethod
    def _found(resolution: Resolution, link: CandidateLink, method: str) -> Resolution:
        resolution.link = link
        resolution.method = method
        logger.info(
            f"[LinkRanker] Resolved via {method} in {resolution.bucket} bucket: "
            f"{link.url} (score={link.score:.2f})"
        )
        return resolution
