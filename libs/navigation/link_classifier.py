"""
Link Classifier - heuristics for judging URLs and outbound links.

The model sometimes invents plausible-looking content URLs
(``/view_video.php?viewkey=eevee-first-video``). Real content ids are numeric,
hex or otherwise opaque; invented ones tend to be multi-word English slugs.

All heuristics live behind the ``LinkClassifier`` interface so the
orchestrator and the link ranker can be tested with a different strategy.
A misclassification is expected now and then and is never fatal: the caller
degrades to opening the page itself.
"""

import re
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import parse_qs, urlparse

from libs.core.models import PageLink

# Query keys that mark a search / listing URL rather than a content URL
SEARCH_PARAM_KEYS = frozenset({"q", "query", "search", "s", "k", "search_query"})

# Path shapes that carry a content identifier as the next segment
_PATH_ID_RE = re.compile(r"/(?:video|videos|watch|clip|clips|embed|v|view)/([^/?#]+)", re.IGNORECASE)

# Query keys that carry a content identifier
ID_PARAM_KEYS = ("viewkey", "v", "video_id", "vid", "id")

_TOKEN_SPLIT_RE = re.compile(r"[-_+\s]+")

CONTENT_URL_RE = re.compile(r"/videos?/|/watch|viewkey=|/clips?/", re.IGNORECASE)

AD_TRACKER_DOMAINS = (
    "doubleclick.net",
    "googlesyndication.com",
    "googleadservices.com",
    "google-analytics.com",
    "googletagmanager.com",
    "adservice.google.com",
    "adnxs.com",
    "exoclick.com",
    "trafficjunky.net",
    "juicyads.com",
    "popads.net",
    "propellerads.com",
    "taboola.com",
    "outbrain.com",
    "criteo.com",
    "adsterra.com",
    "hilltopads.net",
    "scorecardresearch.com",
)

# Navigation / account / legal boilerplate (matched against the whole normalized anchor text)
BOILERPLATE_RE = re.compile(
    r"^(?:log ?in|log ?out|sign ?in|sign ?up|sign ?out|register|join|join now|"
    r"terms(?: of (?:service|use))?|privacy(?: policy)?|dmca|2257|contact(?: us)?|"
    r"about(?: us)?|faq|help|support|home|tags?|categories|category|channels|"
    r"upload|premium|go premium|next|prev|previous|more|menu|cookies?(?: policy)?|"
    r"legal|advertise|advertising|search|account|settings|language|"
    r"page \d+|\d+|newest|popular|trending|top rated)$"
)
BOILERPLATE_MAX_CHARS = 30

_BARE_URL_RE = re.compile(r"^(?:https?://|www\.)\S+$", re.IGNORECASE)


def normalize_text(text: str) -> str:
    """Lowercase, non-alphanumerics to single spaces."""
    return re.sub(r"[^a-z0-9]+", " ", (text or "").lower()).strip()


def is_homepage(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.path in ("", "/") and not parsed.query


def has_search_param(url: str) -> bool:
    query = parse_qs(urlparse(url).query)
    return any(key.lower() in SEARCH_PARAM_KEYS for key in query)


def extract_identifier(url: str) -> Optional[str]:
    """The content-id portion of a URL (``/video/<id>``, ``viewkey=<id>``, ``watch?v=<id>``)."""
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    for key in ID_PARAM_KEYS:
        values = query.get(key)
        if values and values[0].strip():
            return values[0].strip()

    match = _PATH_ID_RE.search(parsed.path)
    if match:
        return match.group(1)
    return None


def word_tokens(identifier: str) -> list[str]:
    """Purely alphabetic tokens longer than three characters."""
    return [
        token for token in _TOKEN_SPLIT_RE.split(identifier)
        if token.isalpha() and len(token) > 3
    ]


def identifier_hint(url: str) -> Optional[str]:
    """
    Turn a fabricated URL's identifier (or last path segment) into a title
    hint: ``/video/eevee-first-video`` -> ``"eevee first video"``.
    """
    identifier = extract_identifier(url)
    if not identifier:
        segments = [s for s in urlparse(url).path.split("/") if s]
        if not segments:
            return None
        identifier = re.sub(r"\.\w{2,5}$", "", segments[-1])

    words = [t for t in _TOKEN_SPLIT_RE.split(identifier) if t.isalpha() and len(t) >= 3]
    return " ".join(words) or None


def is_bare_url_text(text: str) -> bool:
    return bool(_BARE_URL_RE.match((text or "").strip()))


def same_page(a: str, b: str) -> bool:
    pa, pb = urlparse(a), urlparse(b)
    return (
        pa.netloc.lower().removeprefix("www.") == pb.netloc.lower().removeprefix("www.")
        and pa.path.rstrip("/") == pb.path.rstrip("/")
        and pa.query == pb.query
    )


class LinkClassifier(ABC):
    """Strategy interface for URL and link heuristics."""

    @abstractmethod
    def is_fabricated(self, url: str) -> bool:
        """True if the URL looks invented by the model."""

    @abstractmethod
    def is_excluded(self, link: PageLink, page_url: str) -> bool:
        """True if the link must never be a resolution candidate."""

    @abstractmethod
    def is_content_url(self, url: str) -> bool:
        """True if the URL has a content (video/clip/watch) shape."""

    def identifier_hint(self, url: str) -> Optional[str]:
        return identifier_hint(url)


class HeuristicLinkClassifier(LinkClassifier):
    """Default regex/keyword heuristics."""

    def __init__(
        self,
        ad_domains: tuple[str, ...] = AD_TRACKER_DOMAINS,
        min_word_tokens: int = 2,
    ):
        self.ad_domains = ad_domains
        self.min_word_tokens = min_word_tokens

    def is_fabricated(self, url: str) -> bool:
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        if not parsed.netloc:
            return False
        if is_homepage(url) or has_search_param(url):
            return False

        identifier = extract_identifier(url)
        if not identifier:
            return False
        return len(word_tokens(identifier)) >= self.min_word_tokens

    def is_ad_domain(self, url: str) -> bool:
        host = urlparse(url).netloc.lower()
        return any(host == d or host.endswith("." + d) for d in self.ad_domains)

    def is_boilerplate(self, text: str) -> bool:
        stripped = (text or "").strip()
        if len(stripped) >= BOILERPLATE_MAX_CHARS:
            return False
        return bool(BOILERPLATE_RE.match(normalize_text(stripped)))

    def is_excluded(self, link: PageLink, page_url: str) -> bool:
        parsed = urlparse(link.url)
        if parsed.scheme not in ("http", "https"):
            return True
        if is_homepage(link.url) or same_page(link.url, page_url):
            return True
        if self.is_ad_domain(link.url):
            return True
        return self.is_boilerplate(link.text)

    def is_content_url(self, url: str) -> bool:
        return bool(CONTENT_URL_RE.search(url))


_default_classifier: Optional[LinkClassifier] = None


def get_link_classifier() -> LinkClassifier:
    """Get the default classifier singleton."""
    global _default_classifier
    if _default_classifier is None:
        _default_classifier = HeuristicLinkClassifier()
    return _default_classifier


def is_fabricated(url: str) -> bool:
    """Module-level shortcut for the default classifier."""
    return get_link_classifier().is_fabricated(url)
