"""
Directive Parser - tag grammar extraction from raw model output.

Recognized tags:
- [ACTION:<KIND>:<value>]   zero or more directives, kept in emission order
- [STATUS:<icon>:<text>]    one mood/status tuple (first match in the text)
- [MEMORY:<key>:<value>]    zero or more user facts, later keys overwrite earlier
- [IMAGE:<url>|<alt>]       legacy action-less image tag

Parsing is tolerant: malformed tags are ignored, unknown bracket tags are left
in the clean text untouched, and only exact (kind, value) duplicates are
dropped.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from libs.core.models import Directive, DirectiveKind, MemoryFact, StatusIcon, StatusTag

logger = logging.getLogger(__name__)


# Tag spellings that older prompts taught the model
KIND_ALIASES = {
    "VIDEO": DirectiveKind.EMBED,
}

# Kinds that are meaningful without a value
VALUELESS_KINDS = frozenset({DirectiveKind.LIST_TABS})

# Kinds whose execution result replaces the prose as the user-visible payload
NAVIGATION_KINDS = frozenset({
    DirectiveKind.OPEN_URL,
    DirectiveKind.OPEN_RESULT,
    DirectiveKind.OPEN_APP,
    DirectiveKind.OPEN_TAB,
    DirectiveKind.EMBED,
    DirectiveKind.SCREENSHOT,
    DirectiveKind.READ_URL,
    DirectiveKind.CLICK_IN_TAB,
    DirectiveKind.SWITCH_TAB,
    DirectiveKind.CLOSE_TAB,
})

_KIND_ALTERNATION = "|".join(
    sorted([k.value for k in DirectiveKind] + list(KIND_ALIASES), key=len, reverse=True)
)

ACTION_TAG_RE = re.compile(rf"\[ACTION:({_KIND_ALTERNATION})(?::([^\]]*))?\]", re.IGNORECASE)
STATUS_TAG_RE = re.compile(r"\[STATUS:([^:\]]+):([^\]]*)\]", re.IGNORECASE)
MEMORY_TAG_RE = re.compile(r"\[MEMORY:([^:\]]+):([^\]]+)\]", re.IGNORECASE)
LEGACY_IMAGE_RE = re.compile(r"\[IMAGE:([^\]]+)\]", re.IGNORECASE)

_ALL_TAG_PATTERNS = (ACTION_TAG_RE, STATUS_TAG_RE, MEMORY_TAG_RE, LEGACY_IMAGE_RE)

_SENTENCE_END_RE = re.compile(r"[.!?~](?=\s|$)")

FILLER_RE = re.compile(
    r"^(?:okay|ok|okie|got it|opening|sure|alright|on it|here you go|here it is|"
    r"one sec|done|lemme|let me|right away|coming up|no problem)\b",
    re.IGNORECASE,
)
FILLER_MAX_CHARS = 40

DEFAULT_STATUS_ICON = StatusIcon.SPARKLE


@dataclass
class ParsedResponse:
    """Everything extracted from one model response."""

    raw_text: str
    directives: list[Directive] = field(default_factory=list)
    status: Optional[StatusTag] = None
    memories: list[MemoryFact] = field(default_factory=list)
    clean_text: str = ""

    @property
    def has_directives(self) -> bool:
        return bool(self.directives)

    def kinds(self) -> list[DirectiveKind]:
        return [d.kind for d in self.directives]


# =============================================================================
# Directives
# =============================================================================

def _resolve_kind(raw: str) -> DirectiveKind:
    upper = raw.upper()
    if upper in KIND_ALIASES:
        return KIND_ALIASES[upper]
    return DirectiveKind(upper)


def parse_directives(text: str) -> list[Directive]:
    """Extract directives in the order they were emitted."""
    found: list[tuple[int, DirectiveKind, str]] = []
    seen: set[tuple[DirectiveKind, str]] = set()

    for match in ACTION_TAG_RE.finditer(text):
        kind = _resolve_kind(match.group(1))
        value = (match.group(2) or "").strip()
        if not value and kind not in VALUELESS_KINDS:
            logger.debug(f"[DirectiveParser] Ignoring empty {kind.value} tag")
            continue
        if (kind, value) in seen:
            continue
        seen.add((kind, value))
        found.append((match.start(), kind, value))

    # Legacy [IMAGE:url|alt] without the ACTION prefix
    for match in LEGACY_IMAGE_RE.finditer(text):
        value = match.group(1).strip()
        if not value or (DirectiveKind.IMAGE, value) in seen:
            continue
        seen.add((DirectiveKind.IMAGE, value))
        found.append((match.start(), DirectiveKind.IMAGE, value))

    found.sort(key=lambda item: item[0])
    return [
        Directive(kind=kind, value=value, emission_order=order)
        for order, (_, kind, value) in enumerate(found)
    ]


def serialize_directives(directives: Iterable[Directive]) -> str:
    """Render directives back to their tag form, space separated."""
    return " ".join(d.to_tag() for d in directives)


# =============================================================================
# Status and memory tags
# =============================================================================

def parse_status(text: str) -> Optional[StatusTag]:
    """First [STATUS:icon:text] tag in the text. Unknown icons become sparkle."""
    match = STATUS_TAG_RE.search(text)
    if not match:
        return None

    raw_icon = match.group(1).strip().lower()
    try:
        icon = StatusIcon(raw_icon)
    except ValueError:
        logger.debug(f"[DirectiveParser] Unknown status icon '{raw_icon}'")
        icon = DEFAULT_STATUS_ICON

    return StatusTag(icon=icon, text=match.group(2).strip())


def parse_memories(text: str) -> list[MemoryFact]:
    """All [MEMORY:key:value] facts; a repeated key keeps its last value."""
    facts: dict[str, MemoryFact] = {}
    for match in MEMORY_TAG_RE.finditer(text):
        key = match.group(1).strip()
        value = match.group(2).strip()
        if not key or not value:
            continue
        facts[key.lower()] = MemoryFact(key=key, value=value)
    return list(facts.values())


# =============================================================================
# Clean text
# =============================================================================

def strip_tags(text: str) -> str:
    """Remove every recognized tag and collapse the leftover whitespace."""
    previous = None
    while previous != text:
        previous = text
        for pattern in _ALL_TAG_PATTERNS:
            text = pattern.sub(" ", text)

    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def is_filler(text: str) -> bool:
    """Short throwaway openers like "okay!" or "opening that rn"."""
    stripped = text.strip()
    return len(stripped) < FILLER_MAX_CHARS and bool(FILLER_RE.match(stripped))


def shorten_navigation_text(text: str, limit: int = 150, floor: int = 100) -> str:
    """
    Reduce prose to its first sentence (or first line, or first ``limit``
    characters) and drop it entirely when it is pure filler.
    """
    first_line = next((line.strip() for line in text.splitlines() if line.strip()), "")
    if not first_line:
        return ""

    match = _SENTENCE_END_RE.search(first_line)
    short = first_line[: match.end()] if match else first_line

    if len(short) > limit:
        cut = short.rfind(" ", floor, limit)
        short = short[: cut if cut != -1 else limit].rstrip(" ,;:-") + "..."

    if is_filler(short):
        return ""
    return short


def is_navigation_only(directives: list[Directive]) -> bool:
    return bool(directives) and all(d.kind in NAVIGATION_KINDS for d in directives)


# =============================================================================
# Entry point
# =============================================================================

def parse_response(text: str, text_limit: int = 150) -> ParsedResponse:
    """
    Parse raw model text into directives, status, memory facts and clean text.

    Args:
        text: Raw model output
        text_limit: Max characters kept when the response is navigation-only

    Returns:
        ParsedResponse
    """
    directives = parse_directives(text)
    clean_text = strip_tags(text)

    if is_navigation_only(directives):
        clean_text = shorten_navigation_text(clean_text, limit=text_limit)

    parsed = ParsedResponse(
        raw_text=text,
        directives=directives,
        status=parse_status(text),
        memories=parse_memories(text),
        clean_text=clean_text,
    )

    if directives:
        logger.info(
            f"[DirectiveParser] {len(directives)} directive(s): "
            f"{', '.join(d.kind.value for d in directives)}"
        )
    return parsed
