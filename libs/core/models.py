"""Pydantic models for the navigator."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def generate_id(prefix: str = "") -> str:
    """Short random id, optionally prefixed (``tab_1a2b3c4d``)."""
    token = uuid.uuid4().hex[:10]
    return f"{prefix}_{token}" if prefix else token


# =============================================================================
# Enums
# =============================================================================

class DirectiveKind(str, Enum):
    """Directive kinds; the value is the tag spelling in ``[ACTION:<KIND>:...]``."""

    OPEN_URL = "OPEN_URL"
    SEARCH = "SEARCH"
    IMAGE = "IMAGE"
    OPEN_RESULT = "OPEN_RESULT"
    OPEN_APP = "OPEN_APP"
    SCREENSHOT = "SCREENSHOT"
    EMBED = "EMBED"
    SCRAPE_IMAGES = "SCRAPE_IMAGES"
    READ_URL = "READ_URL"
    CLOSE_TAB = "CLOSE_TAB"
    SWITCH_TAB = "SWITCH_TAB"
    LIST_TABS = "LIST_TABS"
    CLICK_IN_TAB = "CLICK_IN_TAB"
    OPEN_TAB = "OPEN_TAB"


class StatusIcon(str, Enum):
    """Mood icons accepted in ``[STATUS:<icon>:<text>]``."""

    HAPPY = "happy"
    SAD = "sad"
    ANGRY = "angry"
    EXCITED = "excited"
    SLEEPY = "sleepy"
    HUNGRY = "hungry"
    FLUSTERED = "flustered"
    SCARED = "scared"
    CHILL = "chill"
    THINKING = "thinking"
    LOVE = "love"
    GAMING = "gaming"
    MUSIC = "music"
    SPARKLE = "sparkle"
    FIRE = "fire"
    CRYING = "crying"
    SHOCKED = "shocked"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


# =============================================================================
# Parsed model output
# =============================================================================

class Directive(BaseModel):
    """A single parsed action instruction. Immutable once parsed."""

    model_config = ConfigDict(frozen=True)

    kind: DirectiveKind
    value: str
    emission_order: int = 0

    @property
    def target(self) -> str:
        """Part of the value before the first ``|``."""
        return self.value.split("|", 1)[0].strip()

    @property
    def label(self) -> Optional[str]:
        """Part of the value after the first ``|``, if any."""
        if "|" not in self.value:
            return None
        return self.value.split("|", 1)[1].strip() or None

    def to_tag(self) -> str:
        return f"[ACTION:{self.kind.value}:{self.value}]"


class StatusTag(BaseModel):
    model_config = ConfigDict(frozen=True)

    icon: StatusIcon
    text: str


class MemoryFact(BaseModel):
    """A key/value fact about the user extracted from model output."""

    key: str
    value: str
    updated_at: datetime = Field(default_factory=datetime.now)


# =============================================================================
# Navigation state
# =============================================================================

class Tab(BaseModel):
    id: str = Field(default_factory=lambda: generate_id("tab"))
    url: str
    title: str = ""
    favicon_url: Optional[str] = None
    active: bool = False
    opened_at: datetime = Field(default_factory=datetime.now)


class CandidateLink(BaseModel):
    """A scored outbound link produced during one resolution attempt."""

    model_config = ConfigDict(frozen=True)

    url: str
    anchor_text: str
    score: float = 0.0


# =============================================================================
# Collaborator payloads
# =============================================================================

class PageLink(BaseModel):
    url: str
    text: str = ""


class PageHeading(BaseModel):
    level: int = 2
    text: str


class PageVideo(BaseModel):
    url: str
    type: Optional[str] = None


class PageMeta(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    favicon: Optional[str] = None


class FetchedPage(BaseModel):
    """Page-fetch collaborator response."""

    url: str
    title: Optional[str] = None
    content: Optional[str] = None
    links: list[PageLink] = Field(default_factory=list)
    headings: list[PageHeading] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)
    videos: list[PageVideo] = Field(default_factory=list)
    meta: PageMeta = Field(default_factory=PageMeta)
    error: Optional[str] = None

    @property
    def display_title(self) -> str:
        return self.title or self.meta.title or self.url


class SearchResult(BaseModel):
    url: str
    title: str = ""
    snippet: str = ""


# =============================================================================
# Conversation
# =============================================================================

class WebSource(BaseModel):
    url: str
    title: str
    favicon: Optional[str] = None
    snippet: Optional[str] = None


class MessageImage(BaseModel):
    url: str
    alt: Optional[str] = None


class VideoEmbed(BaseModel):
    url: str
    title: Optional[str] = None
    platform: str = "other"  # "youtube" | "other"
    embed_id: Optional[str] = None


class Message(BaseModel):
    id: str = Field(default_factory=generate_id)
    role: MessageRole
    content: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)

    sources: list[WebSource] = Field(default_factory=list)
    images: list[MessageImage] = Field(default_factory=list)
    videos: list[VideoEmbed] = Field(default_factory=list)

    # Deep-read attachments
    page_meta: Optional[PageMeta] = None
    links: list[PageLink] = Field(default_factory=list)
    headings: list[PageHeading] = Field(default_factory=list)

    status: Optional[StatusTag] = None
    notes: list[str] = Field(default_factory=list)
    error: Optional[str] = None
