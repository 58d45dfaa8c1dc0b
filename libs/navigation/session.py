"""
Conversation session state.

Everything the orchestrator mutates for a conversation lives on one
``ConversationSession`` handed to it explicitly: tabs, the last search
results, scraped pages and the scrape-in-flight flag. Per-turn data
(cancellation, deep-read chain) travels in ``TurnContext``/``DeepReadChain``.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from libs.core.models import FetchedPage, Message, MessageRole, SearchResult
from libs.navigation.tab_registry import TabRegistry

logger = logging.getLogger(__name__)


class CancellationToken:
    """One per user turn. Cancelling is a normal terminal state, not an error."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "stopped by user") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()
            logger.info(f"[CancellationToken] Cancelled: {reason}")

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass(frozen=True)
class DeepReadChain:
    """Accumulator passed down the read -> re-prompt -> act recursion."""

    original_user_request: str
    depth: int = 0
    visited_urls: frozenset[str] = frozenset()

    def descend(self, url: str) -> "DeepReadChain":
        return DeepReadChain(
            original_user_request=self.original_user_request,
            depth=self.depth + 1,
            visited_urls=self.visited_urls | {url},
        )

    def has_visited(self, url: str) -> bool:
        return url.rstrip("/") in {u.rstrip("/") for u in self.visited_urls}


@dataclass
class TurnContext:
    """Per-turn data shared by every directive dispatched in that turn."""

    user_request: str
    token: CancellationToken = field(default_factory=CancellationToken)
    started_at: datetime = field(default_factory=datetime.now)
    deep_reads: int = 0

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled


@dataclass
class ConversationSession:
    conversation_id: str
    user_id: str = "default"
    tabs: TabRegistry = field(default_factory=TabRegistry)
    messages: list[Message] = field(default_factory=list)

    # Last search of this conversation (for OPEN_RESULT and model context)
    search_results: list[SearchResult] = field(default_factory=list)
    scraped_pages: dict[str, FetchedPage] = field(default_factory=dict)

    # Only one scrape-and-summarize at a time; extra requests are dropped
    scrape_in_flight: bool = False

    state: str = "idle"
    current_turn: Optional[TurnContext] = None

    def add_message(self, role: MessageRole, content: str = "") -> Message:
        message = Message(role=role, content=content)
        self.messages.append(message)
        return message

    def find_message(self, message_id: str) -> Optional[Message]:
        return next((m for m in self.messages if m.id == message_id), None)

    def recent_assistant_texts(self, window: int = 5) -> list[str]:
        texts = [m.content for m in self.messages if m.role == MessageRole.ASSISTANT and m.content]
        return texts[-window:]

    def remember_page(self, page: FetchedPage) -> None:
        self.scraped_pages[page.url] = page


class SessionStore:
    """In-process map of conversation id -> session."""

    def __init__(self):
        self._sessions: dict[str, ConversationSession] = {}
        self._lock = threading.Lock()

    def get_or_create(self, conversation_id: str, user_id: str = "default") -> ConversationSession:
        with self._lock:
            session = self._sessions.get(conversation_id)
            if session is None:
                session = ConversationSession(conversation_id=conversation_id, user_id=user_id)
                self._sessions[conversation_id] = session
                logger.info(f"[SessionStore] Created session {conversation_id}")
            return session

    def get(self, conversation_id: str) -> Optional[ConversationSession]:
        return self._sessions.get(conversation_id)

    def drop(self, conversation_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(conversation_id, None) is not None
