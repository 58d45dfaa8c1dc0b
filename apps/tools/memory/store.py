"""
Memory fact store.

Process-wide, per-user key/value facts extracted from ``[MEMORY:key:value]``
tags. Keys match case-insensitively; an upsert replaces the value and moves
the fact to the newest position. Each user keeps at most ``max_facts``
facts, the least recently updated one is evicted first. Facts never expire
on their own.
"""

import logging
import threading
from datetime import datetime
from typing import Optional

from libs.core.config import get_settings
from libs.core.models import MemoryFact
from libs.llm.prompts import build_memory_context

logger = logging.getLogger(__name__)


class MemoryFactStore:
    def __init__(self, max_facts: Optional[int] = None):
        self.max_facts = max_facts or get_settings().navigation.max_memory_facts
        # user_id -> lowercased key -> fact, oldest first
        self._facts: dict[str, dict[str, MemoryFact]] = {}
        self._lock = threading.Lock()

    def upsert(self, user_id: str, key: str, value: str) -> MemoryFact:
        key = key.strip()
        value = value.strip()
        normalized = key.lower()
        with self._lock:
            facts = self._facts.setdefault(user_id, {})
            facts.pop(normalized, None)
            fact = MemoryFact(key=key, value=value, updated_at=datetime.now())
            facts[normalized] = fact

            while len(facts) > self.max_facts:
                evicted = next(iter(facts))
                facts.pop(evicted)
                logger.info(f"[MemoryStore] Evicted '{evicted}' for {user_id} (cap {self.max_facts})")

        logger.info(f"[MemoryStore] {user_id}: {key} = {value}")
        return fact

    def upsert_many(self, user_id: str, facts: list[MemoryFact]) -> list[MemoryFact]:
        return [self.upsert(user_id, fact.key, fact.value) for fact in facts]

    def get(self, user_id: str, key: str) -> Optional[MemoryFact]:
        return self._facts.get(user_id, {}).get(key.strip().lower())

    def facts(self, user_id: str) -> list[MemoryFact]:
        return list(self._facts.get(user_id, {}).values())

    def forget(self, user_id: str, key: str) -> bool:
        with self._lock:
            return self._facts.get(user_id, {}).pop(key.strip().lower(), None) is not None

    def context_block(self, user_id: str) -> str:
        return build_memory_context(self.facts(user_id))


_store: Optional[MemoryFactStore] = None


def get_fact_store() -> MemoryFactStore:
    """Get singleton memory fact store."""
    global _store
    if _store is None:
        _store = MemoryFactStore()
    return _store
