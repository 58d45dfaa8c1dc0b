"""
Memory tools: per-user facts the assistant was told to remember.

Usage:
    from apps.tools.memory import get_fact_store

    store = get_fact_store()
    store.upsert("user-1", "name", "Sam")
    prompt_block = store.context_block("user-1")
"""

from .store import MemoryFactStore, get_fact_store

__all__ = [
    "MemoryFactStore",
    "get_fact_store",
]
