"""
Navigator Dependencies Module

Singleton instances with lazy initialization. Routers receive them through
``Depends`` so tests can override them.
"""

import logging
from typing import Optional

from apps.tools.memory import get_fact_store
from apps.tools.web import WebToolsClient, get_web_tools
from libs.llm.client import ChatStreamClient, get_chat_client
from libs.navigation.orchestrator import NavigationOrchestrator
from libs.navigation.session import SessionStore
from libs.search.cascade import SearchCascade, get_search_cascade

logger = logging.getLogger("uvicorn.error")

# =============================================================================
# Private Singleton Storage
# =============================================================================

_session_store: Optional[SessionStore] = None
_orchestrator: Optional[NavigationOrchestrator] = None


def get_session_store() -> SessionStore:
    """Get the conversation session store singleton."""
    global _session_store
    if _session_store is None:
        _session_store = SessionStore()
        logger.info("[Dependencies] Session store initialized")
    return _session_store


def get_orchestrator() -> NavigationOrchestrator:
    """Get the navigation orchestrator singleton, wired to the real collaborators."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = NavigationOrchestrator(
            model=get_chat_client(),
            tools=get_web_tools(),
            search=get_search_cascade(),
            memory=get_fact_store(),
        )
        logger.info("[Dependencies] Navigation orchestrator initialized")
    return _orchestrator


def get_search() -> SearchCascade:
    return get_search_cascade()


def initialize_all() -> None:
    """Create every singleton up front."""
    get_session_store()
    get_orchestrator()


async def shutdown_all() -> None:
    """Close HTTP clients held by the singletons."""
    global _orchestrator
    if _orchestrator is not None:
        for client in (_orchestrator.model, _orchestrator.tools):
            if isinstance(client, (ChatStreamClient, WebToolsClient)):
                await client.close()
        _orchestrator = None
