"""
Navigator Router Modules

Router Organization:
    - health: Health check and log tail endpoints
    - conversations: Turns, stop and tab listing per conversation
    - search: Direct access to the search cascade
"""

from apps.services.navigator.routers.health import router as health_router
from apps.services.navigator.routers.conversations import router as conversations_router
from apps.services.navigator.routers.search import router as search_router

__all__ = [
    "health_router",
    "conversations_router",
    "search_router",
]
