"""
Directive interpretation and navigation resolution.

The orchestrator lives in ``libs.navigation.orchestrator`` and is imported
from there directly.
"""

from libs.navigation.directive_parser import ParsedResponse, parse_response
from libs.navigation.link_classifier import HeuristicLinkClassifier, LinkClassifier, is_fabricated
from libs.navigation.link_ranker import LinkLocator, LinkRanker, parse_ordinal, title_similarity
from libs.navigation.session import (
    CancellationToken,
    ConversationSession,
    DeepReadChain,
    SessionStore,
    TurnContext,
)
from libs.navigation.tab_registry import TabRegistry, find_tab

__all__ = [
    # Parser
    "ParsedResponse",
    "parse_response",
    # Classifier / ranker
    "LinkClassifier",
    "HeuristicLinkClassifier",
    "is_fabricated",
    "LinkLocator",
    "LinkRanker",
    "parse_ordinal",
    "title_similarity",
    # State
    "CancellationToken",
    "ConversationSession",
    "DeepReadChain",
    "SessionStore",
    "TurnContext",
    "TabRegistry",
    "find_tab",
]
