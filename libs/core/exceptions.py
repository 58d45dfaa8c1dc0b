"""Custom exceptions for the navigator."""

from typing import Any, Optional


class NavigatorError(Exception):
    """Base exception for the navigator."""

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class LLMError(NavigatorError):
    """Model stream errors."""

    pass


class ToolError(NavigatorError):
    """Page-fetch / screenshot / app-launch collaborator errors."""

    def __init__(
        self,
        message: str,
        tool: str,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.tool = tool


class TabNotFoundError(NavigatorError):
    """No tab matches the given id or human reference."""

    def __init__(self, reference: str, context: Optional[dict[str, Any]] = None):
        super().__init__(f"No tab matches '{reference}'", context)
        self.reference = reference


class SearchLogError(NavigatorError):
    """Cascade logger misuse (sealed twice, out-of-order fallback level)."""

    pass


class DeepReadLimitError(NavigatorError):
    """Deep reads reached their bound for the chain or the turn."""

    def __init__(
        self,
        depth: int,
        limit: int,
        context: Optional[dict[str, Any]] = None,
    ):
        message = f"Deep-read chain stopped at depth {depth}/{limit}"
        super().__init__(message, context)
        self.depth = depth
        self.limit = limit
