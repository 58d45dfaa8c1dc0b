"""Multi-tier web search with structured attempt logging."""

from libs.search.cascade import SearchCascade, SearchOutcome, classify_error, get_search_cascade
from libs.search.logger import (
    SearchAttempt,
    SearchEngineName,
    SearchError,
    SearchErrorCode,
    SearchLogEntry,
    SearchLogger,
)

__all__ = [
    "SearchCascade",
    "SearchOutcome",
    "classify_error",
    "get_search_cascade",
    "SearchAttempt",
    "SearchEngineName",
    "SearchError",
    "SearchErrorCode",
    "SearchLogEntry",
    "SearchLogger",
]
