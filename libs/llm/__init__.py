"""Model stream client and prompt builders."""

from libs.llm.client import ChatStreamClient, StreamEvent, get_chat_client, parse_stream_segments
from libs.llm.prompts import (
    build_deep_read_prompt,
    build_memory_context,
    build_search_results_context,
    build_summary_prompt,
    build_system_prompt,
)

__all__ = [
    # Client
    "ChatStreamClient",
    "StreamEvent",
    "get_chat_client",
    "parse_stream_segments",
    # Prompts
    "build_system_prompt",
    "build_memory_context",
    "build_search_results_context",
    "build_deep_read_prompt",
    "build_summary_prompt",
]
