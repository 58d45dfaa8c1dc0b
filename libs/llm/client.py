"""Streaming chat client for the model endpoint."""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx

from libs.core.config import LLMSettings, get_settings
from libs.core.exceptions import LLMError
from libs.navigation.session import CancellationToken

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


@dataclass
class StreamEvent:
    """One decoded segment of the model stream."""

    kind: str  # "content" | "error" | "done"
    text: str = ""


def parse_stream_segments(buffer: str) -> tuple[list[StreamEvent], str]:
    """
    Split a stream buffer on blank lines and decode the complete segments.

    Each segment is ``data: <json>`` carrying ``{"content": ...}`` or
    ``{"error": ...}``, or the literal ``[DONE]``. Malformed segments are
    skipped. Returns the decoded events and the trailing incomplete segment.
    """
    parts = buffer.replace("\r\n", "\n").split("\n\n")
    remainder = parts.pop()
    events: list[StreamEvent] = []

    for part in parts:
        payload = part.strip()
        if payload.startswith("data:"):
            payload = payload[5:].strip()
        if not payload:
            continue
        if payload == DONE_SENTINEL:
            events.append(StreamEvent(kind="done"))
            continue
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug(f"[ChatStream] Skipping malformed segment: {payload[:80]}")
            continue
        if not isinstance(data, dict):
            continue
        if data.get("error"):
            events.append(StreamEvent(kind="error", text=str(data["error"])))
        elif data.get("content"):
            events.append(StreamEvent(kind="content", text=str(data["content"])))

    return events, remainder


class ChatStreamClient:
    """Async client for the framed chat stream endpoint."""

    def __init__(
        self,
        settings: Optional[LLMSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings().llm
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.timeout, connect=10.0),
            transport=transport,
        )

    async def close(self):
        await self._client.aclose()

    async def stream(
        self,
        messages: list[dict[str, str]],
        system_prompt: str = "",
        token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[str]:
        """
        Yield content chunks as they arrive.

        Stops quietly when the token is cancelled, even while the body is silent.

        Raises:
            LLMError: HTTP failure or an ``{"error"}`` segment in the stream
        """
        payload = {"messages": messages, "systemPrompt": system_prompt}
        buffer = ""

        try:
            async with self._client.stream("POST", self.settings.chat_url, json=payload) as response:
                if response.status_code != 200:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise LLMError(
                        _error_message(body) or f"HTTP {response.status_code}",
                        {"status": response.status_code, "url": self.settings.chat_url},
                    )

                chunks = response.aiter_text()
                while True:
                    chunk = await _next_chunk(chunks, token)
                    if token is not None and token.cancelled:
                        logger.info("[ChatStream] Cancelled mid-stream")
                        return
                    if chunk is None:
                        break
                    buffer += chunk
                    events, buffer = parse_stream_segments(buffer)
                    for event in events:
                        if event.kind == "error":
                            raise LLMError(event.text, {"url": self.settings.chat_url})
                        if event.kind == "done":
                            return
                        yield event.text

            # Stream closed without a trailing blank line
            events, _ = parse_stream_segments(buffer + "\n\n")
            for event in events:
                if event.kind == "error":
                    raise LLMError(event.text, {"url": self.settings.chat_url})
                if event.kind == "content":
                    yield event.text

        except httpx.HTTPError as e:
            if token is not None and token.cancelled:
                return
            raise LLMError(f"Stream failed: {e}", {"url": self.settings.chat_url}) from e

    async def complete(
        self,
        messages: list[dict[str, str]],
        system_prompt: str = "",
        token: Optional[CancellationToken] = None,
    ) -> str:
        """Collect the whole stream into one string (partial if cancelled)."""
        chunks = []
        async for chunk in self.stream(messages, system_prompt, token):
            chunks.append(chunk)
        return "".join(chunks)


async def _read_chunk(chunks: AsyncIterator[str]) -> Optional[str]:
    return await anext(chunks, None)


async def _next_chunk(chunks: AsyncIterator[str], token: Optional[CancellationToken]) -> Optional[str]:
    """Next body chunk, or None at the end of the body or once the token is cancelled."""
    if token is None:
        return await _read_chunk(chunks)
    if token.cancelled:
        return None

    reader = asyncio.ensure_future(_read_chunk(chunks))
    waiter = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({reader, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        reader.cancel()
        raise
    finally:
        waiter.cancel()

    if reader.done():
        return reader.result()
    reader.cancel()
    await asyncio.wait({reader})
    return None


def _error_message(body: str) -> Optional[str]:
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return body.strip()[:200] or None
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return None


_client: Optional[ChatStreamClient] = None


def get_chat_client() -> ChatStreamClient:
    """Get singleton chat stream client."""
    global _client
    if _client is None:
        _client = ChatStreamClient()
    return _client
