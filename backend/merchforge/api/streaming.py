"""Server-sent event helpers shared by the chat and discovery routes."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Iterable
from typing import Any

from fastapi.responses import StreamingResponse

DELTA_CHUNK_SIZE = 16

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
}


def sse_event(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


def chunk_text(text: str, size: int = DELTA_CHUNK_SIZE) -> list[str]:
    return [text[i : i + size] for i in range(0, len(text), size)]


async def _events(
    head: Iterable[tuple[str, Any]],
    message: str,
    done: dict[str, Any],
) -> AsyncIterator[str]:
    for event, data in head:
        yield sse_event(event, data)
    for part in chunk_text(message):
        yield sse_event("delta", part)
    yield sse_event("done", done)


def sse_response(
    head: list[tuple[str, Any]],
    message: str,
    fallback_used: bool = False,
    error: str | None = None,
) -> StreamingResponse:
    """``head`` events, then the message as ``delta`` chunks, then ``done``."""
    done: dict[str, Any] = {"fallbackUsed": fallback_used}
    if error:
        done["error"] = error
    return StreamingResponse(
        _events(head, message, done),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
