"""
Shared helpers for the proxy routes: body parsing and response rendering.
"""

import asyncio
import json
import logging
from typing import Any, AsyncGenerator

from fastapi import Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from copilot_gateway.common.errors import ValidationError
from copilot_gateway.services import ChatResponse

logger = logging.getLogger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def read_json_body(request: Request) -> Any:
    """Parse the request body as JSON, raising ValidationError when it is not."""
    raw = await request.body()
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Request body is not valid JSON", code="invalid_json")


def render(chat: ChatResponse, cancel_event: asyncio.Event) -> Response:
    """
    Turn a ChatResponse into a FastAPI response.

    Streams are relayed as-is. When the client goes away the generator is
    closed, which sets `cancel_event` and releases the upstream connection.
    """
    if chat.stream is None:
        content = chat.body
        if isinstance(content, (dict, list)):
            return JSONResponse(content=content, status_code=chat.status_code, headers=chat.headers)
        return Response(
            content=content if content is not None else b"",
            status_code=chat.status_code,
            headers=chat.headers,
            media_type=chat.media_type,
        )

    stream = chat.stream

    async def relay() -> AsyncGenerator[bytes, None]:
        try:
            async for chunk in stream:
                yield chunk
        finally:
            if not cancel_event.is_set():
                cancel_event.set()
            close = getattr(stream, "aclose", None)
            if close is not None:
                await close()
            await chat.aclose()
            logger.debug("Stream relay closed")

    return StreamingResponse(
        relay(),
        status_code=chat.status_code,
        headers={**STREAM_HEADERS, **chat.headers},
        media_type=chat.media_type,
    )
