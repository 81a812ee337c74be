"""
OpenAI Proxy API

Provides OpenAI-compatible endpoints served by the configured executor.
"""

import asyncio

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from copilot_gateway.api.deps import ChatServiceDep
from copilot_gateway.api.proxy.rendering import read_json_body, render
from copilot_gateway.common.errors import AppError

router = APIRouter(tags=["Proxy - OpenAI"])


async def _handle_proxy_request(request: Request, service: ChatServiceDep):
    cancel_event = asyncio.Event()
    try:
        body = await read_json_body(request)
        chat = await service.handle(request.url.path, body, cancel_event=cancel_event)
    except AppError as e:
        return JSONResponse(content=e.to_dict(), status_code=e.status_code)
    return render(chat, cancel_event)


@router.post("/v1/chat/completions")
async def chat_completions(request: Request, service: ChatServiceDep):
    """
    OpenAI Chat Completions API Proxy

    Cursor-style bodies (`input[]` without `messages[]`) are handled as
    Responses requests.
    """
    return await _handle_proxy_request(request, service)


@router.post("/v1/responses")
async def responses(request: Request, service: ChatServiceDep):
    """
    OpenAI Responses API Proxy

    Best-effort compatibility: translates Responses requests into Chat Completions internally.
    """
    return await _handle_proxy_request(request, service)
