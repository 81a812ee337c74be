"""
Gemini Proxy API

Serves `generateContent` / `streamGenerateContent` by translating to Chat
Completions and back.
"""

import asyncio

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from copilot_gateway.api.deps import ChatServiceDep
from copilot_gateway.api.proxy.rendering import read_json_body, render
from copilot_gateway.common.errors import AppError
from copilot_gateway.translator.formats import parse_gemini_action
from copilot_gateway.translator.gemini import gemini_error_body

router = APIRouter(tags=["Proxy - Gemini"])


@router.post("/v1beta/models/{model_path:path}")
async def generate_content(model_path: str, request: Request, service: ChatServiceDep):
    """
    Gemini generateContent API Proxy

    `{model}:generateContent`, `{model}:streamGenerateContent` and the
    `{provider}/{model}:...` variants. Streaming follows the action suffix.
    """
    model, stream = parse_gemini_action(model_path.split("/"))
    cancel_event = asyncio.Event()
    try:
        body = await read_json_body(request)
        chat = await service.handle(
            request.url.path,
            body,
            model=model,
            stream=stream,
            cancel_event=cancel_event,
        )
    except AppError as e:
        return JSONResponse(content=gemini_error_body(e.status_code, e.message), status_code=e.status_code)
    return render(chat, cancel_event)
