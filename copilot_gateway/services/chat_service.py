"""
Chat Service Module

Runs one inbound generation request end to end: detect the caller's wire
format, translate it to Chat Completions, call the executor with valid
credentials and translate the answer back.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from copilot_gateway.common.errors import UnsupportedFormatError, UpstreamError, ValidationError
from copilot_gateway.common.log import CategoryLog, CategoryLogger
from copilot_gateway.executors.base import BaseExecutor, ExecutionRequest, ExecutionResult
from copilot_gateway.services.credentials import CredentialHolder
from copilot_gateway.translator.formats import WireFormat, detect_format
from copilot_gateway.translator.gemini import (
    gemini_error_body,
    gemini_request_to_openai,
    openai_chunk_to_gemini,
    openai_response_to_gemini,
)
from copilot_gateway.translator.openai_responses import (
    chat_chunk_to_responses_events,
    chat_completion_to_responses_response,
    finish_responses_stream,
    responses_request_to_chat_completions,
)
from copilot_gateway.translator.sse import transform_sse_stream
from copilot_gateway.translator.state import init_state

SSE_MEDIA_TYPE = "text/event-stream"
JSON_MEDIA_TYPE = "application/json"

SUPPORTED_FORMATS = frozenset({WireFormat.OPENAI, WireFormat.OPENAI_RESPONSES, WireFormat.GEMINI})


async def _noop() -> None:
    return None


@dataclass
class ChatResponse:
    """
    Rendered outcome for the HTTP layer.

    Either `body` (JSON-serializable) or `stream` (SSE bytes) is set. `aclose`
    releases the upstream connection when a stream is abandoned.
    """

    status_code: int
    body: Any = None
    stream: Optional[AsyncIterator[bytes]] = None
    media_type: str = JSON_MEDIA_TYPE
    headers: dict[str, str] = field(default_factory=dict)
    aclose: Callable[[], Awaitable[None]] = _noop


class ChatService:
    def __init__(
        self,
        executor: BaseExecutor,
        credentials: CredentialHolder,
        log: Optional[CategoryLog] = None,
    ):
        self.executor = executor
        self.credentials = credentials
        self.log = log or CategoryLogger()

    def _resolve_format(self, path: str, body: Any) -> WireFormat:
        fmt = detect_format(path, body)
        if fmt is None:
            if isinstance(body, dict) and "messages" in body:
                return WireFormat.OPENAI
            raise UnsupportedFormatError(f"Cannot determine request format for path: {path}")
        if fmt not in SUPPORTED_FORMATS:
            raise UnsupportedFormatError(f"Request format '{fmt.value}' is not supported")
        return fmt

    def _route_model(self, model: str) -> str:
        """Drop the `<provider>/` prefix of `/v1beta/models/<provider>/<model>` routes."""
        prefix, sep, name = model.partition("/")
        if not sep:
            return model
        if prefix != self.executor.provider:
            raise UnsupportedFormatError(f"Unknown provider '{prefix}' in model path")
        if not name:
            raise ValidationError("Model name is required", code="missing_model")
        return name

    def _to_chat(
        self,
        fmt: WireFormat,
        body: dict[str, Any],
        model: Optional[str],
        stream: Optional[bool],
    ) -> tuple[dict[str, Any], str, bool]:
        """Translate the inbound body to Chat Completions. Returns (body, model, stream)."""
        if fmt == WireFormat.GEMINI:
            if not model:
                raise ValidationError("Model name is required", code="missing_model")
            model = self._route_model(model)
            is_stream = bool(stream)
            return gemini_request_to_openai(body, model, is_stream), model, is_stream

        if fmt == WireFormat.OPENAI_RESPONSES:
            try:
                chat_body = responses_request_to_chat_completions(body)
            except ValueError as e:
                raise ValidationError(str(e), code="invalid_input")
        else:
            chat_body = dict(body)

        model = model or chat_body.get("model")
        if not model:
            raise ValidationError("Model name is required", code="missing_model")
        is_stream = bool(chat_body.get("stream")) if stream is None else stream
        return chat_body, model, is_stream

    async def handle(
        self,
        path: str,
        body: Any,
        *,
        model: Optional[str] = None,
        stream: Optional[bool] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ChatResponse:
        """
        Process one generation request.

        Args:
            path: Inbound request path, used for format detection
            body: Parsed JSON body
            model: Model name taken from the path (Gemini routes)
            stream: Streaming flag taken from the path (Gemini routes)
            cancel_event: Set by the caller when the client goes away

        Raises:
            UnsupportedFormatError: The request is not in a translatable format
            ValidationError: The body cannot be translated
            AuthenticationError: No usable upstream credentials
        """
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object", code="invalid_body")

        fmt = self._resolve_format(path, body)
        chat_body, model, is_stream = self._to_chat(fmt, body, model, stream)
        self.log.info("CHAT", f"{fmt.value} request model={model} stream={is_stream}")

        credentials = await self.credentials.get_valid(self.executor, self.log)
        result = await self.executor.execute(
            ExecutionRequest(
                model=model,
                body=chat_body,
                credentials=credentials,
                stream=is_stream,
                cancel_event=cancel_event,
                log=self.log,
            )
        )

        if result.status_code == 0:
            return self._transport_failure(fmt, result)
        if not result.is_success:
            return self._upstream_error(fmt, result)
        if result.stream is not None:
            return self._stream_response(fmt, result, model, cancel_event)
        return self._json_response(fmt, result, model)

    # ============ Rendering ============

    def _transport_failure(self, fmt: WireFormat, result: ExecutionResult) -> ChatResponse:
        message = result.error or "Upstream request failed"
        if fmt == WireFormat.GEMINI:
            return ChatResponse(status_code=502, body=gemini_error_body(502, message))
        return ChatResponse(status_code=502, body=UpstreamError(message).to_dict())

    def _upstream_error(self, fmt: WireFormat, result: ExecutionResult) -> ChatResponse:
        self.log.warn("CHAT", f"Upstream returned {result.status_code}")
        body = result.body
        if fmt == WireFormat.GEMINI and not (isinstance(body, dict) and isinstance(body.get("error"), dict)):
            body = gemini_error_body(result.status_code, result.body_text or "Upstream error")
        media_type = JSON_MEDIA_TYPE if isinstance(body, (dict, list)) else "text/plain"
        return ChatResponse(status_code=result.status_code, body=body, media_type=media_type)

    def _stream_response(
        self,
        fmt: WireFormat,
        result: ExecutionResult,
        model: str,
        cancel_event: Optional[asyncio.Event],
    ) -> ChatResponse:
        stream = result.stream
        if fmt == WireFormat.GEMINI:
            stream = transform_sse_stream(
                stream,
                openai_chunk_to_gemini,
                init_state(WireFormat.GEMINI, model),
                WireFormat.GEMINI,
                cancel_event=cancel_event,
            )
        elif fmt == WireFormat.OPENAI_RESPONSES:
            state = init_state(WireFormat.OPENAI_RESPONSES, model)
            state.response_id = f"resp_{uuid.uuid4().hex}"
            stream = transform_sse_stream(
                stream,
                chat_chunk_to_responses_events,
                state,
                WireFormat.OPENAI_RESPONSES,
                finalize=finish_responses_stream,
                cancel_event=cancel_event,
            )

        return ChatResponse(
            status_code=result.status_code,
            stream=stream,
            media_type=SSE_MEDIA_TYPE,
            aclose=result.aclose,
        )

    def _json_response(self, fmt: WireFormat, result: ExecutionResult, model: str) -> ChatResponse:
        body = result.body
        if fmt == WireFormat.GEMINI:
            body = openai_response_to_gemini(body, model)
        elif fmt == WireFormat.OPENAI_RESPONSES:
            body = chat_completion_to_responses_response(body)
        return ChatResponse(status_code=result.status_code, body=body)
