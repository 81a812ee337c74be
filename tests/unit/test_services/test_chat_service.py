"""
Chat Service Unit Tests
"""

import json
import time

import httpx
import pytest

from copilot_gateway.common.errors import UnsupportedFormatError, ValidationError
from copilot_gateway.executors.base import Credentials
from copilot_gateway.executors.github import GithubExecutor
from copilot_gateway.services import ChatService, CredentialHolder
from helpers import collect, data_lines, json_events, sse_bytes

CHAT_BODY = {
    "id": "chatcmpl-1",
    "object": "chat.completion",
    "created": 1700000000,
    "model": "gpt-4o",
    "choices": [{"index": 0, "message": {"role": "assistant", "content": "Hi"}, "finish_reason": "stop"}],
    "usage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5},
}

CHAT_STREAM = sse_bytes(
    {"choices": [{"delta": {"content": "Hi"}, "finish_reason": None}]},
    {"choices": [{"delta": {}, "finish_reason": "stop"}], "usage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}},
)


def _service(settings, handler) -> tuple[ChatService, list]:
    seen = []

    def recording(request):
        seen.append(json.loads(request.content))
        return handler(request)

    executor = GithubExecutor(settings=settings, transport=httpx.MockTransport(recording))
    credentials = CredentialHolder(
        Credentials(
            access_token="gho_test",
            provider_token="tid_test",
            provider_token_expires_at=int(time.time()) + 3600,
        )
    )
    return ChatService(executor, credentials), seen


def _json(body, status=200):
    return lambda request: httpx.Response(status, json=body)


def _sse(raw):
    return lambda request: httpx.Response(200, content=raw, headers={"content-type": "text/event-stream"})


GEMINI_BODY = {"contents": [{"role": "user", "parts": [{"text": "Hello"}]}]}


@pytest.mark.asyncio
async def test_gemini_generate_content(settings):
    service, seen = _service(settings, _json(CHAT_BODY))

    response = await service.handle(
        "/v1beta/models/gpt-4o:generateContent", GEMINI_BODY, model="gpt-4o", stream=False
    )

    assert response.status_code == 200
    assert response.stream is None
    assert response.body["candidates"][0]["content"]["parts"] == [{"text": "Hi"}]
    assert response.body["usageMetadata"]["totalTokenCount"] == 5
    assert seen[0]["messages"] == [{"role": "user", "content": "Hello"}]
    assert seen[0]["stream"] is False


@pytest.mark.asyncio
async def test_gemini_stream(settings):
    service, seen = _service(settings, _sse(CHAT_STREAM))

    response = await service.handle(
        "/v1beta/models/gpt-4o:streamGenerateContent", GEMINI_BODY, model="gpt-4o", stream=True
    )
    out = await collect(response.stream)
    await response.aclose()

    assert response.media_type == "text/event-stream"
    assert seen[0]["stream"] is True
    assert b"[DONE]" not in out
    events = json_events(out)
    assert len(events) == 2
    assert events[0]["candidates"][0]["content"]["parts"] == [{"text": "Hi"}]
    assert events[1]["candidates"][0]["finishReason"] == "STOP"
    assert events[1]["usageMetadata"]["totalTokenCount"] == 5


@pytest.mark.asyncio
async def test_openai_stream_passthrough(settings):
    service, _ = _service(settings, _sse(CHAT_STREAM))

    body = {"model": "gpt-4o", "stream": True, "messages": [{"role": "user", "content": "Hello"}]}
    response = await service.handle("/v1/chat/completions", body)
    out = await collect(response.stream)
    await response.aclose()

    assert out == CHAT_STREAM
    assert data_lines(out).count("[DONE]") == 1


@pytest.mark.asyncio
async def test_responses_request_on_chat_path(settings):
    service, seen = _service(settings, _json(CHAT_BODY))

    body = {"model": "gpt-4o", "input": [{"role": "user", "content": "Hello"}]}
    response = await service.handle("/v1/chat/completions", body)

    assert seen[0]["messages"] == [{"role": "user", "content": "Hello"}]
    assert response.body["object"] == "response"
    assert response.body["output"][0]["content"][0]["text"] == "Hi"


@pytest.mark.asyncio
async def test_responses_stream(settings):
    service, _ = _service(settings, _sse(CHAT_STREAM))

    body = {"model": "gpt-4o", "stream": True, "input": "Hello"}
    response = await service.handle("/v1/responses", body)
    out = await collect(response.stream)

    events = json_events(out)
    assert events[0]["type"] == "response.created"
    assert events[0]["response"]["id"].startswith("resp_")
    assert events[-1]["type"] == "response.completed"
    assert events[-1]["response"]["output"][0]["content"][0]["text"] == "Hi"
    assert "[DONE]" not in data_lines(out)


@pytest.mark.asyncio
async def test_transport_failure_renders_gemini_502(settings):
    def fail(request):
        raise httpx.ConnectError("unreachable", request=request)

    service, _ = _service(settings, fail)
    response = await service.handle("/v1beta/models/m:generateContent", GEMINI_BODY, model="m", stream=False)

    assert response.status_code == 502
    assert response.body["error"]["code"] == 502
    assert "unreachable" in response.body["error"]["message"]


@pytest.mark.asyncio
async def test_transport_failure_renders_openai_502(settings):
    def fail(request):
        raise httpx.ConnectError("unreachable", request=request)

    service, _ = _service(settings, fail)
    response = await service.handle("/v1/chat/completions", {"model": "m", "messages": []})

    assert response.status_code == 502
    assert response.body["error"]["type"] == "upstream_error"


@pytest.mark.asyncio
async def test_upstream_error_forwarded_for_gemini(settings):
    service, _ = _service(settings, lambda r: httpx.Response(429, text="slow down"))
    response = await service.handle("/v1beta/models/m:generateContent", GEMINI_BODY, model="m", stream=False)

    assert response.status_code == 429
    assert response.body == {"error": {"message": "slow down", "code": 429}}


@pytest.mark.asyncio
async def test_upstream_error_object_forwarded_unchanged(settings):
    error = {"error": {"message": "quota", "type": "rate_limit"}}
    service, _ = _service(settings, _json(error, status=429))
    response = await service.handle("/v1beta/models/m:generateContent", GEMINI_BODY, model="m", stream=True)

    assert response.status_code == 429
    assert response.stream is None
    assert response.body == error


@pytest.mark.asyncio
async def test_unsupported_format(settings):
    service, seen = _service(settings, _json(CHAT_BODY))
    with pytest.raises(UnsupportedFormatError):
        await service.handle("/v1/messages", {"model": "claude", "messages": []})
    with pytest.raises(UnsupportedFormatError):
        await service.handle("/v1/unknown", {"prompt": "x"})
    assert seen == []


@pytest.mark.asyncio
async def test_unknown_path_with_messages_is_treated_as_openai(settings):
    service, seen = _service(settings, _json(CHAT_BODY))
    response = await service.handle("/custom", {"model": "gpt-4o", "messages": [{"role": "user", "content": "x"}]})
    assert response.body == CHAT_BODY
    assert seen[0]["model"] == "gpt-4o"


@pytest.mark.asyncio
async def test_invalid_bodies(settings):
    service, _ = _service(settings, _json(CHAT_BODY))
    with pytest.raises(ValidationError):
        await service.handle("/v1/responses", {"model": "m"})
    with pytest.raises(ValidationError):
        await service.handle("/v1/chat/completions", ["not", "an", "object"])
    with pytest.raises(ValidationError):
        await service.handle("/v1/chat/completions", {"messages": []})


@pytest.mark.asyncio
async def test_gemini_provider_prefix_is_stripped(settings):
    service, seen = _service(settings, _json(CHAT_BODY))

    response = await service.handle(
        "/v1beta/models/github/gpt-4o:generateContent", GEMINI_BODY, model="github/gpt-4o", stream=False
    )

    assert response.status_code == 200
    assert seen[0]["model"] == "gpt-4o"


@pytest.mark.asyncio
async def test_gemini_unknown_provider_prefix_is_rejected(settings):
    service, seen = _service(settings, _json(CHAT_BODY))

    with pytest.raises(UnsupportedFormatError):
        await service.handle(
            "/v1beta/models/anthropic/claude:generateContent", GEMINI_BODY, model="anthropic/claude", stream=False
        )
    assert seen == []


@pytest.mark.asyncio
async def test_fallback_route_cache_keyed_by_bare_model(settings):
    responses_only = {"error": {"message": "model is not accessible via the /chat/completions endpoint"}}
    responses_body = {
        "id": "resp_1",
        "model": "gpt-5-codex",
        "status": "completed",
        "output": [{"type": "message", "content": [{"type": "output_text", "text": "Hello"}]}],
    }

    def handler(request):
        if request.url.path == "/chat/completions":
            return httpx.Response(400, json=responses_only)
        return httpx.Response(200, json=responses_body)

    service, _ = _service(settings, handler)
    await service.handle(
        "/v1beta/models/github/gpt-5-codex:generateContent", GEMINI_BODY, model="github/gpt-5-codex", stream=False
    )

    assert service.executor.responses_models.snapshot() == frozenset({"gpt-5-codex"})
