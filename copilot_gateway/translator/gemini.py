"""
Gemini <-> OpenAI Chat Completions conversion.

Inbound Gemini `generateContent` requests are mapped onto the internal Chat
Completions schema; Chat Completions responses (whole JSON or SSE chunks) are
mapped back onto `GenerateContentResponse`.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from .state import TranslationState

logger = logging.getLogger(__name__)

# OpenAI finish_reason -> Gemini finishReason
FINISH_REASON_MAP = {
    "stop": "STOP",
    "length": "MAX_TOKENS",
    "tool_calls": "STOP",
    "function_call": "STOP",
    "content_filter": "SAFETY",
}
DEFAULT_FINISH_REASON = "STOP"

_TOOL_CHOICE_MAP = {
    "AUTO": "auto",
    "ANY": "required",
    "NONE": "none",
}


def map_finish_reason(reason: Any) -> str:
    return FINISH_REASON_MAP.get(reason, DEFAULT_FINISH_REASON)


# ============ Request: Gemini -> OpenAI ============

def _parts(container: Any) -> list[dict[str, Any]]:
    if not isinstance(container, dict):
        return []
    parts = container.get("parts")
    if not isinstance(parts, list):
        return []
    return [p for p in parts if isinstance(p, dict)]


def _joined_text(parts: list[dict[str, Any]]) -> str:
    texts = [p["text"] for p in parts if isinstance(p.get("text"), str) and not p.get("thought")]
    return "\n".join(texts)


def _normalize_schema(schema: Any) -> Any:
    """Gemini schemas use upper-case type names ("OBJECT"); JSON Schema wants lower-case."""
    if isinstance(schema, dict):
        out = {}
        for key, value in schema.items():
            if key == "type" and isinstance(value, str):
                out[key] = value.lower()
            else:
                out[key] = _normalize_schema(value)
        return out
    if isinstance(schema, list):
        return [_normalize_schema(item) for item in schema]
    return schema


def _convert_tools(tools: Any) -> list[dict[str, Any]]:
    if not isinstance(tools, list):
        return []
    out: list[dict[str, Any]] = []
    for tool in tools:
        if not isinstance(tool, dict):
            continue
        for decl in tool.get("functionDeclarations") or []:
            if not isinstance(decl, dict) or not decl.get("name"):
                continue
            function: dict[str, Any] = {"name": decl["name"]}
            if decl.get("description"):
                function["description"] = decl["description"]
            parameters = decl.get("parametersJsonSchema") or decl.get("parameters")
            if isinstance(parameters, dict):
                function["parameters"] = _normalize_schema(parameters)
            out.append({"type": "function", "function": function})
    return out


class _ToolCallIds:
    """Gemini function calls usually carry no id; pair calls and responses by name, in order."""

    def __init__(self) -> None:
        self._pending: dict[str, list[str]] = {}
        self._counter = 0

    def issue(self, name: str, given: Any = None) -> str:
        self._counter += 1
        call_id = given if isinstance(given, str) and given else f"call_{self._counter}_{name}"
        self._pending.setdefault(name, []).append(call_id)
        return call_id

    def resolve(self, name: str, given: Any = None) -> str:
        pending = self._pending.get(name) or []
        if isinstance(given, str) and given:
            if given in pending:
                pending.remove(given)
            return given
        if pending:
            return pending.pop(0)
        self._counter += 1
        return f"call_{self._counter}_{name}"


def _convert_content(content: dict[str, Any], ids: _ToolCallIds) -> list[dict[str, Any]]:
    role = "assistant" if content.get("role") == "model" else "user"
    parts = _parts(content)
    text = _joined_text(parts)

    messages: list[dict[str, Any]] = []
    images: list[dict[str, Any]] = []
    tool_calls: list[dict[str, Any]] = []

    for part in parts:
        inline = part.get("inlineData")
        if isinstance(inline, dict) and inline.get("data"):
            mime = inline.get("mimeType") or "image/png"
            images.append({
                "type": "image_url",
                "image_url": {"url": f"data:{mime};base64,{inline['data']}"},
            })
            continue

        call = part.get("functionCall")
        if isinstance(call, dict) and call.get("name"):
            tool_calls.append({
                "id": ids.issue(call["name"], call.get("id")),
                "type": "function",
                "function": {
                    "name": call["name"],
                    "arguments": json.dumps(call.get("args") or {}, ensure_ascii=False),
                },
            })
            continue

        result = part.get("functionResponse")
        if isinstance(result, dict) and result.get("name"):
            response = result.get("response")
            messages.append({
                "role": "tool",
                "tool_call_id": ids.resolve(result["name"], result.get("id")),
                "content": response if isinstance(response, str) else json.dumps(response, ensure_ascii=False),
            })

    if tool_calls:
        messages.append({"role": "assistant", "content": text or None, "tool_calls": tool_calls})
    elif images:
        body: list[dict[str, Any]] = [{"type": "text", "text": text}] if text else []
        messages.append({"role": role, "content": body + images})
    elif text or not messages:
        messages.append({"role": role, "content": text})
    return messages


def gemini_request_to_openai(body: dict[str, Any], model: str, stream: bool) -> dict[str, Any]:
    """
    Convert a Gemini `generateContent` body into a Chat Completions body.

    Args:
        body: Gemini request body
        model: Resolved model name (from the URL)
        stream: Streaming intent, taken from the URL action suffix

    Returns:
        dict: Chat Completions request body
    """
    messages: list[dict[str, Any]] = []

    system = body.get("systemInstruction") or body.get("system_instruction")
    if isinstance(system, str):
        system_text = system
    else:
        system_text = _joined_text(_parts(system))
    if system_text:
        messages.append({"role": "system", "content": system_text})

    ids = _ToolCallIds()
    for content in body.get("contents") or []:
        if isinstance(content, dict):
            messages.extend(_convert_content(content, ids))

    result: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "stream": stream,
    }

    config = body.get("generationConfig")
    if isinstance(config, dict):
        for source_key, target_key in (
            ("maxOutputTokens", "max_tokens"),
            ("temperature", "temperature"),
            ("topP", "top_p"),
            ("stopSequences", "stop"),
        ):
            if config.get(source_key) is not None:
                result[target_key] = config[source_key]

    tools = _convert_tools(body.get("tools"))
    if tools:
        result["tools"] = tools
        mode = ((body.get("toolConfig") or {}).get("functionCallingConfig") or {}).get("mode")
        if mode in _TOOL_CHOICE_MAP:
            result["tool_choice"] = _TOOL_CHOICE_MAP[mode]

    return result


# ============ Response: OpenAI -> Gemini ============

def _usage_metadata(usage: dict[str, Any]) -> dict[str, Any]:
    metadata = {
        "promptTokenCount": usage.get("prompt_tokens") or 0,
        "candidatesTokenCount": usage.get("completion_tokens") or 0,
        "totalTokenCount": usage.get("total_tokens") or 0,
    }
    details = usage.get("completion_tokens_details")
    if isinstance(details, dict) and details.get("reasoning_tokens"):
        metadata["thoughtsTokenCount"] = details["reasoning_tokens"]
    return metadata


def _function_call_part(name: str, arguments: Any) -> dict[str, Any]:
    if isinstance(arguments, dict):
        args = arguments
    else:
        try:
            args = json.loads(arguments) if arguments else {}
        except json.JSONDecodeError:
            logger.debug("Tool call %s has non-JSON arguments", name)
            args = {}
    return {"functionCall": {"name": name, "args": args}}


def _reasoning(container: dict[str, Any]) -> Optional[str]:
    value = container.get("reasoning_content") or container.get("reasoning")
    return value if isinstance(value, str) and value else None


def _terminal_fields(result: dict[str, Any], usage: Any, model: Optional[str], state: TranslationState) -> None:
    if isinstance(usage, dict):
        state.usage = usage
        result["usageMetadata"] = _usage_metadata(usage)
    result["modelVersion"] = model or state.model


def openai_chunk_to_gemini(chunk: Any, state: TranslationState) -> Optional[dict[str, Any]]:
    """
    Convert one Chat Completions stream chunk into a Gemini stream event.

    Returns None when the chunk carries nothing worth emitting.
    """
    if not isinstance(chunk, dict):
        return None

    if isinstance(chunk.get("model"), str) and chunk["model"]:
        state.model = chunk["model"]

    if isinstance(chunk.get("error"), dict):
        state.error = chunk["error"]
        code = state.error.get("code")
        message = state.error.get("message") or "Upstream error"
        return gemini_error_body(code if isinstance(code, int) else 500, message)

    choices = chunk.get("choices")
    choice = choices[0] if isinstance(choices, list) and choices and isinstance(choices[0], dict) else None

    if choice is None:
        # Usage arriving in a separate trailing chunk after the finish chunk.
        # The finish chunk already carried finishReason; it is not repeated.
        if state.finished and isinstance(chunk.get("usage"), dict):
            result = {
                "candidates": [{
                    "content": {"role": "model", "parts": [{"text": ""}]},
                    "index": 0,
                }],
            }
            _terminal_fields(result, chunk["usage"], chunk.get("model"), state)
            return result
        return None

    delta = choice.get("delta") if isinstance(choice.get("delta"), dict) else {}
    finish_reason = choice.get("finish_reason")

    parts: list[dict[str, Any]] = []
    reasoning = _reasoning(delta)
    if reasoning:
        parts.append({"text": reasoning, "thought": True})
    content = delta.get("content")
    if isinstance(content, str) and content:
        parts.append({"text": content})

    for call in delta.get("tool_calls") or []:
        if not isinstance(call, dict):
            continue
        index = call.get("index", 0)
        entry = state.tool_calls.setdefault(index, {"id": None, "name": "", "arguments": ""})
        if call.get("id"):
            entry["id"] = call["id"]
        function = call.get("function") or {}
        if function.get("name"):
            entry["name"] = function["name"]
        if isinstance(function.get("arguments"), str):
            entry["arguments"] += function["arguments"]

    if finish_reason:
        for index in sorted(state.tool_calls):
            entry = state.tool_calls[index]
            if entry["name"]:
                parts.append(_function_call_part(entry["name"], entry["arguments"]))
        state.tool_calls.clear()

    if not parts and not finish_reason:
        return None

    candidate: dict[str, Any] = {
        "content": {"role": "model", "parts": parts or [{"text": ""}]},
        "index": 0,
    }
    result: dict[str, Any] = {"candidates": [candidate]}

    if finish_reason:
        mapped = map_finish_reason(finish_reason)
        candidate["finishReason"] = mapped
        state.finish_reason = mapped
        state.finished = True
        _terminal_fields(result, chunk.get("usage"), chunk.get("model"), state)

    return result


def openai_response_to_gemini(body: Any, model: str) -> Any:
    """
    Convert a Chat Completions JSON response into a Gemini GenerateContentResponse.

    Bodies that are already Gemini-shaped, are errors, or have no choices are
    returned unchanged.
    """
    if not isinstance(body, dict):
        return body
    if "candidates" in body or "error" in body:
        return body

    choices = body.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return body

    choice = choices[0]
    message = choice.get("message") if isinstance(choice.get("message"), dict) else {}

    parts: list[dict[str, Any]] = []
    reasoning = _reasoning(message)
    if reasoning:
        parts.append({"text": reasoning, "thought": True})
    content = message.get("content")
    parts.append({"text": content if isinstance(content, str) else ""})
    for call in message.get("tool_calls") or []:
        function = call.get("function") if isinstance(call, dict) else None
        if isinstance(function, dict) and function.get("name"):
            parts.append(_function_call_part(function["name"], function.get("arguments")))

    result: dict[str, Any] = {
        "candidates": [
            {
                "content": {"role": "model", "parts": parts},
                "finishReason": map_finish_reason(choice.get("finish_reason")),
                "index": 0,
            }
        ],
        "modelVersion": body.get("model") or model,
    }
    if isinstance(body.get("usage"), dict):
        result["usageMetadata"] = _usage_metadata(body["usage"])
    return result


def gemini_error_body(status_code: int, message: str) -> dict[str, Any]:
    return {"error": {"message": message, "code": status_code}}
