"""
OpenAI Responses API <-> Chat Completions translation.

Chat Completions is the internal schema. This module covers both directions:

- inbound: clients calling `/v1/responses` (or posting a Responses body to
  `/v1/chat/completions`) are translated to Chat Completions, and the chat
  result is translated back;
- upstream: models that Copilot only serves through `/responses` get the
  chat body translated to a Responses body, and the Responses result (JSON or
  SSE events) translated back to Chat Completions.
"""

from __future__ import annotations

import json
import time
import uuid
from typing import Any, Optional, Union

from .state import TranslationState


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def _dumps(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)


# ============ Inbound: Responses request -> Chat Completions ============

def _coerce_content_blocks(content: Any) -> Any:
    """
    Convert Responses-style content blocks into Chat Completions content.

    - "input_text" / "output_text" -> {"type":"text","text":...}
    - "input_image" / "image_url" -> {"type":"image_url","image_url":{"url":...}}
    """
    if content is None or isinstance(content, str):
        return content or ""

    if not isinstance(content, list):
        return str(content)

    out: list[dict[str, Any]] = []
    for block in content:
        if isinstance(block, str):
            if block:
                out.append({"type": "text", "text": block})
            continue
        if not isinstance(block, dict):
            continue

        block_type = block.get("type")
        if block_type in ("input_image", "image_url"):
            url: Optional[str] = None
            image = block.get("image_url")
            if isinstance(image, dict) and isinstance(image.get("url"), str):
                url = image["url"]
            elif isinstance(image, str):
                url = image
            elif isinstance(block.get("url"), str):
                url = block["url"]
            if url:
                out.append({"type": "image_url", "image_url": {"url": url}})
            continue

        text = block.get("text")
        if isinstance(text, str) and text:
            out.append({"type": "text", "text": text})

    if len(out) == 1 and out[0].get("type") == "text":
        return out[0]["text"]
    return out


def _input_to_messages(input_value: Any) -> list[dict[str, Any]]:
    if input_value is None:
        return []
    if isinstance(input_value, str):
        return [{"role": "user", "content": input_value}]
    if isinstance(input_value, dict):
        input_value = [input_value]
    if not isinstance(input_value, list):
        return [{"role": "user", "content": str(input_value)}]

    messages: list[dict[str, Any]] = []
    loose_blocks: list[Any] = []

    for item in input_value:
        if not isinstance(item, dict) or ("role" not in item and item.get("type") not in (
            "message", "function_call", "function_call_output"
        )):
            loose_blocks.append(item)
            continue

        item_type = item.get("type")
        if item_type == "function_call":
            call = {
                "id": item.get("call_id") or item.get("id") or _new_id("call"),
                "type": "function",
                "function": {"name": item.get("name", ""), "arguments": item.get("arguments") or "{}"},
            }
            last = messages[-1] if messages else None
            if last and last["role"] == "assistant" and "tool_calls" in last:
                last["tool_calls"].append(call)
            else:
                messages.append({"role": "assistant", "content": None, "tool_calls": [call]})
            continue

        if item_type == "function_call_output":
            messages.append({
                "role": "tool",
                "tool_call_id": item.get("call_id", ""),
                "content": _dumps(item.get("output", "")),
            })
            continue

        role = item.get("role") if isinstance(item.get("role"), str) and item.get("role") else "user"
        if role == "developer":
            role = "system"
        if "content" in item:
            content = _coerce_content_blocks(item.get("content"))
        else:
            content = item.get("text") if isinstance(item.get("text"), str) else ""
        messages.append({"role": role, "content": content})

    if loose_blocks:
        messages.append({"role": "user", "content": _coerce_content_blocks(loose_blocks)})
    return messages


def _responses_tools_to_chat(tools: Any) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for tool in tools or []:
        if not isinstance(tool, dict):
            continue
        if tool.get("type") == "function" and "function" not in tool and tool.get("name"):
            function = {"name": tool["name"]}
            for key in ("description", "parameters", "strict"):
                if key in tool:
                    function[key] = tool[key]
            out.append({"type": "function", "function": function})
        elif tool.get("type") == "function":
            out.append(tool)
    return out


def responses_request_to_chat_completions(body: dict[str, Any]) -> dict[str, Any]:
    """
    Translate a `/v1/responses` request body into a `/v1/chat/completions` request body.

    Raises:
        ValueError: the body carries neither `input` nor `messages`
    """
    messages = body.get("messages")
    if isinstance(messages, list):
        chat_messages = list(messages)
    else:
        chat_messages = _input_to_messages(body.get("input"))

    instructions = body.get("instructions")
    if isinstance(instructions, str) and instructions:
        chat_messages = [{"role": "system", "content": instructions}] + chat_messages

    if not chat_messages:
        raise ValueError("Responses request missing 'input' (or 'messages')")

    chat_body: dict[str, Any] = {
        "model": body.get("model"),
        "messages": chat_messages,
    }

    # Keep this list tight; Responses-only fields are not forwarded.
    for key in (
        "temperature",
        "top_p",
        "stream",
        "tool_choice",
        "parallel_tool_calls",
        "user",
        "metadata",
        "max_tokens",
        "max_completion_tokens",
    ):
        if key in body:
            chat_body[key] = body[key]

    tools = _responses_tools_to_chat(body.get("tools"))
    if tools:
        chat_body["tools"] = tools

    if isinstance(chat_body.get("tool_choice"), dict) and chat_body["tool_choice"].get("name"):
        chat_body["tool_choice"] = {
            "type": "function",
            "function": {"name": chat_body["tool_choice"]["name"]},
        }

    reasoning = body.get("reasoning")
    if isinstance(reasoning, dict) and reasoning.get("effort"):
        chat_body["reasoning_effort"] = reasoning["effort"]

    if "max_output_tokens" in body and "max_tokens" not in chat_body and "max_completion_tokens" not in chat_body:
        chat_body["max_completion_tokens"] = body.get("max_output_tokens")

    return chat_body


def _chat_message_text(message: dict[str, Any]) -> str:
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            item["text"]
            for item in content
            if isinstance(item, dict) and item.get("type") in ("text", "output_text") and isinstance(item.get("text"), str)
        )
    return ""


def _responses_usage(usage: Any) -> Optional[dict[str, int]]:
    if not isinstance(usage, dict):
        return None
    input_tokens = int(usage.get("prompt_tokens") or 0)
    output_tokens = int(usage.get("completion_tokens") or 0)
    return {
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "total_tokens": int(usage.get("total_tokens") or (input_tokens + output_tokens)),
    }


def chat_completion_to_responses_response(chat_body: Any) -> Any:
    """
    Translate a `/v1/chat/completions` response body into a `/v1/responses` response body.

    Error bodies and bodies without choices are returned unchanged.
    """
    if not isinstance(chat_body, dict) or "error" in chat_body:
        return chat_body
    choices = chat_body.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return chat_body

    created_at = chat_body.get("created")
    if not isinstance(created_at, int):
        created_at = int(time.time())

    chat_id = chat_body.get("id")
    resp_id = f"resp_{chat_id}" if isinstance(chat_id, str) and chat_id else _new_id("resp")
    message = choices[0].get("message") if isinstance(choices[0].get("message"), dict) else {}

    output: list[dict[str, Any]] = [
        {
            "id": _new_id("msg"),
            "type": "message",
            "role": "assistant",
            "status": "completed",
            "content": [{"type": "output_text", "text": _chat_message_text(message), "annotations": []}],
        }
    ]
    for call in message.get("tool_calls") or []:
        function = call.get("function") if isinstance(call, dict) else None
        if not isinstance(function, dict):
            continue
        output.append({
            "id": _new_id("fc"),
            "type": "function_call",
            "call_id": call.get("id") or _new_id("call"),
            "name": function.get("name", ""),
            "arguments": function.get("arguments") or "{}",
            "status": "completed",
        })

    return {
        "id": resp_id,
        "object": "response",
        "created_at": created_at,
        "model": chat_body.get("model"),
        "status": "incomplete" if choices[0].get("finish_reason") == "length" else "completed",
        "output": output,
        "usage": _responses_usage(chat_body.get("usage")) or {"input_tokens": 0, "output_tokens": 0, "total_tokens": 0},
    }


def chat_chunk_to_responses_events(chunk: Any, state: TranslationState) -> list[dict[str, Any]]:
    """
    Convert one Chat Completions stream chunk into Responses stream events.

    The first call also emits `response.created`.
    """
    events: list[dict[str, Any]] = []
    if not state.role_sent:
        state.role_sent = True
        events.append({
            "type": "response.created",
            "response": {
                "id": state.response_id,
                "object": "response",
                "created_at": state.created,
                "model": state.model,
                "status": "in_progress",
                "output": [],
            },
        })

    if not isinstance(chunk, dict):
        return events
    if isinstance(chunk.get("error"), dict):
        error = chunk["error"]
        state.error = error
        state.finished = True
        events.append({
            "type": "error",
            "code": error.get("code"),
            "message": error.get("message") or "Upstream generation failed",
            "param": None,
        })
        return events
    if isinstance(chunk.get("usage"), dict):
        state.usage = chunk["usage"]

    for choice in chunk.get("choices") or []:
        if not isinstance(choice, dict):
            continue
        delta = choice.get("delta") if isinstance(choice.get("delta"), dict) else {}
        content = delta.get("content")
        if isinstance(content, str) and content:
            state.text_parts.append(content)
            events.append({
                "type": "response.output_text.delta",
                "delta": content,
                "output_index": 0,
                "content_index": 0,
                "item_id": f"msg_{state.response_id}",
            })
        for call in delta.get("tool_calls") or []:
            if not isinstance(call, dict):
                continue
            entry = state.tool_calls.setdefault(call.get("index", 0), {"id": None, "name": "", "arguments": ""})
            if call.get("id"):
                entry["id"] = call["id"]
            function = call.get("function") or {}
            if function.get("name"):
                entry["name"] = function["name"]
            if isinstance(function.get("arguments"), str):
                entry["arguments"] += function["arguments"]
        if choice.get("finish_reason"):
            state.finish_reason = choice["finish_reason"]
            state.finished = True
    return events


def finish_responses_stream(state: TranslationState) -> dict[str, Any]:
    """
    Build the final event from the accumulated state: `response.completed`,
    or `response.failed` when the upstream reported an error mid-stream.
    """
    output: list[dict[str, Any]] = [
        {
            "id": f"msg_{state.response_id}",
            "type": "message",
            "role": "assistant",
            "status": "completed",
            "content": [{"type": "output_text", "text": "".join(state.text_parts), "annotations": []}],
        }
    ]
    for index in sorted(state.tool_calls):
        entry = state.tool_calls[index]
        output.append({
            "id": f"fc_{index}_{state.response_id}",
            "type": "function_call",
            "call_id": entry["id"] or f"call_{index}",
            "name": entry["name"],
            "arguments": entry["arguments"] or "{}",
            "status": "completed",
        })

    response: dict[str, Any] = {
        "id": state.response_id,
        "object": "response",
        "created_at": state.created,
        "model": state.model,
        "status": "incomplete" if state.finish_reason == "length" else "completed",
        "output": output,
        "usage": _responses_usage(state.usage),
    }
    if state.error is not None:
        response["status"] = "failed"
        response["error"] = {"code": state.error.get("code"), "message": state.error.get("message")}
        return {"type": "response.failed", "response": response}
    return {"type": "response.completed", "response": response}


# ============ Upstream: Chat Completions request -> Responses ============

def _to_response_parts(content: Any, role: str) -> list[dict[str, Any]]:
    text_type = "output_text" if role == "assistant" else "input_text"
    if content is None:
        return []
    if isinstance(content, str):
        return [{"type": text_type, "text": content}] if content else []
    if not isinstance(content, list):
        return [{"type": text_type, "text": _dumps(content)}]

    parts: list[dict[str, Any]] = []
    for part in content:
        if isinstance(part, str):
            if part:
                parts.append({"type": text_type, "text": part})
            continue
        if not isinstance(part, dict):
            continue
        if part.get("type") == "image_url":
            image = part.get("image_url")
            url = image.get("url") if isinstance(image, dict) else image
            if isinstance(url, str) and url:
                parts.append({"type": "input_image", "image_url": url})
            continue
        if part.get("type") == "text":
            text = part.get("text") or ""
        else:
            text = _dumps(part.get("text") or part.get("content") or part)
        if text:
            parts.append({"type": text_type, "text": text})
    return parts


def _chat_tools_to_responses(tools: Any) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for tool in tools or []:
        if not isinstance(tool, dict):
            continue
        function = tool.get("function")
        if tool.get("type") == "function" and isinstance(function, dict) and function.get("name"):
            converted: dict[str, Any] = {"type": "function", "name": function["name"]}
            for key in ("description", "parameters", "strict"):
                if key in function:
                    converted[key] = function[key]
            out.append(converted)
    return out


def chat_completions_request_to_responses(
    body: dict[str, Any],
    model: Optional[str] = None,
    stream: Optional[bool] = None,
) -> dict[str, Any]:
    """
    Translate a `/v1/chat/completions` request body into a `/v1/responses` request body.

    System and developer messages become `instructions`; tool calls and tool
    results become `function_call` / `function_call_output` items.
    """
    instructions: list[str] = []
    items: list[dict[str, Any]] = []

    for message in body.get("messages") or []:
        if not isinstance(message, dict):
            continue
        role = message.get("role") or "user"

        if role in ("system", "developer"):
            text = "\n".join(p["text"] for p in _to_response_parts(message.get("content"), role))
            if text:
                instructions.append(text)
            continue

        if role == "tool":
            items.append({
                "type": "function_call_output",
                "call_id": message.get("tool_call_id", ""),
                "output": "\n".join(p.get("text", "") for p in _to_response_parts(message.get("content"), role)),
            })
            continue

        parts = _to_response_parts(message.get("content"), role)
        if parts:
            items.append({"type": "message", "role": role, "content": parts})

        for call in message.get("tool_calls") or []:
            function = call.get("function") if isinstance(call, dict) else None
            if not isinstance(function, dict):
                continue
            items.append({
                "type": "function_call",
                "call_id": call.get("id") or _new_id("call"),
                "name": function.get("name", ""),
                "arguments": function.get("arguments") or "{}",
            })

    result: dict[str, Any] = {
        "model": model or body.get("model"),
        "input": items,
        "stream": bool(body.get("stream")) if stream is None else stream,
        "store": False,
    }
    if instructions:
        result["instructions"] = "\n\n".join(instructions)

    for key in ("temperature", "top_p", "parallel_tool_calls", "user", "metadata"):
        if body.get(key) is not None:
            result[key] = body[key]

    max_tokens = body.get("max_completion_tokens") or body.get("max_tokens")
    if max_tokens is not None:
        result["max_output_tokens"] = max_tokens

    tools = _chat_tools_to_responses(body.get("tools"))
    if tools:
        result["tools"] = tools
    tool_choice = body.get("tool_choice")
    if isinstance(tool_choice, str):
        result["tool_choice"] = tool_choice
    elif isinstance(tool_choice, dict) and isinstance(tool_choice.get("function"), dict):
        result["tool_choice"] = {"type": "function", "name": tool_choice["function"].get("name")}

    if body.get("reasoning_effort"):
        result["reasoning"] = {"effort": body["reasoning_effort"]}

    return result


# ============ Upstream: Responses result -> Chat Completions ============

def _chat_usage(usage: Any) -> Optional[dict[str, Any]]:
    if not isinstance(usage, dict):
        return None
    prompt = int(usage.get("input_tokens") or 0)
    completion = int(usage.get("output_tokens") or 0)
    result: dict[str, Any] = {
        "prompt_tokens": prompt,
        "completion_tokens": completion,
        "total_tokens": int(usage.get("total_tokens") or (prompt + completion)),
    }
    details = usage.get("output_tokens_details")
    if isinstance(details, dict) and details.get("reasoning_tokens"):
        result["completion_tokens_details"] = {"reasoning_tokens": details["reasoning_tokens"]}
    return result


def _chat_chunk(state: TranslationState, delta: dict[str, Any], finish_reason: Optional[str] = None) -> dict[str, Any]:
    if not state.role_sent:
        state.role_sent = True
        delta = {"role": "assistant", **delta}
    return {
        "id": state.response_id,
        "object": "chat.completion.chunk",
        "created": state.created,
        "model": state.model,
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


def _stream_finish_reason(state: TranslationState, response: dict[str, Any]) -> str:
    if state.tool_calls:
        return "tool_calls"
    details = response.get("incomplete_details")
    if response.get("status") == "incomplete" and (
        not isinstance(details, dict) or details.get("reason") in (None, "max_output_tokens")
    ):
        return "length"
    if isinstance(details, dict) and details.get("reason") == "content_filter":
        return "content_filter"
    return "stop"


_TERMINAL_EVENTS = ("response.completed", "response.incomplete", "response.failed")
_FAILURE_EVENTS = ("response.failed", "error")


def _stream_error(event: dict[str, Any], response: dict[str, Any]) -> dict[str, Any]:
    if isinstance(response.get("error"), dict):
        source = response["error"]
    elif isinstance(event.get("error"), dict):
        source = event["error"]
    else:
        source = event
    return {
        "message": source.get("message") or "Upstream generation failed",
        "type": "upstream_error",
        "code": source.get("code") or "upstream_error",
    }


def responses_chunk_to_chat(
    event: Any, state: TranslationState
) -> Union[None, dict[str, Any], list[dict[str, Any]]]:
    """
    Convert one Responses stream event into a Chat Completions chunk.

    Returns None for events without a chat counterpart (item bookkeeping,
    content part boundaries, ...). A failed response yields an `{"error": ...}`
    payload followed by the terminal chunk.
    """
    if not isinstance(event, dict) or state.finished:
        return None

    event_type = event.get("type")

    if event_type == "response.created":
        response = event.get("response") if isinstance(event.get("response"), dict) else {}
        if response.get("id"):
            state.response_id = response["id"]
        if response.get("model"):
            state.model = response["model"]
        if state.role_sent:
            return None
        return _chat_chunk(state, {"content": ""})

    if event_type == "response.output_text.delta":
        delta = event.get("delta")
        if not isinstance(delta, str) or not delta:
            return None
        state.text_parts.append(delta)
        return _chat_chunk(state, {"content": delta})

    if event_type in ("response.reasoning_summary_text.delta", "response.reasoning_text.delta"):
        delta = event.get("delta")
        if not isinstance(delta, str) or not delta:
            return None
        return _chat_chunk(state, {"reasoning_content": delta})

    if event_type == "response.output_item.added":
        item = event.get("item") if isinstance(event.get("item"), dict) else {}
        if item.get("type") != "function_call":
            return None
        index = len(state.tool_calls)
        call_id = item.get("call_id") or item.get("id") or f"call_{index}"
        state.item_index[item.get("id") or call_id] = index
        state.tool_calls[index] = {"id": call_id, "name": item.get("name", ""), "arguments": ""}
        return _chat_chunk(state, {
            "tool_calls": [{
                "index": index,
                "id": call_id,
                "type": "function",
                "function": {"name": item.get("name", ""), "arguments": ""},
            }]
        })

    if event_type == "response.function_call_arguments.delta":
        index = state.item_index.get(event.get("item_id"))
        delta = event.get("delta")
        if index is None or not isinstance(delta, str) or not delta:
            return None
        state.tool_calls[index]["arguments"] += delta
        return _chat_chunk(state, {"tool_calls": [{"index": index, "function": {"arguments": delta}}]})

    if event_type in _TERMINAL_EVENTS or event_type == "error":
        response = event.get("response") if isinstance(event.get("response"), dict) else {}
        finish_reason = _stream_finish_reason(state, response)
        state.finish_reason = finish_reason
        state.finished = True
        chunk = _chat_chunk(state, {}, finish_reason)
        usage = _chat_usage(response.get("usage"))
        if usage:
            state.usage = usage
            chunk["usage"] = usage
        if event_type in _FAILURE_EVENTS:
            state.error = _stream_error(event, response)
            return [{"error": state.error}, chunk]
        return chunk

    return None


def responses_response_to_chat_completion(body: Any, model: Optional[str] = None) -> Any:
    """
    Translate a `/v1/responses` response body into a `/v1/chat/completions` response body.

    Error bodies and bodies that are already chat completions are returned unchanged.
    """
    if not isinstance(body, dict) or "choices" in body:
        return body
    if body.get("error") and not body.get("output"):
        return body

    text_parts: list[str] = []
    reasoning_parts: list[str] = []
    tool_calls: list[dict[str, Any]] = []

    for item in body.get("output") or []:
        if not isinstance(item, dict):
            continue
        item_type = item.get("type")
        if item_type == "message":
            for part in item.get("content") or []:
                if isinstance(part, dict) and part.get("type") in ("output_text", "text") and isinstance(part.get("text"), str):
                    text_parts.append(part["text"])
        elif item_type == "reasoning":
            for part in item.get("summary") or []:
                if isinstance(part, dict) and isinstance(part.get("text"), str):
                    reasoning_parts.append(part["text"])
        elif item_type == "function_call":
            tool_calls.append({
                "id": item.get("call_id") or item.get("id") or _new_id("call"),
                "type": "function",
                "function": {"name": item.get("name", ""), "arguments": item.get("arguments") or "{}"},
            })

    message: dict[str, Any] = {"role": "assistant", "content": "".join(text_parts) or (None if tool_calls else "")}
    if reasoning_parts:
        message["reasoning_content"] = "\n".join(reasoning_parts)
    if tool_calls:
        message["tool_calls"] = tool_calls

    details = body.get("incomplete_details")
    if tool_calls:
        finish_reason = "tool_calls"
    elif body.get("status") == "incomplete" and (
        not isinstance(details, dict) or details.get("reason") in (None, "max_output_tokens")
    ):
        finish_reason = "length"
    else:
        finish_reason = "stop"

    created = body.get("created_at")
    result: dict[str, Any] = {
        "id": body.get("id") or _new_id("chatcmpl"),
        "object": "chat.completion",
        "created": created if isinstance(created, int) else int(time.time()),
        "model": body.get("model") or model,
        "choices": [{"index": 0, "message": message, "finish_reason": finish_reason}],
    }
    usage = _chat_usage(body.get("usage"))
    if usage:
        result["usage"] = usage
    return result
