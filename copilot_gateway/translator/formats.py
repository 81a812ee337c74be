"""
Wire Format Registry

Enumerates the request/response dialects the gateway knows about and
resolves the source format of an inbound request from its path (and, for one
ambiguous path, its body shape).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional, Sequence


class WireFormat(str, Enum):
    """Known request/response schema dialects."""
    OPENAI = "openai"
    OPENAI_RESPONSES = "openai-responses"
    OPENAI_RESPONSE = "openai-response"
    CLAUDE = "claude"
    GEMINI = "gemini"
    GEMINI_CLI = "gemini-cli"
    CODEX = "codex"
    ANTIGRAVITY = "antigravity"
    KIRO = "kiro"
    CURSOR = "cursor"


# Path fragment -> format. When several fragments match, the longest wins.
_PATH_FORMATS: tuple[tuple[str, WireFormat], ...] = (
    ("/v1/responses", WireFormat.OPENAI_RESPONSES),
    ("/v1/chat/completions", WireFormat.OPENAI),
    ("/chat/completions", WireFormat.OPENAI),
    ("/v1/messages", WireFormat.CLAUDE),
    (":streamGenerateContent", WireFormat.GEMINI),
    (":generateContent", WireFormat.GEMINI),
    ("/v1internal:streamGenerateContent", WireFormat.GEMINI_CLI),
    ("/v1internal:generateContent", WireFormat.GEMINI_CLI),
)

STREAM_ACTION = ":streamGenerateContent"
GENERATE_ACTION = ":generateContent"


def _match_path(path: str) -> Optional[WireFormat]:
    best: Optional[tuple[int, WireFormat]] = None
    for fragment, fmt in _PATH_FORMATS:
        if fragment in path and (best is None or len(fragment) > best[0]):
            best = (len(fragment), fmt)
    return best[1] if best else None


def _is_responses_body_on_chat_path(body: Any) -> bool:
    """
    Cursor CLI posts Responses-shaped bodies (`input` list, no `messages`)
    to /v1/chat/completions. Only that exact shape is re-labelled.
    """
    if not isinstance(body, dict):
        return False
    return isinstance(body.get("input"), list) and not isinstance(body.get("messages"), list)


def detect_format(path: Any, body: Any = None) -> Optional[WireFormat]:
    """
    Detect the source wire format of a request.

    Args:
        path: Request path (query string allowed)
        body: Parsed request body, used only to disambiguate chat-completions paths

    Returns:
        WireFormat, or None when nothing matches (the caller picks the fallback)
    """
    if not isinstance(path, str) or not path:
        return None

    fmt = _match_path(path.split("?", 1)[0])
    if fmt == WireFormat.OPENAI and _is_responses_body_on_chat_path(body):
        return WireFormat.OPENAI_RESPONSES
    return fmt


def parse_gemini_action(segments: Sequence[str]) -> tuple[str, bool]:
    """
    Split Gemini route segments into (model, stream).

    `["gemini-pro:streamGenerateContent"]` -> ("gemini-pro", True)
    `["github", "gpt-4o:generateContent"]` -> ("github/gpt-4o", False)

    Streaming is decided by the action suffix only.
    """
    parts = [s for s in segments if s]
    if not parts:
        return "", False

    model_action = parts[-1]
    stream = STREAM_ACTION in model_action
    model_name = model_action.replace(STREAM_ACTION, "").replace(GENERATE_ACTION, "")
    if len(parts) >= 2:
        return f"{parts[0]}/{model_name}", stream
    return model_name, stream
