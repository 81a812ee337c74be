"""
SSE Framing

Turns an arbitrarily chunked byte stream into decoded `data:` events and
re-serializes converted payloads into the framing a target format expects.

- Chunk boundaries may fall anywhere, including inside a multi-byte character
- Only `data:` lines are parsed; other SSE fields are ignored
- `data: [DONE]` is the terminal sentinel; undecodable payloads are dropped
"""

from __future__ import annotations

import asyncio
import codecs
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, AsyncIterable, Callable, Iterable, Optional, Union

from .formats import WireFormat
from .state import TranslationState

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
DATA_PREFIX = "data:"

# Formats that end a stream with an explicit `data: [DONE]` line.
SENTINEL_FORMATS = frozenset({WireFormat.OPENAI})

# Gemini clients (the @google/genai SDK) expect CRLF framing.
_EVENT_TERMINATORS = {
    WireFormat.GEMINI: "\r\n\r\n",
    WireFormat.GEMINI_CLI: "\r\n\r\n",
}


@dataclass
class SSEEvent:
    done: bool = False
    data: Any = None


def parse_sse_line(line: str) -> Optional[SSEEvent]:
    """
    Parse one complete SSE line.

    Returns None for blank lines, non-data fields and payloads that are not valid JSON.
    """
    text = line.strip()
    if not text or not text.startswith(DATA_PREFIX):
        return None

    payload = text[len(DATA_PREFIX):].strip()
    if payload == DONE_SENTINEL:
        return SSEEvent(done=True)
    if not payload:
        return None

    try:
        return SSEEvent(data=json.loads(payload))
    except json.JSONDecodeError:
        logger.debug("Dropping undecodable SSE payload: %.200s", payload)
        return None


class SSELineDecoder:
    """
    Incremental line-oriented SSE decoder.

    Keeps a single pending-text buffer holding the trailing incomplete line.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: Union[bytes, str]) -> list[SSEEvent]:
        if not chunk:
            return []
        text = chunk if isinstance(chunk, str) else self._decoder.decode(chunk)
        self._buffer += text

        lines = self._buffer.split("\n")
        self._buffer = lines.pop()

        events: list[SSEEvent] = []
        for line in lines:
            event = parse_sse_line(line)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> list[SSEEvent]:
        """Process whatever remains once the stream has ended."""
        remainder = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        if not remainder.strip():
            return []
        event = parse_sse_line(remainder)
        return [event] if event is not None else []


def format_sse(payload: Any, target_format: WireFormat) -> str:
    """Serialize one payload as an SSE event in the target format's framing."""
    terminator = _EVENT_TERMINATORS.get(target_format, "\n\n")
    return f"data: {json.dumps(payload, ensure_ascii=False)}{terminator}"


def format_done(target_format: WireFormat) -> str:
    """Wire form of the terminal sentinel; empty for formats that end by closing the stream."""
    if target_format in SENTINEL_FORMATS:
        return f"data: {DONE_SENTINEL}\n\n"
    return ""


ConvertFn = Callable[[Any, TranslationState], Union[None, dict[str, Any], Iterable[dict[str, Any]]]]


def _as_list(converted: Any) -> list[dict[str, Any]]:
    if converted is None:
        return []
    if isinstance(converted, dict):
        return [converted]
    return [item for item in converted if item]


FinalizeFn = Callable[[TranslationState], Union[None, dict[str, Any], Iterable[dict[str, Any]]]]


async def transform_sse_stream(
    upstream: AsyncIterable[bytes],
    convert: ConvertFn,
    state: TranslationState,
    target_format: WireFormat,
    *,
    finalize: Optional[FinalizeFn] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> AsyncGenerator[bytes, None]:
    """
    Decode -> convert -> encode, one upstream chunk at a time.

    The stream is terminated exactly once: when the upstream sends its own
    sentinel, or when the upstream closes after the converter has seen a
    terminal event. Termination writes `finalize(state)` payloads followed by
    the target's sentinel (if it has one). Events after termination are dropped.
    """
    decoder = SSELineDecoder()

    def terminate() -> str:
        if state.done_sent:
            return ""
        state.done_sent = True
        out = [format_sse(p, target_format) for p in _as_list(finalize(state))] if finalize else []
        out.append(format_done(target_format))
        return "".join(out)

    def render(events: list[SSEEvent]) -> str:
        out: list[str] = []
        for event in events:
            if state.done_sent:
                break
            if event.done:
                out.append(terminate())
                continue
            for payload in _as_list(convert(event.data, state)):
                out.append(format_sse(payload, target_format))
        return "".join(out)

    try:
        async for chunk in upstream:
            if cancel_event is not None and cancel_event.is_set():
                logger.debug("Stream translation cancelled")
                return
            text = render(decoder.feed(chunk))
            if text:
                yield text.encode("utf-8")
    finally:
        # releases the upstream connection when translation stops early
        close = getattr(upstream, "aclose", None)
        if close is not None:
            await close()

    tail = render(decoder.flush())
    if state.finished:
        tail += terminate()
    if tail:
        yield tail.encode("utf-8")
