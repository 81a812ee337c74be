"""
Wire format translation.

- formats: format enumeration and source-format detection
- sse: incremental SSE decoding / encoding and the stream transform pipeline
- state: per-stream translation state
- gemini: Gemini <-> Chat Completions converters
- openai_responses: Responses API <-> Chat Completions converters
"""

from .formats import WireFormat, detect_format, parse_gemini_action
from .sse import (
    SSEEvent,
    SSELineDecoder,
    format_done,
    format_sse,
    parse_sse_line,
    transform_sse_stream,
)
from .state import TranslationState, init_state

__all__ = [
    "WireFormat",
    "detect_format",
    "parse_gemini_action",
    "SSEEvent",
    "SSELineDecoder",
    "format_done",
    "format_sse",
    "parse_sse_line",
    "transform_sse_stream",
    "TranslationState",
    "init_state",
]
