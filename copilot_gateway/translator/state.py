"""
Per-stream translation state.

One TranslationState is created for each streamed response and is mutated
only by the converter processing that stream's events, in order.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from .formats import WireFormat


@dataclass
class TranslationState:
    source_format: WireFormat
    model: str = ""
    response_id: str = ""
    created: int = 0
    role_sent: bool = False
    # Tool calls accumulated by output index: {"id", "name", "arguments"}
    tool_calls: dict[int, dict[str, Any]] = field(default_factory=dict)
    # Upstream item id -> tool call index
    item_index: dict[str, int] = field(default_factory=dict)
    # Answer text seen so far (for formats that repeat it in their final event)
    text_parts: list[str] = field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Optional[dict[str, Any]] = None
    # Upstream failure reported mid-stream: {"message", "type", "code"}
    error: Optional[dict[str, Any]] = None
    finished: bool = False
    done_sent: bool = False


def init_state(source_format: WireFormat, model: str = "") -> TranslationState:
    return TranslationState(
        source_format=source_format,
        model=model,
        response_id=f"chatcmpl-{uuid.uuid4().hex}",
        created=int(time.time()),
    )
