"""
SSE helpers shared by the test suite
"""

import json
from typing import Any, AsyncIterator, Iterable


def sse_bytes(*payloads: Any, done: bool = True, terminator: str = "\n\n") -> bytes:
    """Encode payloads as an SSE body the way upstream servers send them."""
    out = "".join(f"data: {json.dumps(p)}{terminator}" for p in payloads)
    if done:
        out += "data: [DONE]\n\n"
    return out.encode("utf-8")


async def aiter_chunks(chunks: Iterable[bytes]) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk


async def collect(stream: AsyncIterator[bytes]) -> bytes:
    out = b""
    async for chunk in stream:
        out += chunk
    return out


def data_lines(raw: bytes) -> list[str]:
    """Payloads of every `data:` line in an SSE body."""
    return [
        line[len("data:"):].strip()
        for line in raw.decode("utf-8").splitlines()
        if line.startswith("data:")
    ]


def json_events(raw: bytes) -> list[dict]:
    return [json.loads(p) for p in data_lines(raw) if p != "[DONE]"]
