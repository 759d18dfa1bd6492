"""Server-Sent-Events reader for chat-completion streams.

Frames are newline-delimited. Only ``data:`` lines carry payload; ``[DONE]``
terminates the stream. Each payload is a chat-completion chunk whose
``choices[0].delta`` may hold a ``reasoning_content`` fragment, a ``content``
fragment, or both.
"""

import codecs
import json
from typing import AsyncIterable, List, Optional, Callable

from linkdok.core.models import StreamEvent, StreamEventKind
from linkdok.utils.logger import get_logger

logger = get_logger(__name__)

DATA_PREFIX = "data:"
DONE_MARKER = "[DONE]"

TokenCallback = Optional[Callable[[str], None]]


def decode_line(line: str) -> List[StreamEvent]:
    """Decode one complete line into zero or more events."""
    line = line.rstrip("\r")
    if not line.startswith(DATA_PREFIX):
        return []

    payload = line[len(DATA_PREFIX):].strip()
    if payload == DONE_MARKER:
        return [StreamEvent(StreamEventKind.DONE)]

    ignored = [StreamEvent(StreamEventKind.IGNORED, payload)]
    try:
        data = json.loads(payload)
    except ValueError:
        return ignored

    # Well-formed JSON of the wrong shape is skipped, never raised
    if not isinstance(data, dict):
        return ignored
    choices = data.get("choices") or []
    if not isinstance(choices, list):
        return ignored
    if not choices:
        return []
    if not isinstance(choices[0], dict):
        return ignored
    delta = choices[0].get("delta") or {}
    if not isinstance(delta, dict):
        return ignored

    events = []
    reasoning = delta.get("reasoning_content")
    if isinstance(reasoning, str) and reasoning:
        events.append(StreamEvent(StreamEventKind.REASONING, reasoning))
    content = delta.get("content")
    if isinstance(content, str) and content:
        events.append(StreamEvent(StreamEventKind.CONTENT, content))
    return events


async def consume(
    byte_stream: AsyncIterable[bytes],
    on_token: TokenCallback = None,
    on_reasoning_token: TokenCallback = None,
) -> str:
    """
    Read a provider event stream to completion.

    Reasoning fragments go to ``on_reasoning_token`` only. Answer fragments
    go to ``on_token`` and are accumulated into the return value. Callbacks
    fire per frame, in arrival order.

    Args:
        byte_stream: Async iterable of raw body chunks
        on_token: Called with each answer fragment
        on_reasoning_token: Called with each reasoning fragment

    Returns:
        The accumulated answer text
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    answer: List[str] = []
    buffer = ""

    def dispatch(line: str) -> bool:
        for event in decode_line(line):
            if event.kind is StreamEventKind.DONE:
                return True
            if event.kind is StreamEventKind.REASONING:
                if on_reasoning_token:
                    on_reasoning_token(event.text)
            elif event.kind is StreamEventKind.CONTENT:
                answer.append(event.text)
                if on_token:
                    on_token(event.text)
        return False

    try:
        async for chunk in byte_stream:
            buffer += decoder.decode(chunk)
            *lines, buffer = buffer.split("\n")
            for line in lines:
                if dispatch(line):
                    return "".join(answer)

        # End of stream: whatever is left is a complete frame.
        buffer += decoder.decode(b"", final=True)
        if buffer:
            dispatch(buffer)
        return "".join(answer)
    finally:
        close = getattr(byte_stream, "aclose", None)
        if close is not None:
            await close()
