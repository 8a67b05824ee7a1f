"""Driver events -> UI message stream (server-sent events).

The chat widget's ``useChat`` hook reads the AI SDK "UI message stream"
protocol: one JSON chunk per ``data:`` line and a closing ``data: [DONE]``.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, Iterator
import uuid

from tablero.assistant.driver import (
    DriverEvent,
    RunFailed,
    RunFinished,
    StepFinished,
    StepStarted,
    StepText,
    ToolCallRequested,
    ToolResultReady,
)

UI_STREAM_HEADERS = {
    "cache-control": "no-cache",
    "x-vercel-ai-ui-message-stream": "v1",
    "x-accel-buffering": "no",
}

DONE_LINE = "data: [DONE]\n\n"


def format_sse(chunk: dict[str, Any]) -> str:
    return "data: " + json.dumps(chunk, ensure_ascii=False, separators=(",", ":"), default=str) + "\n\n"


def ui_message_chunks(
    events: Iterable[DriverEvent],
    *,
    message_id: str | None = None,
) -> Iterator[dict[str, Any]]:
    start: dict[str, Any] = {"type": "start"}
    if message_id:
        start["messageId"] = message_id
    yield start

    text_id: str | None = None
    text_count = 0

    def end_text() -> Iterator[dict[str, Any]]:
        nonlocal text_id
        if text_id is not None:
            yield {"type": "text-end", "id": text_id}
            text_id = None

    for event in events:
        if isinstance(event, StepStarted):
            yield {"type": "start-step"}
        elif isinstance(event, StepText):
            if text_id is None:
                text_id = f"text-{event.step}-{text_count}"
                text_count += 1
                yield {"type": "text-start", "id": text_id}
            yield {"type": "text-delta", "id": text_id, "delta": event.text}
        elif isinstance(event, ToolCallRequested):
            yield from end_text()
            yield {
                "type": "tool-input-available",
                "toolCallId": event.call_id,
                "toolName": event.name,
                "input": event.input,
            }
        elif isinstance(event, ToolResultReady):
            if event.ok:
                yield {"type": "tool-output-available", "toolCallId": event.call_id, "output": event.output}
            else:
                yield {"type": "tool-output-error", "toolCallId": event.call_id, "errorText": event.error}
        elif isinstance(event, StepFinished):
            yield from end_text()
            yield {"type": "finish-step"}
        elif isinstance(event, RunFailed):
            yield from end_text()
            yield {"type": "error", "errorText": event.message}
            return
        elif isinstance(event, RunFinished):
            # Hitting the step cap stays invisible to the client.
            break

    yield from end_text()
    yield {"type": "finish"}


def sse_lines(events: Iterable[DriverEvent], *, message_id: str | None = None) -> Iterator[str]:
    """Encode a driver run as SSE lines, closing the run when stopped early."""

    chunks = ui_message_chunks(events, message_id=message_id or f"msg-{uuid.uuid4().hex}")
    try:
        for chunk in chunks:
            yield format_sse(chunk)
        yield DONE_LINE
    finally:
        chunks.close()
        close = getattr(events, "close", None)
        if close is not None:
            close()
