"""Chat turn normalization.

The chat widget has shipped two message shapes over time: legacy turns with a
plain ``content`` (or ``text``) string, and structured turns carrying a
``parts`` list.  :func:`normalize_messages` folds both into the structured
form and never fails; :func:`to_model_messages` then turns structured turns
into OpenAI-style chat messages and rejects anything it cannot express.
"""

from __future__ import annotations

import json
from typing import Any

from tablero.assistant.tools import format_tool_result_message


class MessageConversionError(ValueError):
    """Raised when normalized turns cannot be converted for the model."""


_IGNORED_PART_TYPES = {"reasoning", "source-url", "source-document"}
_TOOL_DONE_STATES = {"output-available", "output-error"}
_TOOL_PENDING_STATES = {"input-streaming", "input-available"}


def normalize_messages(raw: Any) -> list[dict[str, Any]]:
    """Coerce a raw ``messages`` value into structured turns.

    Non-list input yields ``[]`` and non-object elements are dropped.  The
    client-side ``id`` is stripped.  Turns that already carry a ``parts``
    list pass through untouched; otherwise a single text part is built from
    ``content`` or ``text`` (in that order), or ``parts`` is left empty.
    """

    if not isinstance(raw, list):
        return []

    turns: list[dict[str, Any]] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        turn = {key: value for key, value in item.items() if key != "id"}
        if not isinstance(turn.get("parts"), list):
            content = turn.get("content")
            if not isinstance(content, str):
                content = turn.get("text")
            if isinstance(content, str):
                turn["parts"] = [{"type": "text", "text": content}]
            else:
                turn["parts"] = []
        turns.append(turn)
    return turns


def _part_type(part: Any, *, index: int) -> str:
    if not isinstance(part, dict) or not isinstance(part.get("type"), str):
        raise MessageConversionError(f"Part {index} is not an object with a string 'type'.")
    return part["type"]


def _text_of(part: dict[str, Any]) -> str:
    text = part.get("text")
    if not isinstance(text, str):
        raise MessageConversionError("Text part is missing its 'text' string.")
    return text


def _user_file_content(part: dict[str, Any]) -> dict[str, Any]:
    media_type = str(part.get("mediaType") or "")
    url = part.get("url")
    if not media_type.startswith("image/") or not isinstance(url, str) or not url:
        raise MessageConversionError(f"Unsupported file part ({media_type or 'unknown type'}).")
    return {"type": "image_url", "image_url": {"url": url}}


def _convert_user(parts: list[Any]) -> dict[str, Any]:
    texts: list[str] = []
    files: list[dict[str, Any]] = []
    for index, part in enumerate(parts):
        kind = _part_type(part, index=index)
        if kind == "text":
            texts.append(_text_of(part))
        elif kind == "file":
            files.append(_user_file_content(part))
        elif kind.startswith("data-") or kind == "step-start":
            continue
        else:
            raise MessageConversionError(f"Unsupported part type for user message: {kind}")

    if not files:
        return {"role": "user", "content": "\n".join(texts)}
    content: list[dict[str, Any]] = [{"type": "text", "text": text} for text in texts]
    content.extend(files)
    return {"role": "user", "content": content}


def _convert_system(parts: list[Any]) -> dict[str, Any]:
    texts: list[str] = []
    for index, part in enumerate(parts):
        kind = _part_type(part, index=index)
        if kind != "text":
            raise MessageConversionError(f"Unsupported part type for system message: {kind}")
        texts.append(_text_of(part))
    return {"role": "system", "content": "\n".join(texts)}


def _tool_name(part: dict[str, Any], kind: str) -> str:
    if kind == "dynamic-tool":
        name = part.get("toolName")
    else:
        name = kind[len("tool-"):]
    if not isinstance(name, str) or not name:
        raise MessageConversionError("Tool part has no tool name.")
    return name


class _AssistantBlock:
    """Text and completed tool calls between two ``step-start`` markers."""

    def __init__(self) -> None:
        self.texts: list[str] = []
        self.calls: list[dict[str, Any]] = []
        self.results: list[dict[str, Any]] = []

    def add_tool(self, part: dict[str, Any], kind: str) -> None:
        name = _tool_name(part, kind)
        call_id = part.get("toolCallId")
        if not isinstance(call_id, str) or not call_id:
            raise MessageConversionError(f"Tool part for {name} has no toolCallId.")

        state = part.get("state")
        if state in _TOOL_PENDING_STATES:
            # Never completed; the model has no result to pair it with.
            return
        if state not in _TOOL_DONE_STATES:
            raise MessageConversionError(f"Unsupported tool part state: {state!r}")

        arguments = part.get("input")
        self.calls.append(
            {
                "id": call_id,
                "type": "function",
                "function": {
                    "name": name,
                    "arguments": json.dumps(arguments if arguments is not None else {}, ensure_ascii=False),
                },
            }
        )
        if state == "output-available":
            payload = {"ok": True, "tool": name, "result": part.get("output")}
        else:
            payload = {"ok": False, "tool": name, "error": str(part.get("errorText") or "Tool failed.")}
        self.results.append(
            {
                "role": "tool",
                "tool_call_id": call_id,
                "content": format_tool_result_message(payload),
            }
        )

    def messages(self) -> list[dict[str, Any]]:
        if not self.texts and not self.calls:
            return []
        message: dict[str, Any] = {"role": "assistant", "content": "".join(self.texts) or None}
        if self.calls:
            message["tool_calls"] = self.calls
        return [message, *self.results]


def _convert_assistant(parts: list[Any]) -> list[dict[str, Any]]:
    blocks = [_AssistantBlock()]
    for index, part in enumerate(parts):
        kind = _part_type(part, index=index)
        if kind == "step-start":
            blocks.append(_AssistantBlock())
        elif kind == "text":
            blocks[-1].texts.append(_text_of(part))
        elif kind.startswith("tool-") or kind == "dynamic-tool":
            blocks[-1].add_tool(part, kind)
        elif kind in _IGNORED_PART_TYPES or kind == "file" or kind.startswith("data-"):
            continue
        else:
            raise MessageConversionError(f"Unsupported part type for assistant message: {kind}")

    out: list[dict[str, Any]] = []
    for block in blocks:
        out.extend(block.messages())
    return out


def to_model_messages(turns: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert normalized turns into OpenAI chat-completions messages."""

    messages: list[dict[str, Any]] = []
    for position, turn in enumerate(turns):
        role = turn.get("role")
        parts = turn.get("parts")
        if not isinstance(parts, list):
            raise MessageConversionError(f"Message {position} has no parts list.")

        if role == "user":
            messages.append(_convert_user(parts))
        elif role == "assistant":
            messages.extend(_convert_assistant(parts))
        elif role == "system":
            messages.append(_convert_system(parts))
        else:
            raise MessageConversionError(f"Message {position} has unsupported role: {role!r}")
    return messages
