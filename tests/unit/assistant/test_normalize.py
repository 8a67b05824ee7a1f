import json

import pytest

from tablero.assistant.normalize import MessageConversionError, normalize_messages, to_model_messages


def test_normalize_messages_rejects_non_lists():
    assert normalize_messages(None) == []
    assert normalize_messages({"role": "user"}) == []
    assert normalize_messages("hola") == []


def test_normalize_messages_drops_non_objects_and_ids():
    turns = normalize_messages(
        [
            "basura",
            42,
            {"id": "m1", "role": "user", "content": "hola"},
            {"id": "m2", "role": "user", "text": "chau"},
            {"role": "assistant"},
        ]
    )
    assert turns == [
        {"role": "user", "content": "hola", "parts": [{"type": "text", "text": "hola"}]},
        {"role": "user", "text": "chau", "parts": [{"type": "text", "text": "chau"}]},
        {"role": "assistant", "parts": []},
    ]


def test_normalize_messages_prefers_content_over_text():
    [turn] = normalize_messages([{"role": "user", "content": "primero", "text": "segundo"}])
    assert turn["parts"] == [{"type": "text", "text": "primero"}]


def test_normalize_messages_keeps_existing_parts():
    parts = [{"type": "text", "text": "hola"}, {"type": "data-foo", "data": 1}]
    [turn] = normalize_messages([{"id": "x", "role": "user", "content": "ignorado", "parts": parts}])
    assert turn["parts"] is parts
    assert "id" not in turn


def test_to_model_messages_user_text_joined():
    messages = to_model_messages(
        [
            {
                "role": "user",
                "parts": [
                    {"type": "step-start"},
                    {"type": "text", "text": "¿Qué tareas"},
                    {"type": "data-context", "data": {}},
                    {"type": "text", "text": "tengo?"},
                ],
            }
        ]
    )
    assert messages == [{"role": "user", "content": "¿Qué tareas\ntengo?"}]


def test_to_model_messages_user_image():
    [message] = to_model_messages(
        [
            {
                "role": "user",
                "parts": [
                    {"type": "text", "text": "mirá esto"},
                    {"type": "file", "mediaType": "image/png", "url": "data:image/png;base64,AAAA"},
                ],
            }
        ]
    )
    assert message["content"] == [
        {"type": "text", "text": "mirá esto"},
        {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
    ]


def test_to_model_messages_rejects_non_image_files():
    with pytest.raises(MessageConversionError):
        to_model_messages(
            [{"role": "user", "parts": [{"type": "file", "mediaType": "application/pdf", "url": "x"}]}]
        )


def test_to_model_messages_assistant_tool_history():
    turns = [
        {"role": "user", "parts": [{"type": "text", "text": "mis tareas"}]},
        {
            "role": "assistant",
            "parts": [
                {"type": "step-start"},
                {"type": "text", "text": "Busco..."},
                {
                    "type": "tool-get_my_tasks",
                    "toolCallId": "call_1",
                    "state": "output-available",
                    "input": {"status": "Pendiente"},
                    "output": [{"title": "Gacetilla"}],
                },
                {"type": "step-start"},
                {"type": "reasoning", "text": "pienso"},
                {"type": "text", "text": "Tenés una tarea."},
            ],
        },
    ]
    messages = to_model_messages(turns)
    assert [m["role"] for m in messages] == ["user", "assistant", "tool", "assistant"]

    call = messages[1]
    assert call["content"] == "Busco..."
    assert call["tool_calls"] == [
        {
            "id": "call_1",
            "type": "function",
            "function": {"name": "get_my_tasks", "arguments": json.dumps({"status": "Pendiente"})},
        }
    ]
    result = messages[2]
    assert result["tool_call_id"] == "call_1"
    assert json.loads(result["content"]) == {"ok": True, "tool": "get_my_tasks", "result": [{"title": "Gacetilla"}]}
    assert messages[3] == {"role": "assistant", "content": "Tenés una tarea."}


def test_to_model_messages_tool_error_and_pending_states():
    turns = [
        {
            "role": "assistant",
            "parts": [
                {
                    "type": "dynamic-tool",
                    "toolName": "get_tasks",
                    "toolCallId": "call_err",
                    "state": "output-error",
                    "input": {},
                    "errorText": "boom",
                },
                {"type": "tool-get_members", "toolCallId": "call_wip", "state": "input-available", "input": {}},
            ],
        }
    ]
    messages = to_model_messages(turns)
    assert len(messages) == 2
    assert [c["id"] for c in messages[0]["tool_calls"]] == ["call_err"]
    assert messages[0]["content"] is None
    assert json.loads(messages[1]["content"]) == {"ok": False, "tool": "get_tasks", "error": "boom"}


def test_to_model_messages_system_text():
    assert to_model_messages([{"role": "system", "parts": [{"type": "text", "text": "Sé breve."}]}]) == [
        {"role": "system", "content": "Sé breve."}
    ]


def test_to_model_messages_empty_assistant_is_skipped():
    assert to_model_messages([{"role": "assistant", "parts": []}]) == []


@pytest.mark.parametrize(
    "turn",
    [
        {"role": "tool", "parts": []},
        {"role": "user", "parts": [{"type": "tool-get_tasks"}]},
        {"role": "user", "parts": ["texto suelto"]},
        {"role": "system", "parts": [{"type": "file", "mediaType": "image/png", "url": "x"}]},
        {"role": "assistant", "parts": [{"type": "tool-get_tasks", "state": "output-available"}]},
        {"role": "assistant", "parts": [{"type": "tool-get_tasks", "toolCallId": "c", "state": "raro"}]},
        {"role": "assistant", "parts": [{"type": "mystery"}]},
        {"role": "user", "parts": [{"type": "text"}]},
    ],
)
def test_to_model_messages_rejects_unsupported_shapes(turn):
    with pytest.raises(MessageConversionError):
        to_model_messages([turn])
