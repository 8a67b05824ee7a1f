import json
import threading

import pytest

from tablero.assistant.driver import (
    DEADLINE_MESSAGE,
    PROVIDER_MESSAGE,
    ConversationDriver,
    RunFailed,
    RunFinished,
    StepFinished,
    StepStarted,
    StepText,
    ToolCallRequested,
    ToolResultReady,
)
from tablero.assistant.service import OpenAIChatClient, ProviderError, StepEnd, TextDelta, ToolCall
from tablero.assistant.stream import ui_message_chunks
from tablero.assistant.tools import Caller


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class ScriptedClient:
    """Replays one scripted step per call; the last step repeats."""

    provider = "fake"
    model = "fake-model"

    def __init__(self, steps):
        self.steps = list(steps)
        self.calls = []

    def stream_step(self, *, messages, tools):
        self.calls.append({"messages": list(messages), "tools": tools})
        step = self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]
        for event in step:
            if isinstance(event, Exception):
                raise event
            if callable(event):
                event()
                continue
            yield event


ANA = Caller(user_id="u1", email="ana@municipio.gob")


def _driver(client, session_factory, **kwargs):
    kwargs.setdefault("clock", FakeClock())
    return ConversationDriver(client=client, session_factory=session_factory, caller=ANA, **kwargs)


def _tool_step(*calls):
    return [StepEnd(finish_reason="tool-calls", tool_calls=list(calls))]


def test_plain_answer_is_a_single_step(session_factory):
    client = ScriptedClient([[TextDelta("Hola"), TextDelta(", Ana"), StepEnd(finish_reason="stop")]])
    events = list(_driver(client, session_factory).run([{"role": "user", "content": "hola"}]))

    assert events == [
        StepStarted(step=1),
        StepText(step=1, text="Hola"),
        StepText(step=1, text=", Ana"),
        StepFinished(step=1, finish_reason="stop"),
        RunFinished(steps=1, finish_reason="stop"),
    ]
    [call] = client.calls
    assert call["messages"][0]["role"] == "system"
    assert "Fecha actual:" in call["messages"][0]["content"]
    assert call["messages"][1] == {"role": "user", "content": "hola"}
    assert [t["function"]["name"] for t in call["tools"]] == ["get_my_tasks", "get_members", "get_projects", "get_tasks"]


def test_tool_results_feed_the_next_step(session_factory, board):
    client = ScriptedClient(
        [
            _tool_step(ToolCall(id="call_1", name="get_my_tasks", arguments='{"status": "Pendiente"}')),
            [TextDelta("Tenés 2 tareas."), StepEnd(finish_reason="stop")],
        ]
    )
    events = list(_driver(client, session_factory).run([{"role": "user", "content": "mis tareas"}]))

    requested = [e for e in events if isinstance(e, ToolCallRequested)]
    assert requested == [ToolCallRequested(step=1, call_id="call_1", name="get_my_tasks", input={"status": "Pendiente"})]

    [result] = [e for e in events if isinstance(e, ToolResultReady)]
    assert result.ok is True
    assert [row["title"] for row in result.output] == ["Conferencia", "Gacetilla"]

    assert events[-1] == RunFinished(steps=2, finish_reason="stop")
    assert len(client.calls) == 2

    history = client.calls[1]["messages"]
    assistant, tool = history[-2], history[-1]
    assert assistant["role"] == "assistant"
    assert assistant["content"] is None
    assert assistant["tool_calls"][0]["function"] == {"name": "get_my_tasks", "arguments": '{"status": "Pendiente"}'}
    assert tool["role"] == "tool"
    assert tool["tool_call_id"] == "call_1"
    assert json.loads(tool["content"])["ok"] is True


def test_step_cap_stops_a_tool_hungry_model(session_factory, board):
    client = ScriptedClient([_tool_step(ToolCall(id="call_x", name="get_members", arguments="{}"))])
    events = list(_driver(client, session_factory).run([{"role": "user", "content": "?"}]))

    assert len(client.calls) == 6
    assert sum(isinstance(e, StepStarted) for e in events) == 6
    assert events[-1] == RunFinished(steps=6, finish_reason="tool-calls", truncated=True)


def test_max_steps_is_clamped(session_factory, board):
    client = ScriptedClient([_tool_step(ToolCall(id="call_x", name="get_members", arguments="{}"))])
    list(_driver(client, session_factory, max_steps=50).run([]))
    assert len(client.calls) == 6

    client = ScriptedClient([_tool_step(ToolCall(id="call_x", name="get_members", arguments="{}"))])
    list(_driver(client, session_factory, max_steps=2).run([]))
    assert len(client.calls) == 2


@pytest.mark.parametrize("reason", ["stop", "length", "content-filter", "other"])
def test_any_other_finish_reason_ends_the_run(session_factory, reason):
    client = ScriptedClient([[StepEnd(finish_reason=reason)], [TextDelta("nunca")]])
    events = list(_driver(client, session_factory).run([]))
    assert events[-1] == RunFinished(steps=1, finish_reason=reason)
    assert len(client.calls) == 1


def test_failed_tools_are_reported_and_the_run_continues(session_factory, board):
    client = ScriptedClient(
        [
            _tool_step(
                ToolCall(id="c1", name="get_tasks", arguments="{not json"),
                ToolCall(id="c2", name="borrar_todo", arguments="{}"),
                ToolCall(id="c3", name="get_tasks", arguments='{"project_id": "nope"}'),
            ),
            [TextDelta("No pude."), StepEnd(finish_reason="stop")],
        ]
    )
    events = list(_driver(client, session_factory).run([]))

    requested = [e for e in events if isinstance(e, ToolCallRequested)]
    assert requested[0].input == "{not json"

    results = [e for e in events if isinstance(e, ToolResultReady)]
    assert [r.call_id for r in results] == ["c1", "c2", "c3"]
    assert all(r.ok is False for r in results)
    assert results[0].error.startswith("Invalid JSON arguments")
    assert results[1].error == "Unknown tool: borrar_todo"
    assert "project_id" in results[2].error

    tool_messages = [m for m in client.calls[1]["messages"] if m["role"] == "tool"]
    assert [m["tool_call_id"] for m in tool_messages] == ["c1", "c2", "c3"]
    assert events[-1] == RunFinished(steps=2, finish_reason="stop")


def test_parallel_calls_keep_request_order(session_factory, board):
    client = ScriptedClient(
        [
            _tool_step(
                ToolCall(id="a", name="get_projects", arguments=""),
                ToolCall(id="b", name="get_members", arguments="{}"),
                ToolCall(id="c", name="get_tasks", arguments='{"assignee_name": "Bruno"}'),
            ),
            [StepEnd(finish_reason="stop")],
        ]
    )
    events = list(_driver(client, session_factory).run([]))
    results = {e.call_id: e for e in events if isinstance(e, ToolResultReady)}

    assert list(results) == ["a", "b", "c"]
    assert [p["title"] for p in results["a"].output] == ["Redes sociales", "Campaña de prensa"]
    assert len(results["b"].output) == 3
    assert [t["title"] for t in results["c"].output] == ["Video institucional", "Conferencia"]


def test_provider_error_fails_the_run(session_factory):
    client = ScriptedClient([[TextDelta("Hola"), ProviderError("Provider returned HTTP 500", status_code=500)]])
    events = list(_driver(client, session_factory).run([]))
    assert events[-2:] == [StepText(step=1, text="Hola"), RunFailed(reason="provider", message="Provider returned HTTP 500")]


def test_stream_without_finish_event_fails(session_factory):
    client = ScriptedClient([[TextDelta("Hola")]])
    events = list(_driver(client, session_factory).run([]))
    assert isinstance(events[-1], RunFailed)
    assert events[-1].reason == "provider"


def test_deadline_expiry_yields_a_failure(session_factory):
    clock = FakeClock()

    def stall():
        clock.now += 31

    client = ScriptedClient([[TextDelta("Un momento"), stall, StepEnd(finish_reason="stop")]])
    events = list(_driver(client, session_factory, clock=clock, deadline_seconds=30).run([]))

    assert events == [
        StepStarted(step=1),
        StepText(step=1, text="Un momento"),
        RunFailed(reason="deadline", message=DEADLINE_MESSAGE),
    ]


def test_cancel_stops_without_a_finish(session_factory):
    cancel = threading.Event()
    client = ScriptedClient([[TextDelta("Hola"), cancel.set, StepEnd(finish_reason="stop")]])
    events = list(_driver(client, session_factory, cancel_event=cancel).run([]))

    assert events == [StepStarted(step=1), StepText(step=1, text="Hola")]


def test_unexpected_provider_exception_fails_the_run(session_factory):
    client = ScriptedClient([[TextDelta("Hola"), AttributeError("'NoneType' object has no attribute 'get'")]])
    events = list(_driver(client, session_factory).run([]))

    assert events[-1] == RunFailed(reason="provider", message=PROVIDER_MESSAGE)


class LineResponse:
    status_code = 200
    text = ""

    def __init__(self, lines):
        self.lines = lines

    def iter_lines(self, decode_unicode=False):
        yield from self.lines

    def close(self):
        pass


class LineSession:
    def __init__(self, lines):
        self.lines = lines

    def post(self, url, **kwargs):
        return LineResponse(self.lines)


def _openai_chunks(session_factory, lines):
    client = OpenAIChatClient(base_url="http://llm.local", model="m", session=LineSession(lines))
    return list(ui_message_chunks(_driver(client, session_factory).run([])))


@pytest.mark.parametrize(
    "lines",
    [
        ['data: {"choices":[{"delta":{"content":"Hol"}}]}', 'data: {"error":{"message":"upstream overloaded"}}'],
        ['data: {"choices":[{"delta":{"content":"Hol"}}]}'],
        ['data: {"choices":[{"delta":{"content":"Hol"}}]}', "data: [DONE]"],
    ],
)
def test_broken_provider_stream_ends_with_an_error_chunk(session_factory, lines):
    chunks = _openai_chunks(session_factory, lines)

    assert [c["type"] for c in chunks] == ["start", "start-step", "text-start", "text-delta", "text-end", "error"]


def test_malformed_tool_call_fragment_does_not_escape_the_stream(session_factory):
    chunks = _openai_chunks(
        session_factory, ['data: {"choices":[{"delta":{"tool_calls":[null]},"finish_reason":"tool_calls"}]}']
    )

    assert chunks[0] == {"type": "start"}
    assert chunks[-1] == {"type": "finish"}
    assert not [c for c in chunks if c["type"].startswith("tool-")]


def test_deadline_checks_before_run_raise(session_factory):
    driver = _driver(ScriptedClient([[StepEnd(finish_reason="stop")]]), session_factory)
    with pytest.raises(RuntimeError, match="has not started"):
        driver._remaining()
