"""Multi-step model/tool loop behind ``POST /api/chat``.

One :class:`ConversationDriver` serves one request.  Each step streams a
model completion; any tool calls it requests are executed concurrently (one
database session per call) and their results are appended to the history
before the next step.  The loop ends when a step finishes for any reason
other than ``tool-calls``, when the step cap is hit, when the deadline
expires, or when the caller cancels.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
import threading
import time
from typing import Any, Callable, Iterator, Literal

from sqlalchemy.exc import SQLAlchemyError

from tablero.assistant.service import (
    MAX_STEPS,
    DEFAULT_DEADLINE_SECONDS,
    ChatClient,
    FinishReason,
    ProviderError,
    StepEnd,
    TextDelta,
    ToolCall,
    system_prompt,
)
from tablero.assistant.tools import (
    Caller,
    format_tool_result_message,
    openai_tools,
    parse_tool_arguments,
    run_tool,
)
from tablero.db.connect import SessionFactory
from tablero.logging import get_logger

logger = get_logger(__file__)


@dataclass(frozen=True)
class StepStarted:
    step: int


@dataclass(frozen=True)
class StepText:
    step: int
    text: str


@dataclass(frozen=True)
class ToolCallRequested:
    step: int
    call_id: str
    name: str
    input: Any


@dataclass(frozen=True)
class ToolResultReady:
    step: int
    call_id: str
    name: str
    ok: bool
    output: Any = None
    error: str | None = None


@dataclass(frozen=True)
class StepFinished:
    step: int
    finish_reason: FinishReason
    usage: dict[str, Any] | None = None


@dataclass(frozen=True)
class RunFinished:
    steps: int
    finish_reason: FinishReason
    # True when the step cap stopped a model that still wanted tools.
    truncated: bool = False


@dataclass(frozen=True)
class RunFailed:
    reason: Literal["deadline", "provider"]
    message: str


DriverEvent = StepStarted | StepText | ToolCallRequested | ToolResultReady | StepFinished | RunFinished | RunFailed

DEADLINE_MESSAGE = "La respuesta tardó demasiado. Intenta de nuevo."
PROVIDER_MESSAGE = "El modelo devolvió una respuesta inválida. Intenta de nuevo."


class _Expired(Exception):
    pass


class ConversationDriver:
    def __init__(
        self,
        *,
        client: ChatClient,
        session_factory: SessionFactory,
        caller: Caller,
        max_steps: int = MAX_STEPS,
        deadline_seconds: float = DEFAULT_DEADLINE_SECONDS,
        max_workers: int = 4,
        cancel_event: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.session_factory = session_factory
        self.caller = caller
        self.max_steps = max(1, min(MAX_STEPS, max_steps))
        self.deadline_seconds = deadline_seconds
        self.max_workers = max_workers
        self.cancel_event = cancel_event or threading.Event()
        self._clock = clock
        self._deadline_at: float | None = None

    def _remaining(self) -> float:
        if self._deadline_at is None:
            raise RuntimeError("ConversationDriver.run() has not started")
        return self._deadline_at - self._clock()

    def _check(self) -> bool:
        """Return False when the run must stop; raises on deadline."""

        if self.cancel_event.is_set():
            return False
        if self._remaining() <= 0:
            raise _Expired()
        return True

    def run(self, messages: list[dict[str, Any]]) -> Iterator[DriverEvent]:
        self._deadline_at = self._clock() + self.deadline_seconds
        history: list[dict[str, Any]] = [{"role": "system", "content": system_prompt()}, *messages]
        tools = openai_tools()
        executor: ThreadPoolExecutor | None = None
        last_reason: FinishReason = "other"

        try:
            for step in range(1, self.max_steps + 1):
                if not self._check():
                    logger.info("chat run cancelled before step %s", step)
                    return
                yield StepStarted(step=step)

                texts: list[str] = []
                end: StepEnd | None = None
                stream = self.client.stream_step(messages=history, tools=tools)
                try:
                    for event in stream:
                        if isinstance(event, TextDelta):
                            texts.append(event.text)
                            yield StepText(step=step, text=event.text)
                        elif isinstance(event, StepEnd):
                            end = event
                        if not self._check():
                            logger.info("chat run cancelled during step %s", step)
                            return
                except ProviderError as exc:
                    logger.warning("provider failed on step %s: %s", step, exc)
                    yield RunFailed(reason="provider", message=str(exc))
                    return
                except _Expired:
                    raise
                except Exception:
                    logger.exception("unexpected provider output on step %s", step)
                    yield RunFailed(reason="provider", message=PROVIDER_MESSAGE)
                    return
                finally:
                    close = getattr(stream, "close", None)
                    if close is not None:
                        close()

                if end is None:
                    logger.warning("provider stream ended without a finish event (step %s)", step)
                    yield RunFailed(reason="provider", message="El modelo no completó la respuesta.")
                    return

                assistant: dict[str, Any] = {"role": "assistant", "content": "".join(texts) or None}
                if end.tool_calls:
                    assistant["tool_calls"] = [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.name, "arguments": call.arguments or "{}"},
                        }
                        for call in end.tool_calls
                    ]
                history.append(assistant)

                if end.tool_calls:
                    if executor is None:
                        executor = ThreadPoolExecutor(
                            max_workers=self.max_workers, thread_name_prefix="tablero-tool"
                        )
                    results = yield from self._run_tools(step, end.tool_calls, executor)
                    if results is None:
                        return
                    for call in end.tool_calls:
                        payload = results[call.id]
                        if payload.get("ok"):
                            yield ToolResultReady(
                                step=step, call_id=call.id, name=call.name, ok=True, output=payload.get("result")
                            )
                        else:
                            yield ToolResultReady(
                                step=step, call_id=call.id, name=call.name, ok=False, error=str(payload.get("error"))
                            )
                        history.append(
                            {
                                "role": "tool",
                                "tool_call_id": call.id,
                                "content": format_tool_result_message(payload),
                            }
                        )

                logger.info("chat step %s finished (%s)", step, end.finish_reason)
                yield StepFinished(step=step, finish_reason=end.finish_reason, usage=end.usage)
                last_reason = end.finish_reason

                if end.finish_reason != "tool-calls":
                    yield RunFinished(steps=step, finish_reason=end.finish_reason)
                    return

            logger.warning(
                "chat run hit the %s-step cap while the model still requested tools", self.max_steps
            )
            yield RunFinished(steps=self.max_steps, finish_reason=last_reason, truncated=True)
        except _Expired:
            logger.warning("chat run exceeded its %.0fs deadline", self.deadline_seconds)
            yield RunFailed(reason="deadline", message=DEADLINE_MESSAGE)
        finally:
            if executor is not None:
                executor.shutdown(wait=False, cancel_futures=True)

    def _run_tools(
        self,
        step: int,
        calls: list[ToolCall],
        executor: ThreadPoolExecutor,
    ) -> Iterator[DriverEvent]:
        """Dispatch every call of a step; returns results keyed by call id.

        Returns ``None`` (as the generator value) when cancelled.
        """

        results: dict[str, dict[str, Any]] = {}
        pending: dict[str, Future] = {}

        for call in calls:
            try:
                args = parse_tool_arguments(call.arguments)
            except ValueError as exc:
                yield ToolCallRequested(step=step, call_id=call.id, name=call.name, input=call.arguments)
                results[call.id] = {"ok": False, "tool": call.name, "error": f"Invalid JSON arguments: {exc}"}
                continue
            yield ToolCallRequested(step=step, call_id=call.id, name=call.name, input=args)
            logger.info("dispatching tool %s (%s)", call.name, call.id)
            pending[call.id] = executor.submit(self._call_tool, call.name, args)

        if pending:
            _, not_done = wait(pending.values(), timeout=max(0.0, self._remaining()))
            if not_done:
                raise _Expired()
            for call_id, future in pending.items():
                results[call_id] = future.result()

        if not self._check():
            logger.info("chat run cancelled while tools were running (step %s)", step)
            return None
        return results

    def _call_tool(self, name: str, args: dict[str, Any]) -> dict[str, Any]:
        try:
            with self.session_factory() as db:
                return run_tool(name=name, args=args, db=db, caller=self.caller)
        except SQLAlchemyError as exc:
            logger.exception("database session failed for tool %s", name)
            return {"ok": False, "tool": name, "error": f"{type(exc).__name__}: {exc}"}
