from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import lru_cache
import json
import os
from pathlib import Path
from typing import Any, Iterator, Literal, Protocol

import requests

from tablero.logging import get_logger


logger = get_logger(__file__)

FinishReason = Literal["stop", "length", "content-filter", "tool-calls", "error", "other"]

MAX_STEPS = 6
DEFAULT_DEADLINE_SECONDS = 30.0
DEFAULT_MODEL = "gpt-4o-mini"

_PROMPT_FILE_MAX_CHARS = 80_000
_FINISH_REASONS: dict[str, FinishReason] = {
    "stop": "stop",
    "length": "length",
    "content_filter": "content-filter",
    "tool_calls": "tool-calls",
    "function_call": "tool-calls",
}


class ProviderError(RuntimeError):
    """The LLM provider failed or answered with something unusable."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: str


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class StepEnd:
    finish_reason: FinishReason
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: dict[str, Any] | None = None


ModelEvent = TextDelta | StepEnd


class ChatClient(Protocol):
    provider: str
    model: str | None

    def stream_step(
        self,
        *,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> Iterator[ModelEvent]:
        """Run one model step, yielding text deltas and a final :class:`StepEnd`."""


def map_finish_reason(raw: str | None) -> FinishReason:
    if not raw:
        return "other"
    return _FINISH_REASONS.get(str(raw).strip().lower(), "other")


def _normalize_openai_base_url(value: str) -> str:
    """Normalize OpenAI-style base URLs.

    Accepts ``http://host``, ``http://host/v1`` or the full
    ``.../v1/chat/completions`` endpoint and returns the bare base URL.
    """

    raw = (value or "").strip().rstrip("/")
    if not raw:
        return ""

    for suffix in ("/v1/chat/completions", "/v1/models", "/v1"):
        if raw.endswith(suffix):
            raw = raw[: -len(suffix)].rstrip("/")
            break

    return raw


def _truncate_text(value: str, *, limit: int = 2000) -> str:
    if limit <= 0:
        return ""
    text = (value or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit]


def _stream_error_message(error: Any) -> str:
    """Message of an in-stream ``{"error": ...}`` event (object or plain string)."""

    if isinstance(error, dict):
        error = error.get("message") or json.dumps(error, ensure_ascii=False)
    return _truncate_text(str(error), limit=500)


def _openai_url() -> str:
    raw = os.getenv("TABLERO_OPENAI_URL") or "https://api.openai.com"
    normalized = _normalize_openai_base_url(raw)
    return (normalized or raw).rstrip("/")


def _openai_model() -> str:
    return (os.getenv("TABLERO_OPENAI_MODEL") or DEFAULT_MODEL).strip() or DEFAULT_MODEL


def _openai_api_key() -> str | None:
    raw = (os.getenv("TABLERO_OPENAI_API_KEY") or os.getenv("OPENAI_API_KEY") or "").strip()
    return raw or None


def _openai_timeout_seconds() -> float:
    raw = (os.getenv("TABLERO_OPENAI_TIMEOUT_SECONDS") or "").strip()
    if not raw:
        return 30.0
    try:
        return max(1.0, float(raw))
    except ValueError:
        return 30.0


def _assistant_temperature() -> float | None:
    raw = (os.getenv("TABLERO_ASSISTANT_TEMPERATURE") or "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return min(2.0, max(0.0, value))


def max_steps() -> int:
    raw = (os.getenv("TABLERO_ASSISTANT_MAX_STEPS") or "").strip()
    if not raw:
        return MAX_STEPS
    try:
        return max(1, min(MAX_STEPS, int(raw)))
    except ValueError:
        return MAX_STEPS


def deadline_seconds() -> float:
    raw = (os.getenv("TABLERO_ASSISTANT_DEADLINE_SECONDS") or "").strip()
    if not raw:
        return DEFAULT_DEADLINE_SECONDS
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_DEADLINE_SECONDS
    return value if value > 0 else DEFAULT_DEADLINE_SECONDS


def _read_prompt_from_env(path_env: str) -> str | None:
    raw = (os.getenv(path_env) or "").strip()
    if not raw:
        return None
    try:
        content = Path(raw).expanduser().read_text(encoding="utf-8")
    except OSError as exc:
        logger.warning("could not read %s=%s: %s", path_env, raw, exc)
        return None
    content = content.strip()[:_PROMPT_FILE_MAX_CHARS]
    return content or None


def _prompt_extras() -> str | None:
    """Optional additions appended to the system prompt."""

    chunks: list[str] = []

    file_extra = _read_prompt_from_env("TABLERO_ASSISTANT_SYSTEM_PROMPT_EXTRA_PATH")
    if file_extra:
        chunks.append(file_extra)

    extra = (os.getenv("TABLERO_ASSISTANT_SYSTEM_PROMPT_EXTRA") or "").strip()
    if extra:
        chunks.append(extra)

    combined = "\n\n".join(chunks)
    return combined.strip() or None


def _default_prompt_base() -> str:
    return (
        'Eres un asistente del sistema de gestión de proyectos "Comunicación".\n'
        "Tienes acceso a datos de la BD mediante herramientas (projects, tasks, members).\n"
        'Antes de decir "no sé", consulta la BD con las herramientas.\n'
        "Si el usuario pregunta por tareas de un miembro y no especifica el id, primero usa get_members "
        "para encontrarlo por nombre/email y luego usa get_tasks con member_id o assignee_name.\n"
        'Si el usuario pregunta por "mis tareas" o "mis tareas pendientes", usa get_my_tasks '
        '(y para pendientes usa status="Pendiente").\n'
        'Nota: "mis tareas" se resuelve por members.email == email de la sesión. Si no existe, '
        "responde pidiendo que se cargue el email del miembro.\n"
        "Después de ejecutar herramientas, SIEMPRE responde con una respuesta final en texto para el "
        "usuario (no te quedes solo en llamadas a herramientas).\n"
        "\n"
        "FORMATO DE RESPUESTA (muy importante):\n"
        "- Responde SIEMPRE en español.\n"
        "- Usa saltos de línea.\n"
        "- Si estás listando cosas, usa viñetas con este patrón:\n"
        "  - **Título** — Estado: **X** — Proyecto: **Y** — Asignado a: **Z**\n"
        '- Para "Asignado a", usa el campo "assigned_to" si existe; si no, muestra "Sin asignar".\n'
        '- Si no hay resultados, dilo explícitamente (ej: "No encontré tareas para <miembro> con ese filtro.").'
    )


def _iso_now(now: datetime | None = None) -> str:
    current = (now or datetime.now(UTC)).astimezone(UTC)
    return current.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def system_prompt(*, now: datetime | None = None) -> str:
    """System preamble sent with every model step.

    ``TABLERO_ASSISTANT_SYSTEM_PROMPT`` replaces the built-in text; extras
    are appended either way. The current UTC timestamp always closes it.
    """

    base = (os.getenv("TABLERO_ASSISTANT_SYSTEM_PROMPT") or "").strip() or _default_prompt_base()
    extras = _prompt_extras()
    if extras:
        base = f"{base}\n\n{extras}"
    return f"{base}\n\nFecha actual: {_iso_now(now)}"


class StubChatClient:
    """Offline provider: answers every step with a configuration hint."""

    provider = "stub"
    model: str | None = None

    def stream_step(
        self,
        *,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> Iterator[ModelEvent]:
        yield TextDelta(
            "El asistente está en modo de prueba. "
            "Configura `TABLERO_ASSISTANT_PROVIDER=openai` y una API key para habilitar el modelo."
        )
        yield StepEnd(finish_reason="stop")

    def close(self) -> None:
        return None


class OpenAIChatClient:
    """Streaming client for OpenAI-compatible ``/v1/chat/completions``."""

    provider = "openai"

    def __init__(
        self,
        *,
        base_url: str,
        model: str,
        api_key: str | None = None,
        timeout: float = 30.0,
        temperature: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self._api_key = api_key
        self._session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "text/event-stream"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _payload(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"
        return payload

    def stream_step(
        self,
        *,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> Iterator[ModelEvent]:
        url = f"{self.base_url}/v1/chat/completions"
        try:
            response = self._session.post(
                url,
                json=self._payload(messages, tools),
                headers=self._headers(),
                timeout=self.timeout,
                stream=True,
            )
        except requests.RequestException as exc:
            logger.warning("chat completion request failed (%s): %s", url, exc)
            raise ProviderError(f"{type(exc).__name__}: {exc}") from exc

        try:
            if response.status_code >= 400:
                body = _truncate_text(response.text or "")
                logger.warning("chat completion failed (%s, status=%s): %s", url, response.status_code, body)
                raise ProviderError(
                    f"Provider returned HTTP {response.status_code}",
                    status_code=response.status_code,
                    body=body or None,
                )
            yield from self._read_stream(response)
        except requests.RequestException as exc:
            logger.warning("chat completion stream broke (%s): %s", url, exc)
            raise ProviderError(f"{type(exc).__name__}: {exc}") from exc
        finally:
            response.close()

    def _read_stream(self, response: requests.Response) -> Iterator[ModelEvent]:
        calls: dict[int, dict[str, str]] = {}
        finish: str | None = None
        usage: dict[str, Any] | None = None

        for line in response.iter_lines(decode_unicode=True):
            if not line or not line.startswith("data:"):
                continue
            data = line[len("data:"):].strip()
            if data == "[DONE]":
                break
            try:
                chunk = json.loads(data)
            except json.JSONDecodeError:
                logger.warning("skipping undecodable stream chunk: %s", _truncate_text(data, limit=200))
                continue
            if not isinstance(chunk, dict):
                continue
            if chunk.get("error"):
                raise ProviderError(f"Provider stream error: {_stream_error_message(chunk['error'])}")

            if isinstance(chunk.get("usage"), dict):
                usage = chunk["usage"]

            for choice in chunk.get("choices") or []:
                if not isinstance(choice, dict):
                    continue
                delta = choice.get("delta")
                if not isinstance(delta, dict):
                    delta = {}
                content = delta.get("content")
                if isinstance(content, str) and content:
                    yield TextDelta(content)

                for fragment in delta.get("tool_calls") or []:
                    if not isinstance(fragment, dict):
                        continue
                    index = fragment.get("index", 0)
                    slot = calls.setdefault(index, {"id": "", "name": "", "arguments": ""})
                    if fragment.get("id"):
                        slot["id"] = fragment["id"]
                    function = fragment.get("function")
                    if not isinstance(function, dict):
                        function = {}
                    if isinstance(function.get("name"), str) and function["name"]:
                        slot["name"] = function["name"]
                    if isinstance(function.get("arguments"), str):
                        slot["arguments"] += function["arguments"]

                if choice.get("finish_reason"):
                    finish = choice["finish_reason"]

        if finish is None:
            # Cut off before a finish_reason; the driver reports it as a failure.
            logger.warning("chat completion stream ended without a finish_reason")
            return

        tool_calls = [
            ToolCall(id=slot["id"] or f"call_{index}", name=slot["name"], arguments=slot["arguments"])
            for index, slot in sorted(calls.items())
        ]
        yield StepEnd(finish_reason=map_finish_reason(finish), tool_calls=tool_calls, usage=usage)

    def close(self) -> None:
        self._session.close()


def build_chat_client() -> StubChatClient | OpenAIChatClient:
    provider = (os.getenv("TABLERO_ASSISTANT_PROVIDER") or "stub").strip().lower()
    if provider == "openai":
        return OpenAIChatClient(
            base_url=_openai_url(),
            model=_openai_model(),
            api_key=_openai_api_key(),
            timeout=_openai_timeout_seconds(),
            temperature=_assistant_temperature(),
        )
    if provider != "stub":
        logger.warning("unknown TABLERO_ASSISTANT_PROVIDER=%r, using stub", provider)
    return StubChatClient()


@lru_cache(maxsize=1)
def get_chat_client() -> StubChatClient | OpenAIChatClient:
    """Process-wide chat client (FastAPI dependency)."""

    client = build_chat_client()
    logger.info("chat client ready (provider=%s, model=%s)", client.provider, client.model)
    return client


def close_chat_client() -> None:
    if get_chat_client.cache_info().currsize:
        get_chat_client().close()
    get_chat_client.cache_clear()
