from __future__ import annotations

import threading
from typing import AsyncIterator, Iterator

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.concurrency import iterate_in_threadpool

from tablero.api.security import NOT_AUTHENTICATED, get_current_user
from tablero.assistant.driver import ConversationDriver
from tablero.assistant.normalize import MessageConversionError, normalize_messages, to_model_messages
from tablero.assistant.service import ChatClient, deadline_seconds, get_chat_client, max_steps
from tablero.assistant.stream import UI_STREAM_HEADERS, sse_lines
from tablero.assistant.tools import Caller
from tablero.db.connect import SessionFactory, get_session_factory_dep
from tablero.db.models import AuthUser
from tablero.logging import get_logger

logger = get_logger(__file__)

router = APIRouter(tags=["Chat"])


async def _relay(
    request: Request,
    lines: Iterator[str],
    cancel: threading.Event,
) -> AsyncIterator[str]:
    """Forward SSE lines until the run ends or the client goes away."""

    try:
        async for line in iterate_in_threadpool(lines):
            if await request.is_disconnected():
                logger.info("chat client disconnected; stopping run")
                break
            yield line
    finally:
        cancel.set()
        # A generator still running in a worker thread stops on the cancel flag.
        if not getattr(lines, "gi_running", False):
            lines.close()


@router.post("/chat")
async def chat(
    request: Request,
    user: AuthUser | None = Depends(get_current_user),
    client: ChatClient = Depends(get_chat_client),
    session_factory: SessionFactory = Depends(get_session_factory_dep),
):
    if user is None:
        return JSONResponse({"error": NOT_AUTHENTICATED}, status_code=status.HTTP_401_UNAUTHORIZED)

    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"error": "Body JSON inválido"}, status_code=status.HTTP_400_BAD_REQUEST)

    raw_messages = body.get("messages") if isinstance(body, dict) else None
    turns = normalize_messages(raw_messages)
    try:
        model_messages = to_model_messages(turns)
    except MessageConversionError as exc:
        return JSONResponse(
            {"error": "Formato de mensajes inválido para el chatbot", "detail": str(exc)},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    cancel = threading.Event()
    driver = ConversationDriver(
        client=client,
        session_factory=session_factory,
        caller=Caller(user_id=user.id, email=user.email),
        max_steps=max_steps(),
        deadline_seconds=deadline_seconds(),
        cancel_event=cancel,
    )
    logger.info("chat run for %s (%d turns, provider=%s)", user.email, len(turns), client.provider)

    return StreamingResponse(
        _relay(request, sse_lines(driver.run(model_messages)), cancel),
        media_type="text/event-stream",
        headers=UI_STREAM_HEADERS,
    )
