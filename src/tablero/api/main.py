from __future__ import annotations

# src/tablero/api/main.py
from contextlib import asynccontextmanager
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tablero.api.routes.auth import router as auth_router
from tablero.api.routes.chat import router as chat_router
from tablero.api.security import IdentityLookupError
from tablero.assistant.service import close_chat_client
from tablero.logging import get_logger

logger = get_logger(__file__)


def _parse_csv_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def _is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


_DEFAULT_CORS_ORIGINS = [
    "http://127.0.0.1:3000",
    "http://localhost:3000",
]

cors_origins = _parse_csv_list(os.getenv("TABLERO_CORS_ORIGINS")) or _DEFAULT_CORS_ORIGINS
cors_allow_credentials = _is_truthy(os.getenv("TABLERO_CORS_ALLOW_CREDENTIALS"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    close_chat_client()


app = FastAPI(title="tablero", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_allow_credentials,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(IdentityLookupError)
async def identity_lookup_failed(request: Request, exc: IdentityLookupError):
    logger.error("identity check failed for %s: %s", request.url.path, exc)
    return JSONResponse({"error": str(exc)}, status_code=500)


@app.get("/status")
def status():
    return {"ok": True}


app.include_router(auth_router, prefix="/api")
app.include_router(chat_router, prefix="/api")
