"""Session-cookie authentication for the FastAPI service.

Login issues an HttpOnly cookie holding a random token; only its SHA-256
hash is stored (``auth_session``).  Passwords use PBKDF2-HMAC-SHA256 with a
per-user salt and an optional server-side pepper
(``TABLERO_PASSWORD_PEPPER``).
"""

from __future__ import annotations

import base64
import binascii
from datetime import UTC, datetime, timedelta
import hashlib
import os
import secrets

from fastapi import Depends, HTTPException, Request, Response, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tablero.db.connect import get_session_dep
from tablero.db.models import AuthSession, AuthUser, UserRole
from tablero.logging import get_logger

logger = get_logger(__file__)

NOT_AUTHENTICATED = "No autenticado"

_COOKIE_NAME = "tablero_session"
_SAMESITE = ("lax", "strict", "none")
_HASH_BYTES = 32


class IdentityLookupError(RuntimeError):
    """The session store could not be queried."""


def _env_int(key: str, default: int, floor: int) -> int:
    try:
        value = int(os.environ[key])
    except (KeyError, ValueError):
        return default
    return max(floor, value)


def _env_flag(key: str) -> bool:
    return (os.environ.get(key) or "").strip().lower() in {"1", "true", "yes", "y", "on"}


def _derive(password: str, salt: bytes, iterations: int, length: int = _HASH_BYTES) -> bytes:
    pepper = (os.environ.get("TABLERO_PASSWORD_PEPPER") or "").strip()
    secret = password.encode("utf-8")
    if pepper:
        secret += hashlib.sha256(pepper.encode("utf-8")).digest()
    return hashlib.pbkdf2_hmac("sha256", secret, salt, iterations, dklen=length)


def hash_password(
    password: str,
    *,
    salt: bytes | None = None,
    iterations: int | None = None,
) -> tuple[str, str, int]:
    """Return ``(salt_b64, hash_b64, iterations)`` to store on an account."""

    rounds = iterations or _env_int("TABLERO_PASSWORD_ITERATIONS", 250_000, 50_000)
    salt = salt or secrets.token_bytes(16)
    encoded = [base64.b64encode(part).decode("ascii") for part in (salt, _derive(password, salt, rounds))]
    return encoded[0], encoded[1], rounds


def verify_password(password: str, *, salt_b64: str, hash_b64: str, iterations: int) -> bool:
    try:
        salt, expected = (base64.b64decode(part.encode("ascii"), validate=True) for part in (salt_b64, hash_b64))
    except (binascii.Error, UnicodeEncodeError):
        return False
    return secrets.compare_digest(_derive(password, salt, iterations, len(expected)), expected)


def session_cookie_name() -> str:
    return (os.environ.get("TABLERO_SESSION_COOKIE_NAME") or "").strip() or _COOKIE_NAME


def _session_lifetime() -> timedelta:
    return timedelta(seconds=_env_int("TABLERO_SESSION_TTL_SECONDS", 12 * 3600, 60))


def _token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(db: Session, *, user: AuthUser) -> str:
    """Persist a new login for ``user`` and return the raw cookie token."""

    token = secrets.token_urlsafe(32)
    issued = datetime.now(UTC)
    db.add(
        AuthSession(
            user_id=user.id,
            token_hash=_token_digest(token),
            created_at=issued,
            expires_at=issued + _session_lifetime(),
        )
    )
    db.commit()
    return token


def delete_session(db: Session, *, token: str) -> None:
    db.query(AuthSession).filter(AuthSession.token_hash == _token_digest(token)).delete()
    db.commit()


def set_session_cookie(response: Response, *, token: str) -> None:
    samesite = (os.environ.get("TABLERO_SESSION_COOKIE_SAMESITE") or "").strip().lower()
    response.set_cookie(
        session_cookie_name(),
        token,
        max_age=int(_session_lifetime().total_seconds()),
        httponly=True,
        samesite=samesite if samesite in _SAMESITE else "lax",
        secure=_env_flag("TABLERO_SESSION_COOKIE_SECURE"),
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(session_cookie_name(), path="/")


def resolve_user(db: Session, token: str | None) -> AuthUser | None:
    """Return the active account behind ``token``, or ``None``.

    Raises :class:`IdentityLookupError` when the store itself fails.
    """

    if not token:
        return None

    # Compared naive: SQLite hands DateTime columns back without tzinfo.
    now = datetime.now(UTC).replace(tzinfo=None)
    try:
        row = (
            db.query(AuthSession)
            .join(AuthUser, AuthSession.user_id == AuthUser.id)
            .filter(AuthSession.token_hash == _token_digest(token))
            .filter(AuthSession.expires_at > now)
            .first()
        )
    except SQLAlchemyError as exc:
        logger.exception("session lookup failed")
        raise IdentityLookupError(str(exc)) from exc

    if row is None or not row.user.is_active:
        return None
    return row.user


def get_current_user(
    request: Request,
    db: Session = Depends(get_session_dep),
) -> AuthUser | None:
    """Identity dependency; ``IdentityLookupError`` becomes a 500 in ``main``."""

    return resolve_user(db, request.cookies.get(session_cookie_name()))


def require_user(user: AuthUser | None = Depends(get_current_user)) -> AuthUser:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=NOT_AUTHENTICATED)
    return user


def require_admin(user: AuthUser = Depends(require_user)) -> AuthUser:
    if user.role != UserRole.admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Se requiere rol admin.")
    return user


def new_account(*, email: str, password: str, full_name: str | None, role: UserRole) -> AuthUser:
    """Unsaved :class:`AuthUser` with freshly hashed credentials."""

    salt_b64, hash_b64, iterations = hash_password(password)
    return AuthUser(
        email=email.strip(),
        full_name=(full_name or "").strip() or None,
        password_hash=hash_b64,
        password_salt=salt_b64,
        password_iterations=iterations,
        role=role,
        is_active=True,
    )
