"""Login, logout and account management under ``/api/auth``."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from tablero.api.security import (
    clear_session_cookie,
    create_session,
    delete_session,
    get_current_user,
    new_account,
    require_admin,
    session_cookie_name,
    set_session_cookie,
    verify_password,
)
from tablero.db.connect import get_session_dep
from tablero.db.models import AuthUser, UserRole
from tablero.logging import get_logger

logger = get_logger(__file__)

router = APIRouter(prefix="/auth", tags=["Auth"])

_BAD_CREDENTIALS = "Credenciales inválidas."


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    full_name: str | None
    role: UserRole
    is_active: bool


class Credentials(BaseModel):
    email: str = Field(min_length=1, max_length=320)
    password: str = Field(min_length=1, max_length=1024)


class NewAccount(Credentials):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=8, max_length=1024)
    full_name: str | None = Field(default=None, max_length=256)


class NewUser(NewAccount):
    full_name: str = Field(min_length=1, max_length=256)
    role: UserRole = UserRole.common


def _find(db: Session, email: str) -> AuthUser | None:
    return db.query(AuthUser).filter(AuthUser.email == email.strip()).first()


def _save(db: Session, user: AuthUser) -> UserOut:
    db.add(user)
    db.commit()
    db.refresh(user)
    return UserOut.model_validate(user)


def _log_in(db: Session, response: Response, user: AuthUser) -> None:
    set_session_cookie(response, token=create_session(db, user=user))


@router.post("/bootstrap", response_model=UserOut, status_code=201)
def bootstrap(payload: NewAccount, response: Response, db: Session = Depends(get_session_dep)):
    """First account on an empty install; it is an admin and is logged in."""

    if db.query(AuthUser).first() is not None:
        raise HTTPException(status_code=409, detail="Ya existen usuarios.")
    user = new_account(email=payload.email, password=payload.password, full_name=payload.full_name, role=UserRole.admin)
    created = _save(db, user)
    logger.info("bootstrapped admin account %s", created.email)
    _log_in(db, response, user)
    return created


@router.post("/login", response_model=UserOut)
def login(payload: Credentials, response: Response, db: Session = Depends(get_session_dep)):
    user = _find(db, payload.email)
    valid = (
        user is not None
        and user.is_active
        and verify_password(
            payload.password,
            salt_b64=user.password_salt,
            hash_b64=user.password_hash,
            iterations=user.password_iterations,
        )
    )
    if not valid:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=_BAD_CREDENTIALS)
    _log_in(db, response, user)
    return UserOut.model_validate(user)


@router.post("/logout")
def logout(request: Request, response: Response, db: Session = Depends(get_session_dep)):
    token = request.cookies.get(session_cookie_name())
    if token:
        delete_session(db, token=token)
    clear_session_cookie(response)
    return {"ok": True}


@router.get("/me")
def me(user: AuthUser | None = Depends(get_current_user)):
    if user is None:
        return JSONResponse({"user": None}, status_code=status.HTTP_401_UNAUTHORIZED)
    return {"user": {"id": user.id, "email": user.email}, "role": (user.role or UserRole.common).value}


@router.get("/users", response_model=list[UserOut])
def list_users(_: AuthUser = Depends(require_admin), db: Session = Depends(get_session_dep)):
    return [UserOut.model_validate(user) for user in db.query(AuthUser).order_by(AuthUser.email).all()]


@router.post("/users", response_model=UserOut, status_code=201)
def create_user(payload: NewUser, admin: AuthUser = Depends(require_admin), db: Session = Depends(get_session_dep)):
    if _find(db, payload.email) is not None:
        raise HTTPException(status_code=409, detail="Ya existe un usuario con ese email.")
    created = _save(
        db,
        new_account(email=payload.email, password=payload.password, full_name=payload.full_name, role=payload.role),
    )
    logger.info("%s created account %s (%s)", admin.email, created.email, created.role.value)
    return created
