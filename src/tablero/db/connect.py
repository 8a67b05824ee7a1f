"""Engine and session plumbing shared by the API, the assistant and the CLI.

Every entry point resolves the database the same way: an explicit file,
then ``TABLERO_DB_PATH``, then ``<TABLERO_DB_DIR>/tablero.db`` (default
``~/.tablero``).  Engines and session factories are cached per URI.
"""

import os
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from typing import Callable, ContextManager, Iterator

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from tablero.db.models import initialize_db, sqlite_engine
from tablero.logging import get_logger

logger = get_logger(__file__)

SessionFactory = Callable[[], ContextManager[Session]]


def get_db_dir() -> Path:
    raw = (os.environ.get("TABLERO_DB_DIR") or "").strip()
    directory = Path(raw).expanduser() if raw else Path.home() / ".tablero"
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def get_db_path(file: str | Path | None = None) -> str:
    """SQLite URI for ``file``, ``TABLERO_DB_PATH`` or the default location."""

    target = file if file is not None else (os.environ.get("TABLERO_DB_PATH") or "").strip()
    if not target:
        target = get_db_dir() / "tablero.db"
    if str(target).startswith("sqlite"):
        return str(target)
    return f"sqlite:///{Path(target).expanduser()}"


@lru_cache(maxsize=None)
def get_engine(db_uri: str) -> Engine:
    logger.info("opening database %s", db_uri)
    engine = sqlite_engine(db_uri)
    initialize_db(engine)
    return engine


def make_session_factory(engine: Engine) -> SessionFactory:
    """Wrap ``engine`` in a commit-or-rollback session context manager."""

    initialize_db(engine)
    maker = sessionmaker(bind=engine, expire_on_commit=False)

    @contextmanager
    def scope() -> Iterator[Session]:
        session = maker()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return scope


@lru_cache(maxsize=None)
def _cached_factory(db_uri: str) -> SessionFactory:
    return make_session_factory(get_engine(db_uri))


def get_session_factory(file_path: str | Path | None = None) -> SessionFactory:
    return _cached_factory(get_db_path(file_path))


@contextmanager
def get_session(file_path: str | Path | None = None) -> Iterator[Session]:
    with get_session_factory(file_path)() as session:
        yield session


def get_session_dep() -> Iterator[Session]:
    """Request-scoped session for FastAPI routes."""

    with get_session() as session:
        yield session


def get_session_factory_dep() -> SessionFactory:
    """Factory handed to the assistant, whose tool calls run on worker threads."""

    return get_session_factory()
