import os

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from tablero.logging import get_logger

from .base import Base

logger = get_logger(__file__)


def _sql_trace_enabled() -> bool:
    return (os.getenv("TABLERO_SQL_TRACE") or "").strip().lower() in {"1", "true", "yes", "y", "on"}


def _on_connect(trace: bool):
    def configure(dbapi_connection, connection_record):
        # ON DELETE CASCADE / SET NULL on task_assignees depend on this.
        dbapi_connection.execute("PRAGMA foreign_keys=ON")
        if trace:
            dbapi_connection.set_trace_callback(logger.info)

    return configure


def sqlite_engine(db_path: str = "sqlite:///./tablero.db") -> Engine:
    """SQLite engine usable from the threadpool that runs chat requests."""

    engine = create_engine(db_path, connect_args={"check_same_thread": False})
    event.listen(engine, "connect", _on_connect(_sql_trace_enabled()))
    return engine


def initialize_db(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)
