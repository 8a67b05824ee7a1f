"""Maintenance helpers behind the ``tablero db`` commands."""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, inspect, select, text

from tablero.db.connect import get_db_path, get_engine, get_session
from tablero.db.models import Base
from tablero.logging import get_logger

logger = get_logger(__file__)


def check_status(file_path: str | None = None) -> str | None:
    """Query the database for its SQLite version and log/return it."""

    logger.info("checking db status...")
    with get_session(file_path) as session:
        result = session.execute(text("SELECT sqlite_version();")).fetchone()
    if result:
        logger.info("sqlite version: %s", result[0])
        return result[0]
    logger.warning("sqlite version query returned no result")
    return None


def show_tables(file_path: str | None = None) -> dict[str, list[dict[str, Any]]]:
    """Return table -> column metadata (``name``, ``type``, ``nullable``, ``default``)."""

    with get_session(file_path) as session:
        inspector = inspect(session.bind)
        table_definitions: dict[str, list[dict[str, Any]]] = {}
        for table_name in sorted(inspector.get_table_names()):
            table_definitions[table_name] = [
                {
                    "name": column.get("name", ""),
                    "type": str(column.get("type", "")),
                    "nullable": bool(column.get("nullable", True)),
                    "default": column.get("default"),
                }
                for column in inspector.get_columns(table_name)
            ]
    return table_definitions


def row_counts(file_path: str | None = None) -> dict[str, int]:
    """Row count for every mapped table."""

    counts: dict[str, int] = {}
    with get_session(file_path) as session:
        for table in Base.metadata.sorted_tables:
            counts[table.name] = int(session.execute(select(func.count()).select_from(table)).scalar() or 0)
    return counts


def initialize(file_path: str | None = None) -> str:
    """Create every table in the target database and return its URI."""

    uri = get_db_path(file_path)
    get_engine(uri)
    logger.info("initialized %s", uri)
    return uri
