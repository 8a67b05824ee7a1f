"""Migration runner for the dashboard database.

The target database is, in order: a connection or engine handed over in
``config.attributes["connection"]`` (tests), ``sqlalchemy.url`` (set by
``tablero db upgrade --database``), ``TABLERO_DB_PATH``, the default file.
"""

from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import create_engine, pool
from sqlalchemy.engine import Connection, Engine

from tablero.db.connect import get_db_path
from tablero.db.models import Base

config = context.config

if config.config_file_name and Path(config.config_file_name).exists():
    fileConfig(config.config_file_name, disable_existing_loggers=False)

# SQLite needs batch mode for ALTER TABLE.
OPTIONS = {"target_metadata": Base.metadata, "compare_type": True, "render_as_batch": True}


def _url() -> str:
    return config.get_main_option("sqlalchemy.url") or get_db_path()


def _migrate(**kwargs) -> None:
    context.configure(**OPTIONS, **kwargs)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    _migrate(url=_url(), literal_binds=True)


def run_migrations_online() -> None:
    handed = config.attributes.get("connection")
    if isinstance(handed, Connection):
        _migrate(connection=handed)
        return

    engine = handed if isinstance(handed, Engine) else create_engine(_url(), poolclass=pool.NullPool)
    with engine.begin() as connection:
        _migrate(connection=connection)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
