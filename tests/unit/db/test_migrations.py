"""Tests that exercise Alembic migrations end-to-end."""

from __future__ import annotations

import pytest
from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import inspect, text
from sqlalchemy.exc import IntegrityError

from tablero.cli.db import alembic_config
from tablero.db.models import Base, sqlite_engine


@pytest.fixture(scope="function")
def engine(tmp_path):
    engine = sqlite_engine(f"sqlite:///{tmp_path}/migrations.db")
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture(scope="function")
def alembic_cfg(engine) -> Config:
    config = alembic_config()
    config.attributes["connection"] = engine
    return config


def test_single_head(alembic_cfg: Config) -> None:
    script = ScriptDirectory.from_config(alembic_cfg)
    heads = script.get_heads()
    assert len(heads) == 1, f"Multiple heads found: {heads}"


def test_upgrade_head_matches_models(alembic_cfg: Config, engine) -> None:
    command.upgrade(alembic_cfg, "head")

    tables = set(inspect(engine).get_table_names())
    model_tables = {table.name for table in Base.metadata.sorted_tables}
    assert model_tables <= tables
    assert "alembic_version" in tables


def test_upgrade_is_idempotent_and_reversible(alembic_cfg: Config, engine) -> None:
    command.upgrade(alembic_cfg, "head")
    command.upgrade(alembic_cfg, "head")
    command.downgrade(alembic_cfg, "base")

    remaining = set(inspect(engine).get_table_names())
    assert not remaining & {"tasks", "members", "projects"}


def test_assignees_follow_their_task(alembic_cfg: Config, engine) -> None:
    command.upgrade(alembic_cfg, "head")

    stamp = "2024-05-01 12:00:00"
    with engine.begin() as conn:
        conn.execute(
            text(
                "INSERT INTO tasks (id, title, status, habilita, created_at) "
                "VALUES ('t1', 'Gacetilla', 'Sin empezar', 1, :stamp)"
            ),
            {"stamp": stamp},
        )
        conn.execute(
            text(
                "INSERT INTO task_assignees (id, task_id, assignee_name, created_at) "
                "VALUES ('a1', 't1', 'Lucía', :stamp)"
            ),
            {"stamp": stamp},
        )
        conn.execute(text("DELETE FROM tasks WHERE id = 't1'"))
        remaining = conn.execute(text("SELECT COUNT(*) FROM task_assignees")).scalar()
    assert remaining == 0

    with pytest.raises(IntegrityError):
        with engine.begin() as conn:
            conn.execute(
                text("INSERT INTO task_assignees (id, task_id, created_at) VALUES ('a2', 'missing', :stamp)"),
                {"stamp": stamp},
            )
