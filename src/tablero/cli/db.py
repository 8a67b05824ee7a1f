"""``tablero db`` subcommands.

Schema changes go through Alembic (``upgrade``/``downgrade``); ``init`` only
creates missing tables, which is enough for a fresh development database.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from alembic import command
from alembic.config import Config
from rich.console import Console
from rich.table import Table

from tablero.db import operations
from tablero.db.connect import get_session
from tablero.db.models import AuthUser
from tablero.db.seed import seed_demo_data
from tablero.logging import get_logger

logger = get_logger(__file__)


def register_subcommands(subparsers):
    """Attach database subcommands to an ``argparse`` parser.

    >>> import argparse
    >>> parser = argparse.ArgumentParser(prog="tablero db")
    >>> register_subcommands(parser.add_subparsers(dest="subcommand", required=True))
    >>> parser.parse_args(["seed", "--seed", "3"]).seed
    3
    """

    init_parser = subparsers.add_parser("init", help="Create missing tables")
    init_parser.add_argument("--file", required=False, help="SQLite file (default: TABLERO_DB_PATH)")

    subparsers.add_parser("status", help="SQLite version and row counts")
    subparsers.add_parser("show", help="Describe every table and column")

    seed_parser = subparsers.add_parser("seed", help="Insert demo members, projects and tasks")
    seed_parser.add_argument("--members", type=int, default=6)
    seed_parser.add_argument("--projects", type=int, default=4)
    seed_parser.add_argument("--tasks-per-project", type=int, default=5)
    seed_parser.add_argument("--seed", type=int, default=None, help="Random seed for repeatable data")

    for action, default, help_text in (
        ("upgrade", "head", "Apply Alembic migrations up to a revision"),
        ("downgrade", "-1", "Revert Alembic migrations"),
    ):
        migrate_parser = subparsers.add_parser(action, help=help_text)
        migrate_parser.add_argument("revision", nargs="?", default=default)
        migrate_parser.add_argument("--database", help="Database URL or filesystem path")


def _counts_table(counts: Mapping[str, int], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Table", style="bold cyan")
    table.add_column("Rows", justify="right", style="green")
    for name, count in counts.items():
        table.add_row(name, str(count))
    return table


def _schema_table(definitions: Mapping[str, list[dict[str, Any]]]) -> Table:
    table = Table(title="Tablero schema", show_lines=False)
    for heading, style in (("Table", "bold cyan"), ("Column", "magenta"), ("Type", "green"), ("Null", "yellow")):
        table.add_column(heading, style=style)
    table.add_column("Default", style="bright_black")

    if not definitions:
        table.add_row("[dim]no tables[/dim]", "", "", "", "")
    for name in sorted(definitions):
        for position, column in enumerate(definitions[name]):
            default = column.get("default")
            table.add_row(
                name if position == 0 else "",
                column["name"],
                column["type"],
                "yes" if column["nullable"] else "no",
                "" if default is None else str(default),
                end_section=position == len(definitions[name]) - 1,
            )
    return table


def _status(args, console: Console) -> None:
    version = operations.check_status()
    console.print(_counts_table(operations.row_counts(), f"Tablero rows (SQLite {version or '?'})"))


def _show(args, console: Console) -> None:
    console.print(_schema_table(operations.show_tables()))


def _init(args, console: Console) -> None:
    print(operations.initialize(file_path=args.file))


def _seed(args, console: Console) -> None:
    with get_session() as session:
        # Members for existing accounts make "my tasks" non-empty right away.
        emails = [email for (email,) in session.query(AuthUser.email).all()]
        counts = seed_demo_data(
            session,
            members=args.members,
            projects=args.projects,
            tasks_per_project=args.tasks_per_project,
            seed=args.seed,
            extra_member_emails=emails,
        )
    console.print(_counts_table(counts, "Seeded rows"))


def _migrate(args, console: Console) -> None:
    config = alembic_config(args.database)
    logger.info("alembic %s -> %s", args.subcommand, args.revision)
    getattr(command, args.subcommand)(config, args.revision)


_HANDLERS = {
    "status": _status,
    "show": _show,
    "init": _init,
    "seed": _seed,
    "upgrade": _migrate,
    "downgrade": _migrate,
}


def dispatch(args):
    try:
        handler = _HANDLERS[args.subcommand]
    except KeyError as exc:
        raise ValueError(f"No handler for db subcommand: {args.subcommand}") from exc
    handler(args, Console())
    return 0


def _project_root() -> Path:
    here = Path(__file__).resolve()
    for candidate in here.parents:
        if (candidate / "alembic" / "env.py").is_file():
            return candidate
    raise FileNotFoundError(f"No alembic/ directory above {here}")


def _database_url(database: str | None) -> str | None:
    value = (database or "").strip()
    if not value:
        return None
    return value if "://" in value else f"sqlite:///{Path(value).expanduser()}"


def alembic_config(database: str | None = None) -> Config:
    """Alembic config rooted at the checkout; ``database`` overrides the URL.

    Without a URL, ``alembic/env.py`` resolves ``TABLERO_DB_PATH`` itself.
    """

    root = _project_root()
    ini = root / "alembic.ini"
    config = Config(str(ini)) if ini.is_file() else Config()
    config.set_main_option("script_location", str(root / "alembic"))
    config.set_main_option("sqlalchemy.url", _database_url(database) or "")
    return config
