"""``tablero users`` subcommands: provision login accounts from the shell."""

from __future__ import annotations

import getpass

from rich.console import Console
from rich.table import Table

from tablero.api.security import new_account
from tablero.db.connect import get_session
from tablero.db.models import AuthUser, UserRole
from tablero.logging import get_logger

logger = get_logger(__file__)


def register_subcommands(subparsers):
    create_parser = subparsers.add_parser("create", help="Create a login account")
    create_parser.add_argument("email")
    create_parser.add_argument("--full-name", default=None)
    create_parser.add_argument("--role", choices=[r.value for r in UserRole], default=UserRole.common.value)
    create_parser.add_argument("--password", default=None, help="Prompted for when omitted")

    subparsers.add_parser("list", help="List login accounts")


def create_user(*, email: str, password: str, full_name: str | None, role: UserRole) -> AuthUser:
    if len(password) < 8:
        raise SystemExit("password must be at least 8 characters")
    with get_session() as session:
        if session.query(AuthUser).filter(AuthUser.email == email).first() is not None:
            raise SystemExit(f"an account for {email} already exists")
        user = new_account(email=email, password=password, full_name=full_name, role=role)
        session.add(user)
    logger.info("created account %s (%s)", email, role.value)
    return user


def _create(args):
    user = create_user(
        email=args.email.strip(),
        password=args.password or getpass.getpass("Password: "),
        full_name=args.full_name,
        role=UserRole(args.role),
    )
    print(f"created {user.email} ({user.role.value})")


def _list(args):
    table = Table(title="Accounts")
    table.add_column("Email", style="bold cyan")
    table.add_column("Name")
    table.add_column("Role", style="magenta")
    table.add_column("Active", justify="center")
    with get_session() as session:
        for user in session.query(AuthUser).order_by(AuthUser.email).all():
            table.add_row(user.email, user.full_name or "", user.role.value, "yes" if user.is_active else "no")
    Console().print(table)


_HANDLERS = {"create": _create, "list": _list}


def dispatch(args):
    try:
        handler = _HANDLERS[args.subcommand]
    except KeyError as exc:
        raise ValueError(f"No handler for users subcommand: {args.subcommand}") from exc
    handler(args)
    return 0
