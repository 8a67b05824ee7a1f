# tablero/cli/main.py
import argparse
import sys

from tablero.cli import api, db, env as env_cli, logging as logging_cli, users
from tablero.cli.envfile import extract_env_files, load_env_files


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tablero", description="Tablero CLI toolkit")
    parser.add_argument(
        "--env-file",
        action="append",
        default=[],
        help="Load KEY=value lines into the environment first (repeatable).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    db_parser = subparsers.add_parser("db", help="Database operations")
    db.register_subcommands(db_parser.add_subparsers(dest="subcommand", required=True))

    api_parser = subparsers.add_parser("api", help="API server control")
    api.register_subcommands(api_parser.add_subparsers(dest="subcommand", required=True))

    users_parser = subparsers.add_parser("users", help="Login accounts")
    users.register_subcommands(users_parser.add_subparsers(dest="subcommand", required=True))

    logging_parser = subparsers.add_parser("logging", help="Logging utilities")
    logging_cli.register_subcommands(logging_parser.add_subparsers(dest="subcommand", required=True))

    env_parser = subparsers.add_parser("env", help="Environment configuration")
    env_cli.register_subcommands(env_parser.add_subparsers(dest="subcommand", required=True))

    return parser


_DISPATCH = {
    "db": db.dispatch,
    "api": api.dispatch,
    "users": users.dispatch,
    "logging": logging_cli.dispatch,
    "env": env_cli.dispatch,
}


def main(argv=None):
    # --env-file may appear after the subcommand, so strip it before argparse.
    env_files, remaining = extract_env_files(list(sys.argv[1:] if argv is None else argv))
    if env_files:
        load_env_files(env_files)

    args = build_parser().parse_args(remaining)
    return _DISPATCH[args.command](args)


if __name__ == "__main__":
    raise SystemExit(main())
