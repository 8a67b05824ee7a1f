"""``tablero logging`` subcommands: persist and inspect the log level."""

from tablero.logging import get_configured_level, get_logger, reset_logger
from tablero.logging.config import config_path, save_log_level
from tablero.logging.logging import log_file_path

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def register_subcommands(subparsers):
    set_level_parser = subparsers.add_parser("set-level", help="Persist the logging level")
    set_level_parser.add_argument("level", type=str.upper, choices=LEVELS)

    subparsers.add_parser("show-path", help="Show the log file and settings locations")
    subparsers.add_parser("show-level", help="Show the effective logging level")


def _set_level(args):
    path = save_log_level(args.level)
    # Reconfigure so this process picks the new level up too.
    reset_logger()
    get_logger()
    print(f"log level {args.level} saved to {path}")


def _show_path(args):
    print(f"log file: {log_file_path().resolve()}")
    print(f"settings: {config_path()}")


def _show_level(args):
    get_logger()
    print(get_configured_level())


_HANDLERS = {
    "set-level": _set_level,
    "show-path": _show_path,
    "show-level": _show_level,
}


def dispatch(args):
    try:
        handler = _HANDLERS[args.subcommand]
    except KeyError as exc:
        raise ValueError(f"No handler for logging subcommand: {args.subcommand}") from exc
    handler(args)
    return 0
