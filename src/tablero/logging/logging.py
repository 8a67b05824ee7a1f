# tablero/logging/logging.py
import logging
import os
import sys
from pathlib import Path

from .config import load_log_level

DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Names of loggers that already carry our handlers
_CONFIGURED = set()


def resolve_log_dir(override=None):
    if override is not None:
        return Path(override)
    raw = (os.environ.get("TABLERO_LOG_DIR") or "").strip()
    return Path(raw).expanduser() if raw else Path.home() / ".tablero" / "logs"


def log_file_path(log_file=None, directory=None):
    """Where ``get_logger`` writes: ``log_file`` or ``<log dir>/tablero.log``."""

    if log_file is not None:
        return Path(log_file)
    return resolve_log_dir(directory) / "tablero.log"


def _short_name(name):
    """``/srv/app/src/tablero/assistant/driver.py`` -> ``tablero.assistant.driver``."""

    if not name or os.sep not in str(name):
        return name
    parts = Path(name).with_suffix("").parts
    if "tablero" not in parts:
        return Path(name).stem
    start = len(parts) - 1 - parts[::-1].index("tablero")
    return ".".join(parts[start:])


def _handlers(log_file, console, formatter, filemode):
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handlers = [logging.FileHandler(log_file, mode=filemode, encoding="utf-8")]
    if console:
        handlers.append(logging.StreamHandler(sys.stderr))
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def get_logger(
    name="tablero",
    level=None,
    log_file=None,
    log_dir=None,
    console=True,
    filemode="a",
    fmt=DEFAULT_FORMAT,
    datefmt=DEFAULT_DATEFMT,
    propagate=False,
):
    """Return a configured logger, wiring handlers on first use only.

    ``name`` may be a module ``__file__``; it is shortened to a dotted name.
    Without an explicit ``level`` the persisted level (``tablero logging
    set-level``) applies, falling back to INFO.  Output goes to
    ``<TABLERO_LOG_DIR>/tablero.log`` and, with ``console``, to stderr.
    """

    name = _short_name(name)
    logger = logging.getLogger(name)
    if name in _CONFIGURED:
        return logger

    logger.setLevel(level if level is not None else (load_log_level() or logging.INFO))
    logger.propagate = propagate
    formatter = logging.Formatter(fmt=fmt, datefmt=datefmt)
    for handler in _handlers(log_file_path(log_file, log_dir), console, formatter, filemode):
        logger.addHandler(handler)
    _CONFIGURED.add(name)
    return logger


def reset_logger(name=None):
    """Detach and close handlers so the next ``get_logger`` reconfigures.

    Without ``name`` every logger configured here is reset.
    """

    names = list(_CONFIGURED) if name is None else [_short_name(name)]
    for current in names:
        logger = logging.getLogger(current)
        while logger.handlers:
            handler = logger.handlers[0]
            logger.removeHandler(handler)
            handler.close()
        _CONFIGURED.discard(current)


def get_configured_level(name="tablero"):
    return logging.getLevelName(logging.getLogger(_short_name(name)).getEffectiveLevel())
