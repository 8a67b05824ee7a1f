"""``--env-file`` support: read ``KEY=value`` files into ``os.environ``.

Deploy scripts keep settings in ``.env`` files that are not exported to the
process environment; every CLI command can load them explicitly.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
import os
from pathlib import Path
import re

_FLAG = "--env-file"
_QUOTED = re.compile(r"""^(['"])(.*)\1$""", re.DOTALL)
# A "#" starts a comment only after whitespace and outside quotes.
_COMMENT = re.compile(r"""\s+#(?=(?:[^'"]|'[^']*'|"[^"]*")*$).*$""")


def extract_env_files(argv: Sequence[str]) -> tuple[list[str], list[str]]:
    """Split ``--env-file PATH`` / ``--env-file=PATH`` out of ``argv``."""

    files: list[str] = []
    rest: list[str] = []
    tokens = iter(argv)
    for token in tokens:
        if token == _FLAG:
            path = next(tokens, None)
            if path is None:
                raise SystemExit(f"{_FLAG} requires a file path")
            files.append(path)
        elif token.startswith(_FLAG + "="):
            files.append(token.partition("=")[2])
        else:
            rest.append(token)
    return files, rest


def _parse_line(line: str) -> tuple[str, str] | None:
    line = line.strip()
    if line.startswith("export "):
        line = line[7:]
    key, sep, value = line.partition("=")
    key = key.strip()
    if not sep or not key or key.startswith("#"):
        return None
    value = value.strip()
    quoted = _QUOTED.match(value)
    return key, quoted.group(2) if quoted else _COMMENT.sub("", value)


def parse_env_file_text(text: str) -> dict[str, str]:
    pairs = (_parse_line(line) for line in text.splitlines())
    return dict(pair for pair in pairs if pair is not None)


def load_env_file(path: str | Path, *, override: bool = True) -> dict[str, str]:
    source = Path(path).expanduser()
    if not source.is_file():
        raise SystemExit(f"{_FLAG} does not exist: {source}")
    values = parse_env_file_text(source.read_text(encoding="utf-8"))
    for key, value in values.items():
        if override:
            os.environ[key] = value
        else:
            os.environ.setdefault(key, value)
    return values


def load_env_files(paths: Iterable[str | Path], *, override: bool = True) -> dict[str, str]:
    """Load several files in order; later files win."""

    merged: dict[str, str] = {}
    for path in paths:
        merged.update(load_env_file(path, override=override))
    return merged
