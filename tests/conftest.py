import os
import sys
from pathlib import Path

import pytest

# Ensure the src directory is on the path for imports
root = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(root / "src"))

log_dir = root / "logs"
log_dir.mkdir(parents=True, exist_ok=True)
os.environ.setdefault("TABLERO_LOG_DIR", str(log_dir))
os.environ.setdefault("TABLERO_LOG_CONFIG", str(log_dir / "logging.json"))
os.environ.setdefault("TABLERO_DB_DIR", str(root / ".test-db"))

from tablero.db.connect import make_session_factory  # noqa: E402
from tablero.db.models import initialize_db, sqlite_engine  # noqa: E402


@pytest.fixture
def session_factory(tmp_path):
    """Commit-or-rollback factory over a throwaway SQLite file."""

    engine = sqlite_engine(f"sqlite:///{tmp_path}/test.db")
    initialize_db(engine)
    return make_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    with session_factory() as session:
        yield session
