"""Environment variables understood by the dashboard backend."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Mapping

Profile = Literal["dev", "prod"]
VarKind = Literal["string", "bool", "int", "float", "path", "url", "csv"]

_PROD = frozenset({"prod"})


@dataclass(frozen=True)
class RequiredIf:
    """The variable becomes mandatory when ``key`` is set to ``equals``."""

    key: str
    equals: str


@dataclass(frozen=True)
class VarSpec:
    key: str
    kind: VarKind
    group: str
    description: str
    defaults: Mapping[Profile, str] = field(default_factory=dict)
    required_for: frozenset[Profile] = frozenset()
    recommended_for: frozenset[Profile] = frozenset()
    required_if: RequiredIf | None = None
    choices: tuple[str, ...] = ()
    secret: bool = False
    min_value: float | None = None
    max_value: float | None = None
    min_length: int | None = None
    forbid_values: tuple[str, ...] = ()

    def default_for(self, profile: Profile) -> str | None:
        return (self.defaults.get(profile) or "").strip() or None


def _both(value: str) -> dict[Profile, str]:
    return {"dev": value, "prod": value}


def _database_vars() -> list[VarSpec]:
    return [
        VarSpec(
            "TABLERO_DB_PATH",
            "path",
            "Database",
            "SQLite file or sqlite:/// URI (dev falls back to ~/.tablero/tablero.db).",
            defaults={"dev": "", "prod": "/var/lib/tablero/tablero.db"},
            recommended_for=_PROD,
        ),
    ]


def _logging_vars() -> list[VarSpec]:
    return [
        VarSpec("TABLERO_LOG_DIR", "path", "Logging", "Where tablero.log is written."),
        VarSpec(
            "TABLERO_SQL_TRACE",
            "bool",
            "Logging",
            "Echo SQL statements into the log.",
            defaults=_both("0"),
        ),
    ]


def _auth_vars() -> list[VarSpec]:
    return [
        VarSpec(
            "TABLERO_CORS_ORIGINS",
            "csv",
            "Security",
            "Browser origins allowed to call the API, comma separated.",
            defaults={"dev": "http://localhost:3000,http://127.0.0.1:3000", "prod": ""},
            recommended_for=_PROD,
        ),
        VarSpec(
            "TABLERO_PASSWORD_PEPPER",
            "string",
            "Auth",
            "Secret mixed into every password hash; changing it invalidates existing passwords.",
            required_for=_PROD,
            recommended_for=frozenset({"dev"}),
            secret=True,
            min_length=20,
            forbid_values=("change-me", "dev-change-me"),
        ),
        VarSpec(
            "TABLERO_PASSWORD_ITERATIONS",
            "int",
            "Auth",
            "PBKDF2 rounds for new password hashes.",
            defaults=_both("250000"),
            min_value=50_000,
        ),
        VarSpec(
            "TABLERO_SESSION_TTL_SECONDS",
            "int",
            "Auth",
            "How long a login stays valid.",
            defaults=_both("43200"),
            min_value=60,
        ),
        VarSpec(
            "TABLERO_SESSION_COOKIE_SECURE",
            "bool",
            "Auth",
            "Only send the session cookie over HTTPS.",
            defaults={"dev": "0", "prod": "1"},
            required_for=_PROD,
        ),
    ]


def _assistant_vars() -> list[VarSpec]:
    return [
        VarSpec(
            "TABLERO_ASSISTANT_PROVIDER",
            "string",
            "Assistant",
            "Backend for /api/chat: stub | openai",
            defaults={"dev": "stub", "prod": "openai"},
            choices=("stub", "openai"),
        ),
        VarSpec(
            "TABLERO_OPENAI_URL",
            "url",
            "Assistant",
            "OpenAI-compatible server hosting /v1/chat/completions.",
            defaults=_both("https://api.openai.com"),
        ),
        VarSpec("TABLERO_OPENAI_MODEL", "string", "Assistant", "Model name.", defaults=_both("gpt-4o-mini")),
        VarSpec(
            "TABLERO_OPENAI_API_KEY",
            "string",
            "Assistant",
            "Bearer token for the provider; OPENAI_API_KEY is read when unset.",
            required_if=RequiredIf("TABLERO_ASSISTANT_PROVIDER", "openai"),
            secret=True,
        ),
        VarSpec(
            "TABLERO_ASSISTANT_MAX_STEPS",
            "int",
            "Assistant",
            "Upper bound on model steps per request (1-6).",
            defaults=_both("6"),
            min_value=1,
            max_value=6,
        ),
        VarSpec(
            "TABLERO_ASSISTANT_DEADLINE_SECONDS",
            "int",
            "Assistant",
            "Wall-clock limit for a whole chat request.",
            defaults=_both("30"),
            min_value=1,
        ),
        VarSpec(
            "TABLERO_ASSISTANT_TEMPERATURE",
            "float",
            "Assistant",
            "Sampling temperature sent to the model (0-2).",
            min_value=0,
            max_value=2,
        ),
    ]


def default_contract() -> tuple[VarSpec, ...]:
    """Every variable read by the API server, the chat assistant and the CLI."""

    return tuple(_database_vars() + _logging_vars() + _auth_vars() + _assistant_vars())
