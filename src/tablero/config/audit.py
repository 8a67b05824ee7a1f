"""Validate the process environment against :func:`default_contract`.

``tablero env check`` renders the report; ``tablero env template`` writes a
starting ``.env`` from the same contract so the two never drift apart.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
import json
import os
from pathlib import Path
from typing import Any, Callable, Mapping

from tablero.config.contract import Profile, VarSpec, default_contract

_BOOL_WORDS = {"1", "true", "yes", "y", "on", "0", "false", "no", "n", "off"}

# Read when the primary key is unset.
_FALLBACK_KEYS = {"TABLERO_OPENAI_API_KEY": "OPENAI_API_KEY"}


def _clean(value: str | None) -> str | None:
    return (value or "").strip() or None


def _check_bool(spec: VarSpec, value: str) -> list[str]:
    if value.lower() in _BOOL_WORDS:
        return []
    return ["Must be a boolean-ish value (1/0/true/false/yes/no)."]


def _check_number(parse: Callable[[str], float], message: str) -> Callable[[VarSpec, str], list[str]]:
    def check(spec: VarSpec, value: str) -> list[str]:
        try:
            number = parse(value)
        except ValueError:
            return [message]
        problems = []
        if spec.min_value is not None and number < spec.min_value:
            problems.append(f"Must be >= {spec.min_value}.")
        if spec.max_value is not None and number > spec.max_value:
            problems.append(f"Must be <= {spec.max_value}.")
        return problems

    return check


def _check_text(spec: VarSpec, value: str) -> list[str]:
    problems = []
    if spec.min_length is not None and len(value) < spec.min_length:
        problems.append(f"Must be at least {spec.min_length} characters.")
    if spec.choices and value not in spec.choices:
        problems.append(f"Must be one of: {', '.join(spec.choices)}.")
    if spec.kind == "url" and not value.startswith(("http://", "https://")):
        problems.append("Must start with http:// or https://")
    if spec.kind == "path" and "://" in value and not value.startswith("sqlite"):
        problems.append("Expected a filesystem path or sqlite:/// URI.")
    return problems


_CHECKS: dict[str, Callable[[VarSpec, str], list[str]]] = {
    "bool": _check_bool,
    "int": _check_number(int, "Must be an integer."),
    "float": _check_number(float, "Must be a number."),
}


def _problems(spec: VarSpec, value: str | None) -> list[str]:
    if value is None:
        return []
    placeholder = [f"Value is a placeholder/insecure default ({value!r})."] if value in spec.forbid_values else []
    return placeholder + _CHECKS.get(spec.kind, _check_text)(spec, value)


def _is_required(spec: VarSpec, env: Mapping[str, str], profile: Profile) -> bool:
    if profile in spec.required_for:
        return True
    condition = spec.required_if
    return condition is not None and _clean(env.get(condition.key)) == condition.equals


@dataclass(frozen=True)
class VarAudit:
    key: str
    group: str
    required: bool
    present: bool
    value: str | None
    default: str | None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    secret: bool = False

    def redacted_value(self) -> str | None:
        if self.secret and self.value is not None:
            return "<set>"
        return self.value


@dataclass(frozen=True)
class AuditReport:
    profile: Profile
    vars: list[VarAudit]

    @property
    def errors(self) -> int:
        return sum(1 for item in self.vars if item.errors)

    @property
    def warnings(self) -> int:
        return sum(1 for item in self.vars if item.warnings)

    @property
    def ok(self) -> bool:
        return self.errors == 0

    def to_json(self, *, reveal_secrets: bool = False) -> str:
        entries: list[dict[str, Any]] = []
        for item in self.vars:
            entry = asdict(item)
            if not reveal_secrets:
                entry["value"] = item.redacted_value()
            entries.append(entry)
        payload = {
            "profile": self.profile,
            "ok": self.ok,
            "errors": self.errors,
            "warnings": self.warnings,
            "vars": entries,
        }
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def _audit_var(spec: VarSpec, env: Mapping[str, str], profile: Profile) -> VarAudit:
    raw = env.get(spec.key)
    if raw is None and spec.key in _FALLBACK_KEYS:
        raw = env.get(_FALLBACK_KEYS[spec.key])
    value = _clean(raw)
    required = _is_required(spec, env, profile)

    errors = _problems(spec, value)
    warnings: list[str] = []
    if value is None:
        if required:
            errors.append("Missing required value.")
        elif profile in spec.recommended_for:
            warnings.append("Missing recommended value.")
    elif spec.kind == "path" and not value.startswith("sqlite") and not Path(value).is_absolute():
        warnings.append("Relative path; prefer absolute in production.")

    return VarAudit(
        key=spec.key,
        group=spec.group,
        required=required,
        present=value is not None,
        value=value,
        default=spec.default_for(profile),
        errors=errors,
        warnings=warnings,
        secret=spec.secret,
    )


def audit_environment(
    env: Mapping[str, str] | None = None,
    *,
    profile: Profile = "dev",
    contract: tuple[VarSpec, ...] | None = None,
) -> AuditReport:
    """Check every contract variable in ``env`` (default: ``os.environ``)."""

    env = dict(os.environ) if env is None else env
    items = [_audit_var(spec, env, profile) for spec in contract or default_contract()]

    # The API key would travel in clear text to a non-TLS provider.
    provider = _clean(env.get("TABLERO_ASSISTANT_PROVIDER"))
    url = _clean(env.get("TABLERO_OPENAI_URL")) or ""
    if profile == "prod" and provider == "openai" and url.startswith("http://"):
        for item in items:
            if item.key == "TABLERO_OPENAI_URL":
                item.warnings.append("Plain HTTP exposes the API key; use https:// in production.")

    return AuditReport(profile=profile, vars=items)


def _format_env_value(value: str) -> str:
    if any(ch.isspace() for ch in value) or "#" in value:
        return '"' + value.replace('"', '\\"') + '"'
    return value


def render_env_template(
    *,
    profile: Profile,
    contract: tuple[VarSpec, ...] | None = None,
) -> str:
    """Render a commented ``KEY=value`` file with the profile defaults."""

    groups: dict[str, list[VarSpec]] = {}
    for spec in contract or default_contract():
        groups.setdefault(spec.group, []).append(spec)

    sections = [f"# tablero env ({profile})"]
    for group, specs in groups.items():
        lines = [f"# {group}"]
        for spec in specs:
            lines.append(f"# {spec.description}")
            lines.append(f"{spec.key}={_format_env_value(spec.default_for(profile) or '')}")
        sections.append("\n".join(lines))
    return "\n\n".join(sections) + "\n"
