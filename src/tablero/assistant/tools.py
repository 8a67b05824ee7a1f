from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
import json
from typing import Any, Callable
import uuid

from pydantic import BaseModel, ConfigDict, ValidationError
from sqlalchemy.exc import MultipleResultsFound
from sqlalchemy.orm import Query, Session, joinedload, selectinload

from tablero.db.models import Member, Project, Task, TaskAssignee, TaskStatus
from tablero.logging import get_logger

logger = get_logger(__file__)


class ToolExecutionError(RuntimeError):
    """A tool could not produce a result (bad lookup, store failure...)."""


@dataclass(frozen=True)
class Caller:
    """Snapshot of the authenticated account, safe to hand to worker threads."""

    user_id: str
    email: str | None


@dataclass(frozen=True)
class ToolContext:
    db: Session
    caller: Caller


_PENDING_ALIASES = {"pendiente", "pending"}
_STATUS_SYNONYMS = {
    "in_progress": TaskStatus.IN_PROGRESS,
    "completed": TaskStatus.DONE,
    "cancelled": TaskStatus.CANCELLED,
}


def status_filter_values(status: str | None) -> list[str] | None:
    """Map a user/model supplied status onto stored status labels.

    ``None`` means "do not filter". Pending is split across the legacy
    ``Pendiente`` label and ``Sin empezar``, so it expands to both.
    """

    if not status:
        return None
    normalized = str(status).strip().lower()
    if normalized in _PENDING_ALIASES:
        return [TaskStatus.PENDING, TaskStatus.NOT_STARTED]
    mapped = _STATUS_SYNONYMS.get(normalized)
    if mapped is not None:
        return [mapped]
    return [status]


def assigned_to_label(names: list[str | None]) -> str | None:
    """De-duplicated, comma-joined assignee names (first seen wins)."""

    seen: list[str] = []
    for name in names:
        if not isinstance(name, str) or not name.strip():
            continue
        if name not in seen:
            seen.append(name)
    return ", ".join(seen) or None


def _json_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _row_to_dict(row: Any) -> dict[str, Any]:
    return {col.name: _json_value(getattr(row, col.key)) for col in row.__table__.columns}


def task_payload(task: Task) -> dict[str, Any]:
    payload = _row_to_dict(task)
    payload["project_title"] = task.project.title if task.project is not None else None
    payload["assigned_to"] = assigned_to_label([a.assignee_name for a in task.assignees])
    return payload


def _member_for_caller(db: Session, caller: Caller) -> Member | None:
    # Accounts and members are linked only by exact email equality.
    if not caller.email:
        return None
    try:
        return db.query(Member).filter(Member.email == caller.email).one_or_none()
    except MultipleResultsFound as exc:
        raise ToolExecutionError(f"More than one member uses the email {caller.email}.") from exc


def _assigned_task_ids(db: Session, caller: Caller) -> list[str]:
    member = _member_for_caller(db, caller)
    if member is None:
        return []
    rows = db.query(TaskAssignee.task_id).filter(TaskAssignee.member_id == member.id).all()
    return [task_id for (task_id,) in rows if task_id]


def _task_query(db: Session) -> Query:
    return db.query(Task).options(joinedload(Task.project), selectinload(Task.assignees))


def _apply_status(query: Query, status: str | None) -> Query:
    values = status_filter_values(status)
    if values is None:
        return query
    if len(values) == 1:
        return query.filter(Task.status == values[0])
    return query.filter(Task.status.in_(values))


def _finish_tasks(query: Query) -> list[dict[str, Any]]:
    tasks = query.order_by(Task.created_at.desc()).all()
    return [task_payload(task) for task in tasks]


class _ToolInput(BaseModel):
    model_config = ConfigDict(extra="forbid")


class NoArgs(_ToolInput):
    pass


class MyTasksArgs(_ToolInput):
    status: str | None = None


class TasksArgs(_ToolInput):
    project_id: uuid.UUID | None = None
    status: str | None = None
    member_id: uuid.UUID | None = None
    assignee_name: str | None = None
    assigned_to_me: bool | None = None


def get_my_tasks(args: MyTasksArgs, ctx: ToolContext) -> list[dict[str, Any]]:
    task_ids = _assigned_task_ids(ctx.db, ctx.caller)
    if not task_ids:
        return []
    query = _task_query(ctx.db).filter(Task.id.in_(task_ids))
    return _finish_tasks(_apply_status(query, args.status))


def get_members(args: NoArgs, ctx: ToolContext) -> list[dict[str, Any]]:
    members = ctx.db.query(Member).order_by(Member.full_name.asc()).all()
    return [_row_to_dict(member) for member in members]


def get_projects(args: NoArgs, ctx: ToolContext) -> list[dict[str, Any]]:
    projects = ctx.db.query(Project).order_by(Project.created_at.desc()).all()
    return [_row_to_dict(project) for project in projects]


def get_tasks(args: TasksArgs, ctx: ToolContext) -> list[dict[str, Any]]:
    query = _task_query(ctx.db)

    if args.project_id is not None:
        query = query.filter(Task.project_id == str(args.project_id))

    query = _apply_status(query, args.status)

    if args.member_id is not None:
        query = query.filter(Task.assignees.any(TaskAssignee.member_id == str(args.member_id)))

    if args.assigned_to_me:
        task_ids = _assigned_task_ids(ctx.db, ctx.caller)
        if not task_ids:
            return []
        query = query.filter(Task.id.in_(task_ids))

    if args.assignee_name:
        pattern = f"%{args.assignee_name}%"
        query = query.filter(Task.assignees.any(TaskAssignee.assignee_name.ilike(pattern)))

    return _finish_tasks(query)


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_model: type[_ToolInput]
    handler: Callable[[Any, ToolContext], list[dict[str, Any]]]
    properties: dict[str, Any]

    def openai_spec(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": dict(self.properties),
                    "required": [],
                    "additionalProperties": False,
                },
            },
        }


TOOLS: dict[str, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            name="get_my_tasks",
            description=(
                "Obtener tareas asignadas al usuario actual (en sesión). Puedes filtrar por status: "
                '"Pendiente" (incluye "Pendiente" y "Sin empezar"), "En desarrollo", "Terminada", etc.'
            ),
            input_model=MyTasksArgs,
            handler=get_my_tasks,
            properties={"status": {"type": "string"}},
        ),
        ToolSpec(
            name="get_members",
            description="Listar miembros del equipo (id, nombre, email)",
            input_model=NoArgs,
            handler=get_members,
            properties={},
        ),
        ToolSpec(
            name="get_projects",
            description="Listar los proyectos a los que el usuario tiene acceso",
            input_model=NoArgs,
            handler=get_projects,
            properties={},
        ),
        ToolSpec(
            name="get_tasks",
            description=(
                "Obtener tareas. Puede filtrar por project_id, status, member_id, assignee_name "
                "(nombre del asignado) o assigned_to_me (tareas asignadas al usuario actual)."
            ),
            input_model=TasksArgs,
            handler=get_tasks,
            properties={
                "project_id": {"type": "string", "format": "uuid"},
                "status": {"type": "string"},
                "member_id": {"type": "string", "format": "uuid"},
                "assignee_name": {"type": "string"},
                "assigned_to_me": {"type": "boolean"},
            },
        ),
    )
}


def openai_tools() -> list[dict[str, Any]]:
    """Return OpenAI-compatible tool schemas for every registered tool."""

    return [spec.openai_spec() for spec in TOOLS.values()]


def parse_tool_arguments(raw: str | None) -> dict[str, Any]:
    """Decode the JSON argument string of a tool call.

    Raises ``ValueError`` when the text is not a JSON object.
    """

    text = (raw or "").strip()
    if not text:
        return {}
    parsed = json.loads(text)
    if not isinstance(parsed, dict):
        raise ValueError("Tool arguments must be a JSON object.")
    return parsed


def _validation_message(exc: ValidationError) -> str:
    problems = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "arguments"
        problems.append(f"{loc}: {err.get('msg')}")
    return "Invalid arguments: " + "; ".join(problems)


def run_tool(
    *,
    name: str,
    args: dict[str, Any],
    db: Session,
    caller: Caller,
) -> dict[str, Any]:
    """Execute a registered tool and wrap the outcome in an ok/error envelope."""

    spec = TOOLS.get(name)
    if spec is None:
        return {"ok": False, "tool": name, "error": f"Unknown tool: {name}"}

    try:
        params = spec.input_model.model_validate(args or {})
    except ValidationError as exc:
        return {"ok": False, "tool": name, "error": _validation_message(exc)}

    try:
        result = spec.handler(params, ToolContext(db=db, caller=caller))
    except Exception as exc:
        logger.exception("tool %s failed", name)
        return {
            "ok": False,
            "tool": name,
            "error": f"{type(exc).__name__}: {exc}",
        }
    return {"ok": True, "tool": name, "result": result}


def format_tool_result_message(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)
