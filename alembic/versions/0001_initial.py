"""Dashboard schema: members, projects, tasks, assignees, notes and accounts."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels: tuple[str, ...] | None = None
depends_on: tuple[str, ...] | None = None


def _uuid_pk() -> sa.Column:
    return sa.Column("id", sa.String(36), primary_key=True)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(), nullable=False)


def _habilita() -> sa.Column:
    # Legacy soft-delete flag: 1 visible, 0 hidden.
    return sa.Column("habilita", sa.Integer(), nullable=False, server_default="1")


def _create(
    existing: set[str],
    name: str,
    *columns: sa.Column,
    indexed: tuple[str, ...] = (),
    unique: tuple[str, ...] = (),
) -> None:
    """Create ``name`` and its indexes unless ``tablero db init`` already did."""

    if name in existing:
        return
    op.create_table(name, *columns)
    for column in indexed + unique:
        op.create_index(op.f(f"ix_{name}_{column}"), name, [column], unique=column in unique)


def upgrade() -> None:
    existing = set(sa.inspect(op.get_bind()).get_table_names())

    _create(
        existing,
        "auth_user",
        _uuid_pk(),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("full_name", sa.Text(), nullable=True),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("password_salt", sa.Text(), nullable=False),
        sa.Column("password_iterations", sa.Integer(), nullable=False),
        sa.Column("role", sa.Enum("admin", "common", name="userrole"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _created_at(),
        indexed=("created_at",),
        unique=("email",),
    )

    _create(
        existing,
        "auth_session",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("auth_user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("token_hash", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        indexed=("user_id", "expires_at"),
        unique=("token_hash",),
    )

    _create(
        existing,
        "members",
        _uuid_pk(),
        sa.Column("full_name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        _created_at(),
        _habilita(),
        indexed=("email", "created_at"),
    )

    _create(
        existing,
        "projects",
        _uuid_pk(),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("link", sa.Text(), nullable=True),
        _created_at(),
        _habilita(),
        indexed=("created_at",),
    )

    _create(
        existing,
        "tasks",
        _uuid_pk(),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("project_id", sa.String(36), sa.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("area", sa.Text(), nullable=True),
        sa.Column("priority", sa.Text(), nullable=True),
        sa.Column("type", sa.Text(), nullable=True),
        sa.Column("deadline", sa.Date(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("completion_analysis", sa.Text(), nullable=True),
        sa.Column("upload_link", sa.Text(), nullable=True),
        _created_at(),
        _habilita(),
        indexed=("project_id", "created_at"),
    )

    _create(
        existing,
        "task_assignees",
        _uuid_pk(),
        sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("member_id", sa.String(36), sa.ForeignKey("members.id", ondelete="SET NULL"), nullable=True),
        sa.Column("assignee_name", sa.Text(), nullable=True),
        _created_at(),
        indexed=("task_id", "member_id", "created_at"),
    )

    _create(
        existing,
        "daily_notes",
        _uuid_pk(),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("done", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(36), sa.ForeignKey("auth_user.id", ondelete="SET NULL"), nullable=True),
        _created_at(),
        _habilita(),
        indexed=("created_at",),
    )


def downgrade() -> None:
    for table in ("daily_notes", "task_assignees", "tasks", "projects", "members", "auth_session", "auth_user"):
        op.drop_table(table)
