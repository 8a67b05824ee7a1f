from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, make_record_mixin, uuid_pk

Record = make_record_mixin()
Created = make_record_mixin(soft_delete=False)


class TaskStatus:
    """Status labels stored on tasks, as shown in the dashboard."""

    NOT_STARTED = "Sin empezar"
    PENDING = "Pendiente"  # legacy label, still present on older rows
    IN_PROGRESS = "En desarrollo"
    DONE = "Terminada"
    CANCELLED = "Cancelada"


class Member(Record, Base):
    __tablename__ = "members"

    id: Mapped[str] = uuid_pk()
    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)

    assignments: Mapped[list["TaskAssignee"]] = relationship(back_populates="member")


class Project(Record, Base):
    __tablename__ = "projects"

    id: Mapped[str] = uuid_pk()
    title: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    link: Mapped[str | None] = mapped_column(Text, nullable=True)

    tasks: Mapped[list["Task"]] = relationship(back_populates="project")


class Task(Record, Base):
    __tablename__ = "tasks"

    id: Mapped[str] = uuid_pk()
    title: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, default=TaskStatus.NOT_STARTED)
    project_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    area: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str | None] = mapped_column(Text, nullable=True)
    deadline: Mapped[date | None] = mapped_column(Date, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completion_analysis: Mapped[str | None] = mapped_column(Text, nullable=True)
    upload_link: Mapped[str | None] = mapped_column(Text, nullable=True)

    project: Mapped[Project | None] = relationship(back_populates="tasks")
    assignees: Mapped[list["TaskAssignee"]] = relationship(
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="TaskAssignee.created_at",
    )


class TaskAssignee(Created, Base):
    __tablename__ = "task_assignees"

    id: Mapped[str] = uuid_pk()
    task_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Null for name-only assignments (people without a member row).
    member_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("members.id", ondelete="SET NULL"), nullable=True, index=True
    )
    assignee_name: Mapped[str | None] = mapped_column(Text, nullable=True)

    task: Mapped[Task] = relationship(back_populates="assignees")
    member: Mapped[Member | None] = relationship(back_populates="assignments")


class DailyNote(Record, Base):
    __tablename__ = "daily_notes"

    id: Mapped[str] = uuid_pk()
    content: Mapped[str] = mapped_column(Text, nullable=False)
    done: Mapped[bool] = mapped_column(Boolean, default=False)
    created_by: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("auth_user.id", ondelete="SET NULL"), nullable=True
    )
