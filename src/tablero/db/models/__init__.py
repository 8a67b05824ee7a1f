# Models package: split into domain modules, re-exported here
from .base import Base, make_record_mixin, new_uuid, utcnow
from .core import DailyNote, Member, Project, Task, TaskAssignee, TaskStatus
from .auth import AuthSession, AuthUser, UserRole
from .engine import sqlite_engine, initialize_db

__all__ = [
    "Base",
    "make_record_mixin",
    "new_uuid",
    "utcnow",
    "Member",
    "Project",
    "Task",
    "TaskAssignee",
    "TaskStatus",
    "DailyNote",
    "AuthUser",
    "AuthSession",
    "UserRole",
    "sqlite_engine",
    "initialize_db",
]
