# Shared SQLAlchemy base class and column helpers
import uuid
from datetime import datetime, UTC

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(UTC)


def new_uuid() -> str:
    return str(uuid.uuid4())


def uuid_pk():
    """Text UUID primary key, generated client side."""

    return mapped_column(String(36), primary_key=True, default=new_uuid)


def make_record_mixin(*, soft_delete: bool = True):
    """Build a mixin with ``created_at`` and (optionally) the ``habilita`` flag.

    ``habilita`` is the legacy soft-delete marker (1 = visible, 0 = hidden).
    """

    fields = {
        "created_at": mapped_column(DateTime, default=utcnow, index=True),
        "__annotations__": {"created_at": Mapped[datetime]},
    }
    if soft_delete:
        fields["habilita"] = mapped_column(Integer, default=1, server_default="1")
        fields["__annotations__"]["habilita"] = Mapped[int]
    return type("RecordMixin" if soft_delete else "CreatedMixin", (object,), fields)


class Base(DeclarativeBase):
    pass
