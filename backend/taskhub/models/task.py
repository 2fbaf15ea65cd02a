"""Task ORM — the record mutated by TaskService and read by the query builder.

Invariants:
    - id is UUID primary key, never reassigned after insert
    - status/priority always hold a TaskStatus/TaskPriority value (checked on assignment)
    - user_id references an existing user (checked by TaskService before flush)
    - version increments on every ORM flush that updates the row

Design Decisions:
    - status/priority stored as String(20): enum values are the storage format,
      no native DB enum to migrate when a member is added
    - version_id_col: a flush against a stale version raises StaleDataError,
      which the unit of work maps to ConflictError
    - user loaded with selectin: findOne needs the owner, and lazy loads are
      unavailable under AsyncSession
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates
from sqlalchemy.dialects.postgresql import UUID

from taskhub.core.domain_types import TaskStatus, TaskPriority
from taskhub.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Task(Base):
    """Task record owned by a single user."""
    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_status", "status"),
        Index("ix_tasks_user_id", "user_id"),
        Index("ix_tasks_created_at", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TaskStatus.PENDING.value,
    )
    priority: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TaskPriority.MEDIUM.value,
    )
    due_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
        default=_utcnow, onupdate=_utcnow,
    )

    user: Mapped["User"] = relationship(
        "User", back_populates="tasks", lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @validates("status")
    def _validate_status(self, key: str, value: str | TaskStatus) -> str:
        return TaskStatus(value).value

    @validates("priority")
    def _validate_priority(self, key: str, value: str | TaskPriority) -> str:
        return TaskPriority(value).value
