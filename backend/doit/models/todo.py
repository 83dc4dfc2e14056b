"""Todo model: a task record owned by a user."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Boolean, DateTime, Float, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from doit.core.database import Base

PRIORITIES = ("low", "medium", "high")
STATUSES = ("todo", "in_progress", "done")


class Todo(Base):
    __tablename__ = "todos"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    priority: Mapped[str] = mapped_column(String(20), default="medium")  # low, medium, high
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    estimated_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
    tags: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON encoded list
    calendar_linked: Mapped[bool] = mapped_column(Boolean, default=False)
    email_source: Mapped[str | None] = mapped_column(String(500), nullable=True)  # Gmail thread id
    status: Mapped[str | None] = mapped_column(String(20), default="todo")  # todo, in_progress, done
    user_email: Mapped[str | None] = mapped_column(String(320), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_todos_user_email_source", "user_email", "email_source"),
    )
