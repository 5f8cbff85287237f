"""
Declarative base & shared mixins for all models.

Every table gets:
- An integer primary key (assigned by the database, never changed).
- `created_at` / `updated_at` timestamps (UTC) and `created_by` /
  `updated_by` actors.

Timestamps are stamped explicitly by the service layer through
`stamp_created` / `touch` — there are no ORM lifecycle hooks, so
what gets written is visible at the call site.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Some backends (SQLite) hand back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base — all models inherit from this."""
    pass


class IntegerPrimaryKeyMixin:
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)


class AuditMixin:
    """Adds created/updated timestamps and actors to any model that inherits it."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def stamp_created(self, actor: str | None, now: datetime | None = None) -> None:
        now = now or utcnow()
        self.created_at = now
        self.created_by = actor
        self.updated_at = now
        self.updated_by = actor

    def touch(self, actor: str | None, now: datetime | None = None) -> None:
        self.updated_at = now or utcnow()
        self.updated_by = actor
