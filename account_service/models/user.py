"""
User (account) model.

Design decisions:
- Status is an ENUM (ACTIVE / BLOCKED / LOCKED).  BLOCKED is only
  left through an admin unblock; LOCKED heals itself once the
  cool-down since `locked_at` has elapsed.
- Roles are a comma-delimited string of role NAMES, parsed into a
  `RoleSet` on read.  The role catalog (`roles` table) is only used to
  resolve ids to names when an admin changes them.
- `deleted` is a soft-delete flag: rows are never physically removed.
- `version` is SQLAlchemy's optimistic-lock column.  Every ORM update
  is issued as `UPDATE ... WHERE id = :id AND version = :loaded` and a
  stale save raises `StaleDataError` instead of overwriting.
"""

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from account_service.models.base import AuditMixin, Base, IntegerPrimaryKeyMixin, utcnow
from account_service.rbac.roles import RoleSet


class UserStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    BLOCKED = "BLOCKED"
    LOCKED = "LOCKED"


class User(Base, IntegerPrimaryKeyMixin, AuditMixin):
    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    email: Mapped[str | None] = mapped_column(String(256), nullable=True)
    roles: Mapped[str] = mapped_column(String(512), nullable=False)

    status: Mapped[UserStatus] = mapped_column(
        Enum(UserStatus, name="user_status"),
        default=UserStatus.ACTIVE,
        nullable=False,
    )
    login_fail_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)

    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_login_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    password_reset_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def role_set(self) -> RoleSet:
        return RoleSet.parse(self.roles)

    @role_set.setter
    def role_set(self, value: RoleSet) -> None:
        self.roles = value.serialize()

    def __repr__(self) -> str:
        return f"<User {self.username} status={self.status.value} v{self.version}>"


def new_user(
    username: str,
    password_hash: str,
    roles: RoleSet,
    *,
    phone: str | None = None,
    email: str | None = None,
) -> User:
    """Build a freshly registered, ACTIVE account with every default stamped."""
    now = utcnow()
    user = User(
        username=username,
        password_hash=password_hash,
        phone=phone or None,
        email=email or None,
        roles=roles.serialize(),
        status=UserStatus.ACTIVE,
        login_fail_count=0,
        locked_at=None,
        deleted=False,
        password_reset_at=now,
    )
    user.stamp_created(username, now)
    return user
