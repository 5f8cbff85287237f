"""
Role catalog model.

Reference data: accounts hold role NAMES, this table maps the ids an
admin picks to those names and flags the default role handed out at
registration.
"""

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from account_service.models.base import AuditMixin, Base, IntegerPrimaryKeyMixin


class Role(Base, IntegerPrimaryKeyMixin, AuditMixin):
    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Role {self.name}>"
