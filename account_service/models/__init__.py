"""
Models package — import every model so SQLAlchemy's Base.metadata
knows about all tables (critical for `create_all` / Alembic).
"""

from account_service.models.base import AuditMixin, Base, IntegerPrimaryKeyMixin
from account_service.models.role import Role
from account_service.models.user import User, UserStatus, new_user

__all__ = [
    "Base",
    "AuditMixin",
    "IntegerPrimaryKeyMixin",
    "Role",
    "User",
    "UserStatus",
    "new_user",
]
