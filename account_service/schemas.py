"""
Pydantic schemas for request / response serialization.

Kept in a single file for now — split per-domain when it grows.
Schemas are deliberately decoupled from SQLAlchemy models so the
API surface can evolve independently of the DB layer (the password
hash, for one, never leaves the service).
"""

from datetime import datetime
from typing import Annotated, Any, Generic, TypeVar

from pydantic import AfterValidator, BaseModel, EmailStr, Field, model_validator

from account_service.core.security import MAX_PASSWORD_BYTES, password_fits

T = TypeVar("T")


def _fits_bcrypt(value: str) -> str:
    if not password_fits(value):
        raise ValueError(f"must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


USERNAME = Field(min_length=2, max_length=20)
# Any password the service will hash or compare.
Password = Annotated[str, AfterValidator(_fits_bcrypt)]
PASSWORD = Field(min_length=6)
PHONE_PATTERN = r"^1\d{10}$"


# ── Envelope ─────────────────────────────────────────────────────────
class Result(BaseModel, Generic[T]):
    code: int = 200
    message: str = "success"
    data: T | None = None

    @classmethod
    def ok(cls, data: Any = None, message: str = "success") -> "Result":
        return cls(code=200, message=message, data=data)


# ── Auth ─────────────────────────────────────────────────────────────
class RegisterRequest(BaseModel):
    username: str = USERNAME
    password: Password = PASSWORD
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    email: EmailStr | None = None


class LoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: Password = Field(min_length=1)


class TokenOut(BaseModel):
    token: str
    token_type: str = "bearer"


class ValidateOut(BaseModel):
    valid: bool


class ClaimsOut(BaseModel):
    user_id: int
    username: str
    roles: list[str]
    is_admin: bool
    issued_at: datetime
    expires_at: datetime


# ── User ─────────────────────────────────────────────────────────────
class UserOut(BaseModel):
    id: int
    username: str
    phone: str | None = None
    email: str | None = None
    roles: list[str] = []
    status: str
    login_fail_count: int
    locked_at: datetime | None = None
    deleted: bool
    last_login_at: datetime | None = None
    last_login_ip: str | None = None
    password_reset_at: datetime | None = None
    created_at: datetime | None = None
    created_by: str | None = None
    updated_at: datetime | None = None
    updated_by: str | None = None
    version: int

    @classmethod
    def from_user(cls, user) -> "UserOut":
        return cls(
            id=user.id,
            username=user.username,
            phone=user.phone,
            email=user.email,
            roles=list(user.role_set),
            status=user.status.value,
            login_fail_count=user.login_fail_count,
            locked_at=user.locked_at,
            deleted=user.deleted,
            last_login_at=user.last_login_at,
            last_login_ip=user.last_login_ip,
            password_reset_at=user.password_reset_at,
            created_at=user.created_at,
            created_by=user.created_by,
            updated_at=user.updated_at,
            updated_by=user.updated_by,
            version=user.version,
        )


class PageOut(BaseModel, Generic[T]):
    list: list[T]
    total: int


class UserUpdateRequest(BaseModel):
    username: str | None = Field(default=None, min_length=2, max_length=20)
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    email: EmailStr | None = None


class ChangeRoleRequest(BaseModel):
    role_ids: list[int] = Field(min_length=1)


class ChangePasswordRequest(BaseModel):
    old_password: Password = Field(min_length=1)
    new_password: Password = PASSWORD


class ForcePasswordRequest(BaseModel):
    new_password: Password = PASSWORD


class UserSearchRequest(BaseModel):
    username: str | None = None
    phone: str | None = None
    email: str | None = None
    roles: str | None = None
    status: str | None = Field(default=None, pattern="^(ACTIVE|BLOCKED|LOCKED)$")
    login_fail_count: int | None = Field(default=None, ge=0)
    deleted: bool | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    updated_from: datetime | None = None
    updated_to: datetime | None = None
    page_num: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1)

    @model_validator(mode="after")
    def check_ranges(self) -> "UserSearchRequest":
        for label, start, end in (
            ("created", self.created_from, self.created_to),
            ("updated", self.updated_from, self.updated_to),
        ):
            if (start is None) != (end is None):
                raise ValueError(f"{label} time range needs both a start and an end")
            if start is not None and end < start:
                raise ValueError(f"{label} time range ends before it starts")
        return self


# ── Role ─────────────────────────────────────────────────────────────
class RoleOut(BaseModel):
    id: int
    name: str
    is_default: bool

    model_config = {"from_attributes": True}
