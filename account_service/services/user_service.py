"""
User service — lookups, search & admin mutations.

Every lookup here hides soft-deleted accounts, except `search_users`
which honours an explicit `deleted` filter so admins can still find
them.  Mutations are stamped with the acting admin's username and
saved through `flush_or_conflict`, so a stale `version` fails loudly.

Mutations that change what a session token asserts (username, roles,
block, delete) also drop the account's active session.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.core.database import flush_or_conflict
from account_service.core.errors import NotFoundError, UsernameTaken, ValidationError
from account_service.models.user import User, UserStatus
from account_service.rbac.roles import RoleSet
from account_service.services import account_state, role_service
from account_service.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


@dataclass
class UserSearchCriteria:
    username: str | None = None
    phone: str | None = None
    email: str | None = None
    roles: str | None = None
    status: UserStatus | None = None
    login_fail_count: int | None = None
    deleted: bool | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    updated_from: datetime | None = None
    updated_to: datetime | None = None


def _live_users() -> Select:
    return select(User).where(User.deleted == False)  # noqa: E712


async def _paginate(stmt: Select, db: AsyncSession, page_num: int, page_size: int) -> tuple[list[User], int]:
    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    page = stmt.order_by(User.id).offset((page_num - 1) * page_size).limit(page_size)
    result = await db.execute(page)
    return list(result.scalars().all()), total


# ── Lookups ──────────────────────────────────────────────────────────

async def find_by_username(username: str, db: AsyncSession) -> User | None:
    result = await db.execute(_live_users().where(User.username == username))
    return result.scalar_one_or_none()


async def get_user_by_id(user_id: int, db: AsyncSession) -> User:
    result = await db.execute(_live_users().where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")
    return user


async def get_user_by_username(username: str, db: AsyncSession) -> User:
    user = await find_by_username(username, db)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def list_users(db: AsyncSession, page_num: int = 1, page_size: int = 10) -> tuple[list[User], int]:
    return await _paginate(_live_users(), db, page_num, page_size)


async def search_users(
    criteria: UserSearchCriteria,
    db: AsyncSession,
    page_num: int = 1,
    page_size: int = 10,
) -> tuple[list[User], int]:
    stmt = select(User)

    if criteria.username:
        stmt = stmt.where(User.username.contains(criteria.username, autoescape=True))
    if criteria.phone:
        stmt = stmt.where(User.phone.contains(criteria.phone, autoescape=True))
    if criteria.email:
        stmt = stmt.where(User.email.contains(criteria.email, autoescape=True))
    if criteria.roles:
        stmt = stmt.where(User.roles.contains(criteria.roles, autoescape=True))
    if criteria.status is not None:
        stmt = stmt.where(User.status == criteria.status)
    if criteria.login_fail_count is not None:
        stmt = stmt.where(User.login_fail_count == criteria.login_fail_count)
    if criteria.deleted is not None:
        stmt = stmt.where(User.deleted == criteria.deleted)
    if criteria.created_from and criteria.created_to:
        stmt = stmt.where(User.created_at.between(criteria.created_from, criteria.created_to))
    if criteria.updated_from and criteria.updated_to:
        stmt = stmt.where(User.updated_at.between(criteria.updated_from, criteria.updated_to))

    return await _paginate(stmt, db, page_num, page_size)


# ── Admin mutations ──────────────────────────────────────────────────

async def update_user(
    user_id: int,
    operator: str,
    db: AsyncSession,
    registry: SessionRegistry,
    *,
    username: str | None = None,
    phone: str | None = None,
    email: str | None = None,
) -> User:
    user = await get_user_by_id(user_id, db)
    previous_username = user.username

    if username and username != user.username:
        existing = await find_by_username(username, db)
        if existing is not None and existing.id != user.id:
            raise UsernameTaken()
        user.username = username
    if phone:
        user.phone = phone
    if email:
        user.email = email

    user.touch(operator)
    await flush_or_conflict(db, conflict=UsernameTaken())

    if user.username != previous_username:
        # The registry is keyed by username; the old entry can no longer be validated.
        await registry.remove(previous_username)
    return user


async def change_roles(
    user_id: int,
    role_ids: list[int],
    operator: str,
    db: AsyncSession,
    registry: SessionRegistry,
) -> User:
    if not role_ids:
        raise ValidationError("At least one role is required")

    user = await get_user_by_id(user_id, db)
    roles = await role_service.find_by_ids(role_ids, db)

    user.role_set = RoleSet.of(role.name for role in roles)
    user.touch(operator)
    await flush_or_conflict(db)
    await registry.remove(user.username)

    logger.info("Roles of %s changed to %s by %s", user.username, user.roles, operator)
    return user


async def block_user(user_id: int, operator: str, db: AsyncSession, registry: SessionRegistry) -> User:
    user = await get_user_by_id(user_id, db)
    account_state.block(user, operator)
    await flush_or_conflict(db)
    await registry.remove(user.username)
    logger.info("User %s blocked by %s", user.username, operator)
    return user


async def unblock_user(user_id: int, operator: str, db: AsyncSession) -> User:
    user = await get_user_by_id(user_id, db)
    account_state.unblock(user, operator)
    await flush_or_conflict(db)
    logger.info("User %s unblocked by %s", user.username, operator)
    return user


async def delete_user(user_id: int, operator: str, db: AsyncSession, registry: SessionRegistry) -> User:
    """Soft delete — the row stays, every normal lookup stops seeing it."""
    user = await get_user_by_id(user_id, db)
    account_state.soft_delete(user, operator)
    await flush_or_conflict(db)
    await registry.remove(user.username)
    logger.info("User %s deleted by %s", user.username, operator)
    return user
