"""
Role catalog — listing, id → name resolution and seeding.

The catalog is reference data: accounts store role NAMES, so changing
a role's row never rewrites accounts.  Seeding is IDEMPOTENT — safe to
run on every startup.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.core.config import settings
from account_service.core.errors import NotFoundError
from account_service.models.role import Role

logger = logging.getLogger(__name__)

# name → is_default
DEFAULT_ROLES: dict[str, bool] = {
    settings.DEFAULT_ROLE: True,
    f"{settings.ROLE_PREFIX}{settings.ADMIN_ROLE}": False,
}


async def list_roles(db: AsyncSession) -> list[Role]:
    stmt = select(Role).where(Role.deleted == False).order_by(Role.id)  # noqa: E712
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def find_by_ids(role_ids: list[int], db: AsyncSession) -> list[Role]:
    """
    Resolve ids to roles, preserving the order of `role_ids`.

    Raises `NotFoundError` naming every id that does not exist.
    """
    stmt = select(Role).where(Role.id.in_(role_ids), Role.deleted == False)  # noqa: E712
    result = await db.execute(stmt)
    by_id = {role.id: role for role in result.scalars().all()}

    missing = [rid for rid in role_ids if rid not in by_id]
    if missing:
        raise NotFoundError(f"Roles not found: {missing}")
    return [by_id[rid] for rid in role_ids]


async def get_default_role_name(db: AsyncSession) -> str:
    stmt = (
        select(Role.name)
        .where(Role.is_default == True, Role.deleted == False)  # noqa: E712
        .order_by(Role.id)
        .limit(1)
    )
    name = (await db.execute(stmt)).scalar_one_or_none()
    return name or settings.DEFAULT_ROLE


async def seed(db: AsyncSession) -> None:
    """Create the default roles if they don't already exist."""
    existing = set((await db.execute(select(Role.name))).scalars().all())

    for name, is_default in DEFAULT_ROLES.items():
        if name in existing:
            continue
        role = Role(name=name, is_default=is_default, deleted=False)
        role.stamp_created("system")
        db.add(role)
        logger.info("Seeded role %s", name)

    await db.commit()
