"""
One-time bootstrap script — creates the first ADMIN account.

Usage:
    uv run python -m account_service.scripts.create_admin

You only need this ONCE.  After the first admin exists, other accounts
register themselves and get promoted through `PUT /api/user/{id}/role`.
"""

import asyncio
import getpass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from account_service.core.config import settings
from account_service.core.errors import ServiceError
from account_service.models.user import User
from account_service.rbac.roles import RoleSet
from account_service.services import auth_service, role_service


async def create_admin_user(username: str, password: str, db: AsyncSession) -> User:
    """Register `username` and grant it the admin role on top of the default one."""
    await role_service.seed(db)
    user = await auth_service.register(username, password, db)
    user.role_set = RoleSet.of([*user.role_set, f"{settings.ROLE_PREFIX}{settings.ADMIN_ROLE}"])
    user.touch("system")
    await db.commit()
    return user


async def create_admin() -> None:
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    # ── Collect input ────────────────────────────────────────────────
    print(f"\n🔧  {settings.APP_NAME} — First Admin Setup\n")
    username = input("  Admin username: ").strip()
    password = getpass.getpass("  Password:       ")
    confirm = getpass.getpass("  Confirm:        ")

    if password != confirm:
        print("\n❌  Passwords do not match.")
        await engine.dispose()
        return

    if not username or not password:
        print("\n❌  All fields are required.")
        await engine.dispose()
        return

    # ── Create the admin user ────────────────────────────────────────
    async with session_factory() as session:
        try:
            admin_user = await create_admin_user(username, password, session)
        except ServiceError as exc:
            print(f"\n❌  {exc.message}")
        else:
            print("\n✅  Admin user created successfully!")
            print(f"    ID:       {admin_user.id}")
            print(f"    Username: {admin_user.username}")
            print(f"    Roles:    {admin_user.roles}")
            print("\n   You can now log in via POST /api/auth/login\n")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(create_admin())
