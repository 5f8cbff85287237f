"""
User controller — admin-only account management & role catalog.

Every route uses `Depends(require_admin)` for enforcement, which runs
the registry-consistent guard first.  Controllers are THIN — they
delegate to services and wrap the result in the envelope.

Architecture note:
    The injected `TokenClaims` carry the acting admin's username, which
    is stamped into `updated_by` without a second DB lookup.

Route order matters: the literal paths (`/all`, `/role/all`,
`/username/...`) are declared before `/{user_id}`.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.core.database import get_db
from account_service.core.security import TokenClaims
from account_service.models.user import UserStatus
from account_service.rbac.dependencies import get_session_registry, require_admin
from account_service.schemas import (
    ChangePasswordRequest,
    ChangeRoleRequest,
    ForcePasswordRequest,
    PageOut,
    Result,
    RoleOut,
    UserOut,
    UserSearchRequest,
    UserUpdateRequest,
)
from account_service.services import auth_service, role_service, user_service
from account_service.services.session_registry import SessionRegistry
from account_service.services.user_service import UserSearchCriteria

router = APIRouter(prefix="/api/user", tags=["User"])


def _page(users, total: int) -> PageOut[UserOut]:
    return PageOut[UserOut](list=[UserOut.from_user(u) for u in users], total=total)


# ── Queries ──────────────────────────────────────────────────────────
@router.get("/all", response_model=Result[PageOut[UserOut]])
async def list_users(
    admin: TokenClaims = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    page_num: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1),
):
    users, total = await user_service.list_users(db, page_num, page_size)
    return Result.ok(_page(users, total))


@router.get("/role/all", response_model=Result[list[RoleOut]])
async def list_roles(
    admin: TokenClaims = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    roles = await role_service.list_roles(db)
    return Result.ok([RoleOut.model_validate(r) for r in roles])


@router.get("/username/{username}", response_model=Result[UserOut])
async def get_by_username(
    username: str,
    admin: TokenClaims = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await user_service.get_user_by_username(username, db)
    return Result.ok(UserOut.from_user(user))


@router.post("/search", response_model=Result[PageOut[UserOut]])
async def search(
    body: UserSearchRequest,
    admin: TokenClaims = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    criteria = UserSearchCriteria(
        username=body.username,
        phone=body.phone,
        email=body.email,
        roles=body.roles,
        status=UserStatus(body.status) if body.status else None,
        login_fail_count=body.login_fail_count,
        deleted=body.deleted,
        created_from=body.created_from,
        created_to=body.created_to,
        updated_from=body.updated_from,
        updated_to=body.updated_to,
    )
    users, total = await user_service.search_users(criteria, db, body.page_num, body.page_size)
    return Result.ok(_page(users, total))


@router.get("/{user_id}", response_model=Result[UserOut])
async def get_user(
    user_id: int,
    admin: TokenClaims = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await user_service.get_user_by_id(user_id, db)
    return Result.ok(UserOut.from_user(user))


# ── Mutations ────────────────────────────────────────────────────────
@router.put("/{user_id}", response_model=Result[UserOut])
async def update_user(
    user_id: int,
    body: UserUpdateRequest,
    admin: TokenClaims = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    registry: SessionRegistry = Depends(get_session_registry),
):
    user = await user_service.update_user(
        user_id, admin.username, db, registry,
        username=body.username, phone=body.phone, email=body.email,
    )
    return Result.ok(UserOut.from_user(user))


@router.put("/{user_id}/role", response_model=Result[UserOut])
async def change_roles(
    user_id: int,
    body: ChangeRoleRequest,
    admin: TokenClaims = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    registry: SessionRegistry = Depends(get_session_registry),
):
    user = await user_service.change_roles(user_id, body.role_ids, admin.username, db, registry)
    return Result.ok(UserOut.from_user(user))


@router.put("/{user_id}/password", response_model=Result[None])
async def change_password(
    user_id: int,
    body: ChangePasswordRequest,
    admin: TokenClaims = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    registry: SessionRegistry = Depends(get_session_registry),
):
    await auth_service.change_password(
        user_id, body.old_password, body.new_password, admin.username, db, registry,
    )
    return Result.ok(message="Password changed")


@router.put("/{user_id}/password/force", response_model=Result[None])
async def force_password(
    user_id: int,
    body: ForcePasswordRequest,
    admin: TokenClaims = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    registry: SessionRegistry = Depends(get_session_registry),
):
    await auth_service.change_password_forcefully(user_id, body.new_password, admin.username, db, registry)
    return Result.ok(message="Password reset")


@router.put("/{user_id}/block", response_model=Result[UserOut])
async def block(
    user_id: int,
    admin: TokenClaims = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    registry: SessionRegistry = Depends(get_session_registry),
):
    user = await user_service.block_user(user_id, admin.username, db, registry)
    return Result.ok(UserOut.from_user(user))


@router.put("/{user_id}/unblock", response_model=Result[UserOut])
async def unblock(
    user_id: int,
    admin: TokenClaims = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await user_service.unblock_user(user_id, admin.username, db)
    return Result.ok(UserOut.from_user(user))


@router.delete("/{user_id}", response_model=Result[None])
async def delete(
    user_id: int,
    admin: TokenClaims = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    registry: SessionRegistry = Depends(get_session_registry),
):
    await user_service.delete_user(user_id, admin.username, db, registry)
    return Result.ok(message="User deleted")
