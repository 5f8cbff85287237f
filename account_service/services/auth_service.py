"""
Authentication service.

Handles:
- Registration (username uniqueness, bcrypt hash, default role)
- Login through the account state machine, with single-session
  enforcement via the session registry
- Logout, token validation, token refresh and token introspection
- Password changes (self-service with the old password, or forced by
  an admin)

Session rules:
- One active token per username, stored in the registry.  A new login
  overwrites it, logout deletes it.
- A login while the stored token is still cryptographically valid
  returns THAT token (TTL refreshed) instead of issuing a new one, so
  repeated logins hand out the same string until it is invalidated.
- `validate_token` only checks signature + expiry.  Revocation-aware
  checks go through `rbac.dependencies.get_current_claims`.
- A password change drops the active session.
- A wrong password at login commits the caller's session before the
  error is raised, so the failure count survives the request rollback.

All business logic lives here — controllers call service functions
and wrap the result.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.core.config import settings
from account_service.core.database import flush_or_conflict
from account_service.core.errors import (
    AuthenticationError,
    InvalidCredentials,
    InvalidToken,
    MalformedToken,
    TooManyAttempts,
    UsernameTaken,
    WrongOldPassword,
)
from account_service.core.http import ClientContext
from account_service.core.security import (
    TokenClaims,
    TokenCodec,
    burn_password_check,
    hash_password,
    verify_password,
)
from account_service.models.base import utcnow
from account_service.models.user import User, new_user
from account_service.rbac.roles import RoleSet
from account_service.services import account_state, role_service, user_service
from account_service.services.account_state import LockoutPolicy
from account_service.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


# ── Registration ─────────────────────────────────────────────────────

async def _username_exists(username: str, db: AsyncSession) -> bool:
    # Soft-deleted rows still own their username (unique constraint).
    stmt = select(User.id).where(User.username == username)
    return (await db.execute(stmt)).first() is not None


async def register(
    username: str,
    password: str,
    db: AsyncSession,
    *,
    phone: str | None = None,
    email: str | None = None,
) -> User:
    """
    Create an ACTIVE account with the default role.

    The pre-check only avoids a wasted bcrypt round; the unique
    constraint on `users.username` decides races.
    """
    if await _username_exists(username, db):
        raise UsernameTaken()

    default_role = await role_service.get_default_role_name(db)
    user = new_user(
        username,
        hash_password(password),
        RoleSet.of([default_role]),
        phone=phone,
        email=email,
    )
    db.add(user)
    await flush_or_conflict(db, conflict=UsernameTaken())

    logger.info("Registered user %s (id=%s)", user.username, user.id)
    return user


# ── Login / logout ───────────────────────────────────────────────────

async def _reuse_or_issue(user: User, registry: SessionRegistry, codec: TokenCodec) -> str:
    existing = await registry.get(user.username)
    if existing:
        try:
            claims = codec.verify(existing)
        except InvalidToken as exc:
            logger.debug("Stored token for %s no longer valid: %s", user.username, exc.message)
            claims = None
        if claims is not None and claims.subject_id == str(user.id):
            await registry.refresh(user.username)
            return existing

    token = codec.issue(user.id, user.username, user.role_set)
    await registry.put(user.username, token)
    return token


async def login(
    username: str,
    password: str,
    client: ClientContext,
    db: AsyncSession,
    registry: SessionRegistry,
    codec: TokenCodec,
    policy: LockoutPolicy | None = None,
) -> str:
    """
    Validate credentials, run the lockout state machine, and return the
    account's active session token (reused or freshly issued).
    """
    policy = policy or LockoutPolicy.from_settings()

    user = await user_service.find_by_username(username, db)
    if user is None:
        burn_password_check(password)
        logger.info("Login failed for unknown username from %s", client.ip)
        raise InvalidCredentials()

    if not verify_password(password, user.password_hash):
        outcome = await account_state.record_failure(user.id, db, policy, actor=user.username)
        # The failure must persist even though the request ends in an error.
        await db.commit()
        # The UPDATE bypassed the identity map.
        await db.refresh(user)
        logger.info(
            "Login failed for %s from %s (%d consecutive)",
            user.username, client.ip, outcome.fail_count,
        )
        if outcome.locked:
            raise TooManyAttempts()
        raise InvalidCredentials()

    try:
        unlocked = account_state.ensure_eligible(user, policy)
    except AuthenticationError:
        logger.warning("Rejected login for %s (status=%s)", user.username, user.status.value)
        raise
    if unlocked:
        logger.info("Lock on %s expired, account re-activated", user.username)

    account_state.record_success(user, client.ip)
    await flush_or_conflict(db)

    token = await _reuse_or_issue(user, registry, codec)
    logger.info("User %s logged in from %s (%s / %s)", user.username, client.ip, client.os, client.browser)
    return token


async def logout(token: str, registry: SessionRegistry, codec: TokenCodec) -> None:
    """Drop the registry entry for the token's user.  Calling it again is a no-op."""
    claims = codec.verify(token)
    removed = await registry.remove(claims.username)
    if removed:
        logger.info("User %s logged out", claims.username)


# ── Token introspection ──────────────────────────────────────────────

def validate_token(token: str, codec: TokenCodec) -> bool:
    return codec.is_valid(token)


def get_current_user_id(token: str, codec: TokenCodec) -> int:
    claims = codec.verify(token)
    try:
        return int(claims.subject_id)
    except ValueError:
        raise MalformedToken("Token subject is not a user id")


def get_current_username(token: str, codec: TokenCodec) -> str:
    return codec.verify(token).username


def get_current_user_roles(token: str, codec: TokenCodec) -> RoleSet:
    return codec.verify(token).roles


def is_admin(token: str, codec: TokenCodec) -> bool:
    return codec.verify(token).roles.has(settings.ADMIN_ROLE, settings.ROLE_PREFIX)


async def get_current_user(token: str, db: AsyncSession, codec: TokenCodec) -> User:
    """Live account state for the token's subject, not the claims snapshot."""
    return await user_service.get_user_by_id(get_current_user_id(token, codec), db)


def refresh_token(token: str, codec: TokenCodec) -> str:
    """Issue a fresh token for the same subject.  The registry is left to the caller."""
    claims: TokenClaims = codec.verify(token)
    return codec.issue(claims.subject_id, claims.username, claims.roles)


# ── Passwords ────────────────────────────────────────────────────────

async def _set_password(user: User, new_password: str, operator: str | None, db: AsyncSession, registry: SessionRegistry) -> User:
    now = utcnow()
    user.password_hash = hash_password(new_password)
    user.password_reset_at = now
    user.touch(operator, now)
    await flush_or_conflict(db)
    await registry.remove(user.username)
    return user


async def change_password(
    user_id: int,
    old_password: str,
    new_password: str,
    operator: str | None,
    db: AsyncSession,
    registry: SessionRegistry,
) -> User:
    user = await user_service.get_user_by_id(user_id, db)
    if not verify_password(old_password, user.password_hash):
        raise WrongOldPassword()
    user = await _set_password(user, new_password, operator, db, registry)
    logger.info("Password of %s changed by %s", user.username, operator)
    return user


async def change_password_forcefully(
    user_id: int,
    new_password: str,
    operator: str | None,
    db: AsyncSession,
    registry: SessionRegistry,
) -> User:
    user = await user_service.get_user_by_id(user_id, db)
    user = await _set_password(user, new_password, operator, db, registry)
    logger.info("Password of %s reset by %s", user.username, operator)
    return user
