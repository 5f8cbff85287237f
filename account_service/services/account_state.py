"""
Account state machine.

    ACTIVE ──(N consecutive bad passwords)──▶ LOCKED ──(cool-down elapsed
      ▲                                                 + good password)──▶ ACTIVE
      │
      └──(admin unblock)── BLOCKED ◀──(admin block)── any

Rules:
- A bad password always increments the failure counter.  The increment
  is a conditional UPDATE on the row's current `version`, retried on
  conflict, so two concurrent failures can never collapse into one.
- Reaching the threshold locks the account (a BLOCKED account stays
  BLOCKED) and stamps `locked_at`.
- BLOCKED is checked only after the password matched, so blocking
  never tells an attacker whether a guess was right.
- A successful login resets the counter and records time / IP.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.core.config import Settings, settings
from account_service.core.errors import AccountBlocked, AccountLocked, NotFoundError, VersionConflict
from account_service.models.base import as_utc, utcnow
from account_service.models.user import User, UserStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockoutPolicy:
    max_failures: int = 5
    cooldown: timedelta = timedelta(hours=1)
    retry_limit: int = 5

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> "LockoutPolicy":
        return cls(
            max_failures=cfg.MAX_LOGIN_FAILURES,
            cooldown=timedelta(minutes=cfg.LOCK_COOLDOWN_MINUTES),
            retry_limit=cfg.OPTIMISTIC_RETRY_LIMIT,
        )


@dataclass(frozen=True)
class FailureOutcome:
    fail_count: int
    locked: bool


# ── Login-driven transitions ─────────────────────────────────────────

async def record_failure(
    user_id: int,
    db: AsyncSession,
    policy: LockoutPolicy,
    *,
    actor: str | None = None,
    now: datetime | None = None,
) -> FailureOutcome:
    """Increment the failure counter (and lock if needed) without losing concurrent updates."""
    now = now or utcnow()
    for _ in range(policy.retry_limit):
        row = (
            await db.execute(
                select(User.version, User.login_fail_count, User.status).where(User.id == user_id)
            )
        ).one_or_none()
        if row is None:
            raise NotFoundError("User not found")

        version, fail_count, status = row
        fail_count += 1
        values: dict = {
            "login_fail_count": fail_count,
            "version": version + 1,
            "updated_at": now,
            "updated_by": actor,
        }
        locked = fail_count >= policy.max_failures and status != UserStatus.BLOCKED
        if locked:
            values["status"] = UserStatus.LOCKED
            values["locked_at"] = now

        result = await db.execute(
            update(User)
            .where(User.id == user_id, User.version == version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            if locked:
                logger.warning("Account %s locked after %d failed logins", user_id, fail_count)
            return FailureOutcome(fail_count=fail_count, locked=locked)

        logger.debug("Version moved under failure increment for user %s, retrying", user_id)

    raise VersionConflict()


def ensure_eligible(user: User, policy: LockoutPolicy, now: datetime | None = None) -> bool:
    """
    Gate a login whose password already matched.

    Returns True when an expired lock was lifted (the caller persists it),
    raises `AccountBlocked` / `AccountLocked` otherwise.
    """
    if user.status == UserStatus.BLOCKED:
        raise AccountBlocked()

    if user.status == UserStatus.LOCKED:
        now = now or utcnow()
        locked_at = as_utc(user.locked_at)
        if locked_at is not None and now - locked_at < policy.cooldown:
            raise AccountLocked()
        user.status = UserStatus.ACTIVE
        user.locked_at = None
        return True

    return False


def record_success(user: User, client_ip: str, now: datetime | None = None) -> None:
    now = now or utcnow()
    user.login_fail_count = 0
    user.last_login_at = now
    user.last_login_ip = client_ip or None
    user.touch(user.username, now)


# ── Admin transitions ────────────────────────────────────────────────

def block(user: User, operator: str | None) -> None:
    user.status = UserStatus.BLOCKED
    # `locked_at` is only set while LOCKED.
    user.locked_at = None
    user.touch(operator)


def unblock(user: User, operator: str | None) -> None:
    user.status = UserStatus.ACTIVE
    user.login_fail_count = 0
    user.locked_at = None
    user.touch(operator)


def soft_delete(user: User, operator: str | None) -> None:
    user.deleted = True
    user.touch(operator)
