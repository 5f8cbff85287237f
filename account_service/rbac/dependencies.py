"""
Auth dependencies — the heart of session and role enforcement.

`get_current_claims` is the registry-consistent guard.  On every
protected request it will:

1. Extract the bearer token (401 if absent or not `Bearer`).
2. Verify signature & expiry (401).
3. Require the session registry entry for the token's username to be
   exactly this token (401) — this is what makes logout and "one
   active session" stick even though old tokens are still signed.
4. Slide the registry TTL forward and hand the claims downstream.

`require_role` is a *dependency factory* layered on top:

    @router.get("/users")
    async def list_users(claims: TokenClaims = Depends(require_role("ADMIN"))): ...

It passes when the token's roles contain the name exactly or with the
configured prefix (`ROLE_ADMIN`), and returns 403 otherwise — with no
detail about which role was missing.
"""

import logging

from fastapi import Depends, Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.core.cache import get_redis
from account_service.core.config import settings
from account_service.core.database import get_db
from account_service.core.errors import AuthenticationError, ForbiddenError, InvalidToken
from account_service.core.security import TokenClaims, TokenCodec, oauth2_scheme
from account_service.models.user import User
from account_service.services import auth_service
from account_service.services.session_registry import SessionRegistry

logger = logging.getLogger("rbac")


def get_token_codec(request: Request) -> TokenCodec:
    """The codec built once at startup (see `create_app`)."""
    return request.app.state.token_codec


def get_session_registry(redis: Redis = Depends(get_redis)) -> SessionRegistry:
    return SessionRegistry(redis)


async def get_bearer_token(token: str | None = Depends(oauth2_scheme)) -> str:
    if not token:
        raise AuthenticationError("Authorization header is missing or malformed")
    return token


async def get_current_claims(
    token: str = Depends(get_bearer_token),
    registry: SessionRegistry = Depends(get_session_registry),
    codec: TokenCodec = Depends(get_token_codec),
) -> TokenClaims:
    claims = codec.verify(token)

    active = await registry.get(claims.username)
    if active != token:
        raise InvalidToken()

    await registry.refresh(claims.username)
    return claims


class require_role:
    """
    Dependency factory.

    Can be used as:
        Depends(require_role("ADMIN"))
        Depends(require_role("AUDITOR", prefix=""))
    """

    def __init__(self, role: str, prefix: str = settings.ROLE_PREFIX):
        self.role = role
        self.prefix = prefix

    async def __call__(self, claims: TokenClaims = Depends(get_current_claims)) -> TokenClaims:
        if not claims.roles.has(self.role, self.prefix):
            logger.warning(
                "Role denied for %s — required: %s, granted: %s",
                claims.username,
                self.role,
                list(claims.roles),
            )
            raise ForbiddenError()
        return claims


require_admin = require_role(settings.ADMIN_ROLE)


async def get_current_active_user(
    token: str = Depends(get_bearer_token),
    claims: TokenClaims = Depends(get_current_claims),
    db: AsyncSession = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
) -> User:
    """The live account behind a registry-consistent token (no role check)."""
    return await auth_service.get_current_user(token, db, codec)
