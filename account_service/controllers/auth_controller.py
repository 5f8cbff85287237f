"""
Auth controller — register, login, logout, validation & token introspection.

Register, login, validate and logout are PUBLIC.  Logout only needs a
cryptographically valid bearer token (not the registry guard), so a
second logout with the same token still succeeds.  `/me`, `/claims`
and `/refresh` go through the registry-consistent guard.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.core.database import get_db
from account_service.core.http import ClientContext, get_client_context
from account_service.core.security import TokenClaims, TokenCodec
from account_service.models.user import User
from account_service.rbac.dependencies import (
    get_bearer_token,
    get_current_active_user,
    get_current_claims,
    get_session_registry,
    get_token_codec,
)
from account_service.schemas import (
    ClaimsOut,
    LoginRequest,
    RegisterRequest,
    Result,
    TokenOut,
    UserOut,
    ValidateOut,
)
from account_service.services import auth_service
from account_service.services.session_registry import SessionRegistry

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post("/register", response_model=Result[UserOut])
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """Create an ACTIVE account holding the default role."""
    user = await auth_service.register(
        body.username, body.password, db, phone=body.phone, email=body.email,
    )
    return Result.ok(UserOut.from_user(user))


@router.post("/login", response_model=Result[TokenOut])
async def login(
    body: LoginRequest,
    client: ClientContext = Depends(get_client_context),
    db: AsyncSession = Depends(get_db),
    registry: SessionRegistry = Depends(get_session_registry),
    codec: TokenCodec = Depends(get_token_codec),
):
    """Authenticate with username + password → the account's active session token."""
    token = await auth_service.login(body.username, body.password, client, db, registry, codec)
    return Result.ok(TokenOut(token=token))


@router.get("/validate", response_model=Result[ValidateOut])
async def validate(token: str, codec: TokenCodec = Depends(get_token_codec)):
    """Signature + expiry only; says nothing about revocation."""
    return Result.ok(ValidateOut(valid=auth_service.validate_token(token, codec)))


@router.delete("/logout", response_model=Result[None])
async def logout(
    token: str = Depends(get_bearer_token),
    registry: SessionRegistry = Depends(get_session_registry),
    codec: TokenCodec = Depends(get_token_codec),
):
    await auth_service.logout(token, registry, codec)
    return Result.ok(message="Logged out successfully")


@router.get("/me", response_model=Result[UserOut])
async def me(user: User = Depends(get_current_active_user)):
    return Result.ok(UserOut.from_user(user))


@router.get("/claims", response_model=Result[ClaimsOut])
async def claims(
    token: str = Depends(get_bearer_token),
    current: TokenClaims = Depends(get_current_claims),
    codec: TokenCodec = Depends(get_token_codec),
):
    return Result.ok(
        ClaimsOut(
            user_id=auth_service.get_current_user_id(token, codec),
            username=current.username,
            roles=list(current.roles),
            is_admin=auth_service.is_admin(token, codec),
            issued_at=current.issued_at,
            expires_at=current.expires_at,
        )
    )


@router.post("/refresh", response_model=Result[TokenOut])
async def refresh(
    token: str = Depends(get_bearer_token),
    current: TokenClaims = Depends(get_current_claims),
    registry: SessionRegistry = Depends(get_session_registry),
    codec: TokenCodec = Depends(get_token_codec),
):
    """Swap the active token for a fresh one; the old token stops passing the guard."""
    new_token = auth_service.refresh_token(token, codec)
    await registry.put(current.username, new_token)
    return Result.ok(TokenOut(token=new_token))
