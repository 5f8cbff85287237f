"""
Password hashing & session-token helpers.

- Passwords are hashed with bcrypt directly (passlib is unmaintained
  and broken with bcrypt>=4.1).  Passwords longer than 72 UTF-8 bytes
  are refused with a ``ValidationError`` rather than truncated.
- Session tokens are HS256 JWTs carrying sub, username, roles, iat,
  exp and a random jti, so two tokens issued for the same user in the
  same second still differ.
- The signing secret lives in an immutable ``TokenCodec`` built once
  at startup and stored on ``app.state``; nothing reads it from a
  mutable global afterwards.
- Registry consistency (token == value stored for the username) is
  NOT checked here — see ``account_service.rbac.dependencies``.
"""

import functools
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import bcrypt
from fastapi.security import OAuth2PasswordBearer
from jose import jwt
from jose.constants import ALGORITHMS
from jose.exceptions import ExpiredSignatureError, JWTError

from account_service.core.config import Settings, settings
from account_service.core.errors import (
    ExpiredToken,
    InvalidSignature,
    MalformedToken,
    TokenConfigurationError,
    ValidationError,
)
from account_service.rbac.roles import RoleSet

# ── Password hashing ────────────────────────────────────────────────
# bcrypt only looks at the first 72 bytes and bcrypt>=5 refuses longer input.
MAX_PASSWORD_BYTES = 72


def password_fits(plain: str) -> bool:
    return len(plain.encode("utf-8")) <= MAX_PASSWORD_BYTES


def hash_password(plain: str) -> str:
    if not password_fits(plain):
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    """Never raises: a missing or malformed hash simply fails to match."""
    if not hashed or not password_fits(plain):
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


@functools.lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password(uuid.uuid4().hex)


def burn_password_check(plain: str) -> None:
    """Spend one bcrypt comparison so an unknown username costs the same as a wrong password."""
    verify_password(plain, _dummy_hash())


# ── Session tokens ──────────────────────────────────────────────────
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

_REQUIRED_CLAIMS = ("sub", "username", "roles", "iat", "exp")


@dataclass(frozen=True)
class TokenClaims:
    subject_id: str
    username: str
    roles: RoleSet
    issued_at: datetime
    expires_at: datetime
    token_id: str | None = None


@dataclass(frozen=True)
class TokenCodec:
    secret: str = field(repr=False)
    algorithm: str = "HS256"
    ttl: timedelta = timedelta(hours=24)

    def __post_init__(self) -> None:
        if not self.secret:
            raise TokenConfigurationError("SECRET_KEY must not be empty")
        if self.algorithm not in ALGORITHMS.HMAC:
            raise TokenConfigurationError(
                f"JWT_ALGORITHM must be an HMAC algorithm, got {self.algorithm!r}"
            )

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> "TokenCodec":
        return cls(
            secret=cfg.SECRET_KEY,
            algorithm=cfg.JWT_ALGORITHM,
            ttl=timedelta(hours=cfg.SESSION_TTL_HOURS),
        )

    def issue(
        self,
        subject_id: int | str,
        username: str,
        roles: RoleSet,
        ttl: timedelta | None = None,
    ) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": str(subject_id),
            "username": username,
            "roles": list(roles),
            "iat": now,
            "exp": now + (ttl or self.ttl),
            "jti": uuid.uuid4().hex,
        }
        try:
            return jwt.encode(claims, self.secret, algorithm=self.algorithm)
        except JWTError as exc:
            raise TokenConfigurationError(f"Unable to sign token: {exc}") from exc

    def verify(self, token: str) -> TokenClaims:
        """
        Decode & validate a token.

        Raises ``MalformedToken``, ``InvalidSignature`` (including an
        ``alg`` header other than the configured one) or ``ExpiredToken``.
        """
        if not token:
            raise MalformedToken()
        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            raise MalformedToken()

        if header.get("alg") != self.algorithm:
            raise InvalidSignature("Unexpected signing algorithm")

        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise ExpiredToken()
        except JWTError:
            raise InvalidSignature()

        if any(payload.get(claim) in (None, "") for claim in _REQUIRED_CLAIMS):
            raise MalformedToken("Token is missing required claims")
        roles = payload["roles"]
        if not isinstance(roles, list):
            raise MalformedToken("Token roles claim must be a list")

        return TokenClaims(
            subject_id=str(payload["sub"]),
            username=payload["username"],
            roles=RoleSet.of(roles),
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            token_id=payload.get("jti"),
        )

    def is_valid(self, token: str) -> bool:
        try:
            self.verify(token)
        except (MalformedToken, InvalidSignature, ExpiredToken):
            return False
        return True
