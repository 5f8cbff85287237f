"""
Service-layer exceptions.

Services raise these; the handlers installed by ``create_app`` turn
them into the ``{code, message, data}`` envelope.  The ``code`` of the
envelope and the HTTP status are both taken from ``status_code``.

Conflicts and missing records are business failures (400) rather than
404/409 so that every client-facing failure fits the four envelope
codes: 400, 401, 403 and 500.
"""

from typing import Any


class ServiceError(Exception):
    status_code: int = 400

    def __init__(self, message: str, *, data: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.data = data


# ── 400 ──────────────────────────────────────────────────────────────
class ValidationError(ServiceError):
    """Malformed input — reported verbatim."""


class NotFoundError(ServiceError):
    pass


class ConflictError(ServiceError):
    """Duplicate or concurrently-modified record.  Safe to retry."""


class UsernameTaken(ConflictError):
    def __init__(self, message: str = "Username already exists") -> None:
        super().__init__(message)


class VersionConflict(ConflictError):
    def __init__(self, message: str = "Record was modified concurrently, please retry") -> None:
        super().__init__(message)


class WrongOldPassword(ServiceError):
    def __init__(self, message: str = "Old password is incorrect") -> None:
        super().__init__(message)


# ── 401 ──────────────────────────────────────────────────────────────
class AuthenticationError(ServiceError):
    status_code = 401


class InvalidCredentials(AuthenticationError):
    # Shared by "no such user" and "wrong password" on purpose.
    def __init__(self, message: str = "Invalid username or password") -> None:
        super().__init__(message)


class AccountBlocked(AuthenticationError):
    def __init__(self, message: str = "Account is blocked") -> None:
        super().__init__(message)


class AccountLocked(AuthenticationError):
    def __init__(self, message: str = "Account is locked, please try again later") -> None:
        super().__init__(message)


class TooManyAttempts(AccountLocked):
    def __init__(self, message: str = "Too many failed attempts, account locked") -> None:
        super().__init__(message)


class InvalidToken(AuthenticationError):
    def __init__(self, message: str = "Token invalid or expired") -> None:
        super().__init__(message)


class MalformedToken(InvalidToken):
    def __init__(self, message: str = "Malformed token") -> None:
        super().__init__(message)


class InvalidSignature(InvalidToken):
    def __init__(self, message: str = "Token signature invalid") -> None:
        super().__init__(message)


class ExpiredToken(InvalidToken):
    def __init__(self, message: str = "Token expired") -> None:
        super().__init__(message)


# ── 403 ──────────────────────────────────────────────────────────────
class ForbiddenError(ServiceError):
    status_code = 403

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message)


# ── 500 ──────────────────────────────────────────────────────────────
class StorageError(ServiceError):
    status_code = 500


class CacheError(ServiceError):
    status_code = 500


class TokenConfigurationError(ServiceError):
    """Signing key or algorithm is unusable.  Raised at startup."""

    status_code = 500
