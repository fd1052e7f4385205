"""
auth/errors.py -- Error taxonomy for authentication and authorization.

Expected outcomes (wrong password, expired token, missing permission) are not
exceptions. Every core operation returns either its value or an AuthError,
and the caller branches on isinstance(result, AuthError). The HTTP layer owns
the mapping from AuthErrorKind to status code.

Real failures are exceptions:
  StoreUnavailable     -- database error or timeout inside a store call.
  PasswordHashingError -- bcrypt could not produce a digest.

Neither is retried here. Callers must treat both as "deny".

Layer rule: no imports from api/ or rbac/. StoreUnavailable is re-exported
from core/database.py so auth callers have one place to import failures from.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from core.database import StoreUnavailable


class AuthErrorKind(str, Enum):
    duplicate_identity = "duplicate_identity"
    invalid_credentials = "invalid_credentials"
    account_inactive = "account_inactive"
    principal_not_found = "principal_not_found"
    invalid_or_expired_refresh_token = "invalid_or_expired_refresh_token"
    expired_token = "expired_token"
    invalid_signature = "invalid_signature"
    unauthenticated = "unauthenticated"
    forbidden = "forbidden"


@dataclass(frozen=True)
class AuthError:
    """A tagged failure value returned by auth and rbac operations.

    missing holds the permission keys a Forbidden decision was short of. It is
    meant for server-side logs; the HTTP layer does not echo it to clients.
    """

    kind: AuthErrorKind
    message: str
    missing: tuple[str, ...] = ()


# Messages shared across call sites so identical failures read identically.
INVALID_CREDENTIALS = AuthError(AuthErrorKind.invalid_credentials, "Invalid credentials.")
INVALID_REFRESH = AuthError(AuthErrorKind.invalid_or_expired_refresh_token, "Invalid or expired refresh token.")
UNAUTHENTICATED = AuthError(AuthErrorKind.unauthenticated, "Authentication required.")


class PasswordHashingError(Exception):
    """bcrypt failed to hash a password."""


__all__ = [
    "AuthError",
    "AuthErrorKind",
    "INVALID_CREDENTIALS",
    "INVALID_REFRESH",
    "PasswordHashingError",
    "StoreUnavailable",
    "UNAUTHENTICATED",
]
