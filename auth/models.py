"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these only carry shape.

Layer rule: no imports from api/, rbac/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Principal:
    """A user account as persisted by UserStore.

    phone_number is the unique identity key. email is optional but unique when
    present. refresh_token_digest is HMAC-SHA256(SECRET_KEY, raw_token) for the
    single live refresh token, or None when the principal is Anonymous.
    """

    phone_number: str
    password_hash: str
    id: int | None = None
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    is_active: bool = True
    refresh_token_digest: str | None = None
    refresh_token_expiry: datetime | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class PrincipalSummary:
    """The authoritative, secret-free view of a principal.

    Returned by SessionManager.validate() and the /me and /profile endpoints.
    Never carries the password hash or refresh-token state.
    """

    id: int
    phone_number: str
    email: str | None
    first_name: str | None
    last_name: str | None
    is_active: bool
    created_at: str | None

    @classmethod
    def from_principal(cls, principal: Principal) -> PrincipalSummary:
        return cls(
            id=principal.id,
            phone_number=principal.phone_number,
            email=principal.email,
            first_name=principal.first_name,
            last_name=principal.last_name,
            is_active=principal.is_active,
            created_at=principal.created_at,
        )


@dataclass(frozen=True)
class AccessClaims:
    """Verified contents of an access token."""

    principal_id: int
    phone_number: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime


@dataclass(frozen=True)
class Session:
    """Result of register/login/refresh: who the caller is plus fresh tokens."""

    principal: PrincipalSummary
    tokens: TokenPair
