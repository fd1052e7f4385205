"""
rbac/guard.py -- The single enforcement point for protected operations.

authorize(token, required) runs, in order:
  1. verify the access token's signature and expiry   -> Unauthenticated
  2. re-load the principal and require it be active   -> Unauthenticated
  3. no permissions required                          -> allow
  4. resolve the effective permission set
  5. every required key must be present (conjunction) -> Forbidden(missing)
  6. allow, yielding the principal id

Fail closed: the guard never returns "allow" on a path that raised. A store
error or timeout propagates as StoreUnavailable, which the HTTP layer renders
as a 503 -- the protected operation does not run.

The guard holds no mutable state of its own; it is safe to share one
instance across concurrent requests.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from auth.errors import UNAUTHENTICATED, AuthError, AuthErrorKind
from auth.models import PrincipalSummary

if TYPE_CHECKING:
    from auth.sessions import SessionManager
    from auth.tokens import TokenIssuer
    from rbac.permissions import PermissionGraphReader

logger = logging.getLogger("accessgate.rbac.guard")


class AuthorizationGuard:
    """Decides whether the bearer of an access token may run an operation.

    Usage:
        guard = AuthorizationGuard(issuer, sessions, reader)
        result = guard.authorize(token, {"bookings:read"})
        if isinstance(result, AuthError): ...   # unauthenticated / forbidden
        else: principal_id = result
    """

    def __init__(self, issuer: TokenIssuer, sessions: SessionManager, reader: PermissionGraphReader) -> None:
        self._issuer = issuer
        self._sessions = sessions
        self._reader = reader

    def authenticate(self, token: str | None) -> PrincipalSummary | AuthError:
        """Steps 1-2: a verified token whose principal still exists and is active."""
        if not token:
            return UNAUTHENTICATED
        claims = self._issuer.verify_access(token)
        if isinstance(claims, AuthError):
            logger.debug("Access token rejected: %s", claims.kind.value)
            return UNAUTHENTICATED
        summary = self._sessions.validate(claims.principal_id)
        if isinstance(summary, AuthError):
            logger.debug("Principal %s no longer valid", claims.principal_id)
            return UNAUTHENTICATED
        return summary

    def authorize(self, token: str | None, required: Iterable[str] = ()) -> int | AuthError:
        """Return the principal id if the token holder has every key in required."""
        summary = self.authenticate(token)
        if isinstance(summary, AuthError):
            return summary

        required_keys = frozenset(required)
        if not required_keys:
            return summary.id

        effective = self._reader.effective_permissions(summary.id)
        missing = sorted(required_keys - effective)
        if missing:
            logger.info("Denied principal %s: missing %s", summary.id, ", ".join(missing))
            return AuthError(AuthErrorKind.forbidden, "Insufficient permissions.", missing=tuple(missing))
        return summary.id
