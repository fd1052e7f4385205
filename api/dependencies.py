"""
api/dependencies.py -- FastAPI Depends() helpers for authentication and authorization.

Access tokens are accepted from two places, checked in priority order:
  1. "access_token" cookie -- set by register/login/refresh for browsers.
  2. Authorization: Bearer <token> header -- API clients.

get_current_principal() authenticates only (valid token + active principal).
require_permissions("bookings:read", ...) returns a dependency that also
enforces the listed permission keys. The key set is fixed when the route is
declared and handed straight to AuthorizationGuard.authorize() per request;
nothing is read back off the route by reflection.

These dependencies are plain `def` because the guard does blocking store
reads; FastAPI runs sync dependencies in its threadpool.

Usage:
    @router.get("/bookings")
    def list_bookings(principal_id: int = Depends(require_permissions("bookings:read"))): ...
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Request

from api.errors import raise_for
from auth.models import PrincipalSummary
from auth.tokens import ACCESS_COOKIE
from rbac.guard import AuthorizationGuard


def extract_access_token(request: Request) -> str | None:
    """Return the access token from the cookie or the Bearer header, or None."""
    token: str | None = request.cookies.get(ACCESS_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def get_current_principal(request: Request) -> PrincipalSummary:
    """Require authentication. Raises HTTP 401 if the request is not authenticated."""
    guard: AuthorizationGuard = request.app.state.guard
    return raise_for(guard.authenticate(extract_access_token(request)))


def require_permissions(*keys: str) -> Callable[[Request], int]:
    """Build a dependency that requires every key in keys. Yields the principal id.

    401 when the token is missing, invalid, expired or its principal is gone;
    403 when any key is missing from the principal's effective permissions.
    """
    required = frozenset(keys)

    def dependency(request: Request) -> int:
        guard: AuthorizationGuard = request.app.state.guard
        return raise_for(guard.authorize(extract_access_token(request), required))

    return dependency
