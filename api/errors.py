"""
api/errors.py -- Map AuthError values to HTTP responses.

Core operations return AuthError values instead of raising. Route handlers
call raise_for(result) at the edge, which turns the error kind into an
HTTPException carrying the standard {"code", "message"} detail dict (rendered
by the HTTPException handler in api/main.py).

Client-facing policy:
  - Token failures (expired, bad signature) collapse to 401 unauthenticated.
  - Forbidden never lists the missing permission keys; the guard logs them.
  - Credential errors never say whether the phone number or the password was wrong.
"""

from __future__ import annotations

from fastapi import HTTPException

from auth.errors import AuthError, AuthErrorKind

_STATUS_BY_KIND: dict[AuthErrorKind, int] = {
    AuthErrorKind.duplicate_identity: 409,
    AuthErrorKind.invalid_credentials: 401,
    AuthErrorKind.account_inactive: 403,
    AuthErrorKind.principal_not_found: 404,
    AuthErrorKind.invalid_or_expired_refresh_token: 401,
    AuthErrorKind.expired_token: 401,
    AuthErrorKind.invalid_signature: 401,
    AuthErrorKind.unauthenticated: 401,
    AuthErrorKind.forbidden: 403,
}

# Kinds whose internal message is replaced before reaching the client.
_PUBLIC_MESSAGES: dict[AuthErrorKind, tuple[str, str]] = {
    AuthErrorKind.expired_token: ("unauthenticated", "Authentication required."),
    AuthErrorKind.invalid_signature: ("unauthenticated", "Authentication required."),
    AuthErrorKind.forbidden: ("forbidden", "You do not have permission to perform this action."),
}


def to_http_exception(error: AuthError) -> HTTPException:
    code, message = _PUBLIC_MESSAGES.get(error.kind, (error.kind.value, error.message))
    headers = {"WWW-Authenticate": "Bearer"} if _STATUS_BY_KIND[error.kind] == 401 else None
    return HTTPException(
        status_code=_STATUS_BY_KIND[error.kind],
        detail={"code": code, "message": message},
        headers=headers,
    )


def raise_for(result):
    """Return result unchanged unless it is an AuthError, in which case raise it as HTTP."""
    if isinstance(result, AuthError):
        raise to_http_exception(result)
    return result
