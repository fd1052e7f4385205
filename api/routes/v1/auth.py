"""
api/routes/v1/auth.py -- Session lifecycle REST endpoints.

Routes:
  POST /api/v1/auth/register         -- create account; sets token cookies; 201
  POST /api/v1/auth/login            -- phone + password login; sets token cookies
  POST /api/v1/auth/refresh          -- redeem refresh token (cookie or body); rotates both cookies
  POST /api/v1/auth/logout           -- clears the refresh-token slot and both cookies (requires auth)
  GET  /api/v1/auth/me               -- current principal (requires auth)
  GET  /api/v1/auth/profile          -- alias of /me (requires auth)
  PUT  /api/v1/auth/profile          -- update name/email (requires auth)
  POST /api/v1/auth/change-password  -- verify current password, store new one (requires auth)

Security:
  [H2] POST /login and /register are rate-limited per IP (Settings.login_rate_limit).
  [C1] SessionManager.login() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on every response that carries tokens.

Handlers that hash or verify passwords are plain `def`: FastAPI runs them in
its threadpool so bcrypt never blocks the event loop.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_current_principal
from api.errors import raise_for
from api.limiter import limiter, login_rate_limit
from api.models import (
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    PrincipalResponse,
    ProfileUpdate,
    RefreshRequest,
    RegisterRequest,
    SessionResponse,
)
from auth.errors import INVALID_REFRESH, AuthError, AuthErrorKind
from auth.models import PrincipalSummary, Session
from auth.sessions import SessionManager
from auth.tokens import REFRESH_COOKIE, clear_auth_cookies, set_auth_cookies
from core.config import get_settings

# Auth policy:
# - POST /auth/register:         public (when Settings.self_registration_enabled)
# - POST /auth/login:            public
# - POST /auth/refresh:          public -- possession of the refresh token is the proof
# - POST /auth/logout:           requires auth (get_current_principal)
# - GET  /auth/me, /auth/profile requires auth
# - PUT  /auth/profile:          requires auth
# - POST /auth/change-password:  requires auth
router = APIRouter()


def _session_response(session: Session, message: str, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=SessionResponse.from_session(session, message).model_dump(mode="json"),
    )
    set_auth_cookies(resp, session.tokens, secure=bool(get_settings().secure_cookies))
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=SessionResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an active account and start its first session."""
    if not get_settings().self_registration_enabled:
        raise_for(AuthError(AuthErrorKind.forbidden, "Self-registration is disabled."))
    sessions: SessionManager = request.app.state.sessions
    session = raise_for(
        sessions.register(
            body.phone_number,
            body.password,
            first_name=body.first_name,
            last_name=body.last_name,
            email=body.email,
        )
    )
    return _session_response(session, "User registered successfully.", status_code=201)


@limiter.limit(login_rate_limit)  # [H2]
@router.post("/auth/login", response_model=SessionResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with phone number and password.

    Returns the same generic error for an unknown phone number and a wrong
    password ("invalid_credentials") to avoid leaking account existence.
    """
    sessions: SessionManager = request.app.state.sessions
    session = raise_for(sessions.login(body.phone_number, body.password))
    return _session_response(session, "Login successful.")


@router.post("/auth/refresh", response_model=SessionResponse)
def refresh(request: Request, body: RefreshRequest | None = None) -> JSONResponse:
    """Exchange a refresh token for a new pair. The presented token stops working."""
    token = (body.refresh_token if body else None) or request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise_for(INVALID_REFRESH)
    sessions: SessionManager = request.app.state.sessions
    session = raise_for(sessions.refresh(token))
    return _session_response(session, "Tokens refreshed successfully.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, principal: PrincipalSummary = Depends(get_current_principal)) -> JSONResponse:
    """End the session: clear the stored refresh token and both cookies."""
    sessions: SessionManager = request.app.state.sessions
    sessions.logout(principal.id)
    resp = JSONResponse(content=MessageResponse(message="Successfully logged out.").model_dump())
    clear_auth_cookies(resp, secure=bool(get_settings().secure_cookies))
    return resp


@router.get("/auth/me", response_model=PrincipalResponse)
def me(principal: PrincipalSummary = Depends(get_current_principal)) -> PrincipalResponse:
    """Return identity information for the currently authenticated principal."""
    return PrincipalResponse.from_summary(principal)


@router.get("/auth/profile", response_model=PrincipalResponse)
def get_profile(principal: PrincipalSummary = Depends(get_current_principal)) -> PrincipalResponse:
    return PrincipalResponse.from_summary(principal)


@router.put("/auth/profile", response_model=PrincipalResponse)
def update_profile(
    request: Request,
    body: ProfileUpdate,
    principal: PrincipalSummary = Depends(get_current_principal),
) -> PrincipalResponse:
    """Update first name, last name and/or email. Email must not belong to another account."""
    sessions: SessionManager = request.app.state.sessions
    updated = raise_for(
        sessions.update_profile(principal.id, first_name=body.first_name, last_name=body.last_name, email=body.email)
    )
    return PrincipalResponse.from_summary(updated)


@router.post("/auth/change-password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    principal: PrincipalSummary = Depends(get_current_principal),
) -> MessageResponse:
    """Change the password. The stored refresh token is cleared, so other sessions must log in again."""
    sessions: SessionManager = request.app.state.sessions
    raise_for(sessions.change_password(principal.id, body.current_password, body.new_password))
    return MessageResponse(message="Password changed successfully.")
