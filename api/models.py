"""
API request and response models for AccessGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
rbac/models.py, which own the internal domain representation. Route handlers
map between the two.
"""

from datetime import datetime
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator

from auth.hashing import PASSWORD_MAX_BYTES
from auth.models import PrincipalSummary, Session

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Local or international form: optional "+", then 9-15 digits.
PHONE_PATTERN = r"^\+?\d{9,15}$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
PASSWORD_MIN_LENGTH = 6
# Lowercase slug, e.g. "super-admin".
ROLE_NAME_PATTERN = r"^[a-z][a-z0-9_-]{1,99}$"


def _password_fits_bcrypt(value: str) -> str:
    if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes when UTF-8 encoded")
    return value


# max_length counts characters; bcrypt's limit is in bytes.
Password = Annotated[str, AfterValidator(_password_fits_bcrypt)]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    phone_number: str = Field(pattern=PHONE_PATTERN)
    password: Password = Field(min_length=PASSWORD_MIN_LENGTH, max_length=72)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)

class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    Passwords are capped at bcrypt's 72-byte input limit, counted in UTF-8
    bytes rather than characters.
    """

    phone_number: str = Field(min_length=1, max_length=32)
    password: Password = Field(min_length=1, max_length=72)

class RefreshRequest(BaseModel):
    """Optional body for POST /api/v1/auth/refresh; the refresh_token cookie is used when absent."""

    refresh_token: Optional[str] = Field(default=None, max_length=256)


class ChangePasswordRequest(BaseModel):
    current_password: Password = Field(min_length=1, max_length=72)
    new_password: Password = Field(min_length=PASSWORD_MIN_LENGTH, max_length=72)
    confirm_password: Password = Field(min_length=1, max_length=72)

    @model_validator(mode="after")
    def passwords_match(self) -> "ChangePasswordRequest":
        if self.new_password != self.confirm_password:
            raise ValueError("Confirm password does not match new password")
        return self


class ProfileUpdate(BaseModel):
    """Request body for PUT /api/v1/auth/profile. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)


class RoleCreate(BaseModel):
    """Request body for POST /api/v1/roles."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(pattern=ROLE_NAME_PATTERN)
    description: str = Field(default="", max_length=255)


class RoleUpdate(BaseModel):
    """Request body for PATCH /api/v1/roles/{id}. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, pattern=ROLE_NAME_PATTERN)
    description: Optional[str] = Field(default=None, max_length=255)


class ActiveUpdate(BaseModel):
    """Request body for PATCH /api/v1/users/{id}/active."""

    is_active: bool


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class PrincipalResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    phone_number: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool
    created_at: Optional[str] = None

    @classmethod
    def from_summary(cls, summary: PrincipalSummary) -> "PrincipalResponse":
        return cls(
            id=summary.id,
            phone_number=summary.phone_number,
            email=summary.email,
            first_name=summary.first_name,
            last_name=summary.last_name,
            is_active=summary.is_active,
            created_at=summary.created_at,
        )


class SessionResponse(BaseModel):
    """Response for register/login/refresh.

    Tokens are returned in the body for bearer clients and also set as
    httpOnly cookies for browsers.
    """

    model_config = ConfigDict(frozen=True)

    message: str
    user: PrincipalResponse
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    access_expires_at: datetime
    refresh_expires_at: datetime

    @classmethod
    def from_session(cls, session: Session, message: str) -> "SessionResponse":
        return cls(
            message=message,
            user=PrincipalResponse.from_summary(session.principal),
            access_token=session.tokens.access_token,
            refresh_token=session.tokens.refresh_token,
            access_expires_at=session.tokens.access_expires_at,
            refresh_expires_at=session.tokens.refresh_expires_at,
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class PermissionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    key: str
    description: str = ""


class RoleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: str = ""
    permissions: list[str] = Field(default_factory=list)


class UserRolesResponse(BaseModel):
    """Roles and effective permissions of one principal (admin view)."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    roles: list[str]
    permissions: list[str]


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
