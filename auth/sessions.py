"""
auth/sessions.py -- Register, login, refresh, logout, password and profile changes.

A principal's session state is never stored as an explicit enum. It is read
off the refresh-token slot:
  Anonymous -- slot empty or expired
  Active    -- slot holds a live digest; any number of access tokens in flight

register/login/refresh move a principal to Active, logout moves it back to
Anonymous. Access tokens already handed out are not revoked by any of these;
they age out on their own (Settings.access_token_expire_seconds).

Enumeration resistance [C1]:
  login() always runs one bcrypt verification, against the real hash or a
  dummy one, and reports the same InvalidCredentials for an unknown phone
  number and a wrong password. AccountInactive is only reported to a caller
  who presented the correct password.

Policy decisions:
  change_password() clears the refresh-token slot, so every other device has
  to log in again once its access token expires.
  One refresh-token slot per principal: a new login supersedes the previous
  session's refresh token.

Layer rule: no imports from api/ or rbac/.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from auth.errors import INVALID_CREDENTIALS, AuthError, AuthErrorKind
from auth.models import Principal, PrincipalSummary, Session

if TYPE_CHECKING:
    from auth.hashing import PasswordHasher
    from auth.store import UserStore
    from auth.tokens import TokenIssuer

logger = logging.getLogger("accessgate.auth.sessions")

_DUPLICATE = AuthError(AuthErrorKind.duplicate_identity, "An account with this phone number or email already exists.")
_NOT_FOUND = AuthError(AuthErrorKind.principal_not_found, "User not found or inactive.")


class SessionManager:
    """Orchestrates the session lifecycle on top of the store, hasher and issuer.

    Every public method returns its value or an AuthError. StoreUnavailable and
    PasswordHashingError propagate as exceptions.
    """

    def __init__(self, store: UserStore, hasher: PasswordHasher, issuer: TokenIssuer) -> None:
        self._store = store
        self._hasher = hasher
        self._issuer = issuer

    # ------------------------------------------------------------------
    # Anonymous -> Active
    # ------------------------------------------------------------------

    def register(
        self,
        phone_number: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
        email: str | None = None,
    ) -> Session | AuthError:
        """Create an active principal and issue its first token pair."""
        if self._store.identity_taken(phone_number, email):
            return _DUPLICATE

        principal = Principal(
            phone_number=phone_number,
            password_hash=self._hasher.hash(password),
            email=email,
            first_name=first_name,
            last_name=last_name,
            is_active=True,
        )
        try:
            principal = self._store.create(principal)
        except IntegrityError:
            # A concurrent registration took the key after our pre-check.
            return _DUPLICATE

        logger.info("Registered principal %s", principal.id)
        return self._start(principal)

    def login(self, phone_number: str, password: str) -> Session | AuthError:
        """Verify credentials and issue a fresh pair, superseding any prior refresh token."""
        principal = self._store.find_by_identity_key(phone_number)
        if principal is None:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            self._hasher.burn(password)
            return INVALID_CREDENTIALS
        if not self._hasher.verify(password, principal.password_hash):
            return INVALID_CREDENTIALS
        if not principal.is_active:
            return AuthError(AuthErrorKind.account_inactive, "Account is inactive.")

        logger.info("Principal %s logged in", principal.id)
        return self._start(principal)

    def refresh(self, refresh_token: str) -> Session | AuthError:
        """Redeem a refresh token; the presented value is consumed."""
        result = self._issuer.redeem_refresh(refresh_token)
        if isinstance(result, AuthError):
            return result
        principal, pair = result
        return Session(principal=PrincipalSummary.from_principal(principal), tokens=pair)

    def _start(self, principal: Principal) -> Session:
        pair = self._issuer.issue(principal.id, principal.phone_number)
        return Session(principal=PrincipalSummary.from_principal(principal), tokens=pair)

    # ------------------------------------------------------------------
    # Active -> Anonymous
    # ------------------------------------------------------------------

    def logout(self, principal_id: int) -> None:
        """Clear the refresh-token slot. Outstanding access tokens remain valid until they expire."""
        self._store.update_refresh_token(principal_id, None, None)
        logger.info("Principal %s logged out", principal_id)

    # ------------------------------------------------------------------
    # Account maintenance
    # ------------------------------------------------------------------

    def change_password(self, principal_id: int, current_password: str, new_password: str) -> AuthError | None:
        """Replace the password hash after verifying current_password. Returns None on success."""
        principal = self._store.find_by_id(principal_id)
        if principal is None:
            return _NOT_FOUND
        if not self._hasher.verify(current_password, principal.password_hash):
            return INVALID_CREDENTIALS

        self._store.update_password_hash(principal_id, self._hasher.hash(new_password))
        self._store.update_refresh_token(principal_id, None, None)
        logger.info("Principal %s changed password; refresh token cleared", principal_id)
        return None

    def update_profile(
        self,
        principal_id: int,
        first_name: str | None = None,
        last_name: str | None = None,
        email: str | None = None,
    ) -> PrincipalSummary | AuthError:
        """Update the optional profile fields. None means "leave unchanged"."""
        principal = self._store.find_by_id(principal_id)
        if principal is None or not principal.is_active:
            return _NOT_FOUND

        fields: dict = {}
        if first_name is not None:
            fields["first_name"] = first_name
        if last_name is not None:
            fields["last_name"] = last_name
        if email is not None and email != principal.email:
            owner = self._store.find_by_email(email)
            if owner is not None and owner.id != principal_id:
                return _DUPLICATE
            fields["email"] = email

        if fields:
            try:
                self._store.update_profile(principal_id, **fields)
            except IntegrityError:
                return _DUPLICATE
        return self.validate(principal_id)

    def set_active(self, principal_id: int, active: bool) -> AuthError | None:
        """Activate or deactivate a principal.

        Deactivation does not clear tokens eagerly: validate() and
        redeem_refresh() reject inactive principals at verification time.
        """
        if not self._store.set_active(principal_id, active):
            return AuthError(AuthErrorKind.principal_not_found, "User not found.")
        logger.info("Principal %s set active=%s", principal_id, active)
        return None

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, principal_id: int) -> PrincipalSummary | AuthError:
        """Return the current authoritative view of principal_id.

        PrincipalNotFound if the record is missing or inactive -- this is what
        catches an account deactivated after its access token was issued.
        """
        principal = self._store.find_by_id(principal_id)
        if principal is None or not principal.is_active:
            return _NOT_FOUND
        return PrincipalSummary.from_principal(principal)

    whoami = validate
