"""
auth/tokens.py -- Access-token signing, refresh-token rotation, cookie helpers.

Security design decisions:
  Access tokens: python-jose with HS256, signed with SECRET_KEY. Claims are
       sub (principal id as a string), phone_number, iat, exp. Lifetime is
       Settings.access_token_expire_seconds (15 minutes by default). They are
       never persisted; verify_access() re-checks signature and expiry on every
       use and never touches storage.

  Refresh tokens: secrets.token_hex(64) -- 64 random bytes, 128 hex chars.
       Stored as HMAC-SHA256(SECRET_KEY, raw_token) in the principal's single
       refresh-token slot, with an absolute expiry computed at issue time
       (7 days by default). Refresh tokens are single-use: redeem_refresh()
       rotates the slot with a compare-and-swap write, so the redeemed value
       dies and concurrent redemptions of the same value produce one winner.

  SECRET_KEY: read once from Settings at construction. Process-wide and
       read-only afterwards, safe for unsynchronized concurrent reads.

Layer rule: no imports from api/ or rbac/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import INVALID_REFRESH, AuthError, AuthErrorKind
from auth.models import AccessClaims, Principal, TokenPair

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("accessgate.auth.tokens")

_ALGORITHM = "HS256"

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"


class TokenIssuer:
    """Mints access/refresh pairs and persists the refresh half.

    Usage:
        issuer = TokenIssuer(store, secret_key=settings.secret_key)
        pair = issuer.issue(principal.id, principal.phone_number)
        claims = issuer.verify_access(pair.access_token)      # AccessClaims | AuthError
        result = issuer.redeem_refresh(pair.refresh_token)    # (Principal, TokenPair) | AuthError
    """

    def __init__(
        self,
        store: UserStore,
        secret_key: str,
        access_ttl_seconds: int = 15 * 60,
        refresh_ttl_seconds: int = 7 * 24 * 60 * 60,
    ) -> None:
        self._store = store
        self._secret_key = secret_key
        self.access_ttl = timedelta(seconds=access_ttl_seconds)
        self.refresh_ttl = timedelta(seconds=refresh_ttl_seconds)

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue(self, principal_id: int, phone_number: str) -> TokenPair:
        """Mint a fresh pair and overwrite the principal's refresh-token slot.

        Any previously issued refresh token for this principal stops working.
        Previously issued access tokens stay valid until their own expiry.
        """
        pair, digest = self._mint(principal_id, phone_number)
        self._store.update_refresh_token(principal_id, digest, pair.refresh_expires_at)
        return pair

    def _mint(self, principal_id: int, phone_number: str) -> tuple[TokenPair, str]:
        now = datetime.now(timezone.utc)
        access_expires_at = now + self.access_ttl
        payload = {
            "sub": str(principal_id),
            "phone_number": phone_number,
            "iat": now,
            "exp": access_expires_at,
        }
        access_token = jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)
        refresh_token = secrets.token_hex(64)
        pair = TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            access_expires_at=access_expires_at,
            refresh_expires_at=now + self.refresh_ttl,
        )
        return pair, self.refresh_digest(refresh_token)

    def refresh_digest(self, raw_token: str) -> str:
        """Return HMAC-SHA256(SECRET_KEY, raw_token) as hex, the stored form of a refresh token."""
        return hmac.new(self._secret_key.encode(), raw_token.encode(), hashlib.sha256).hexdigest()

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify_access(self, token: str) -> AccessClaims | AuthError:
        """Check signature and expiry. Returns AccessClaims or an AuthError.

        ExpiredToken for a well-signed token past exp; InvalidSignature for
        everything else (bad signature, malformed token, missing claims).
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except ExpiredSignatureError:
            return AuthError(AuthErrorKind.expired_token, "Access token expired.")
        except JWTError:
            return AuthError(AuthErrorKind.invalid_signature, "Access token signature is invalid.")

        try:
            return AccessClaims(
                principal_id=int(payload["sub"]),
                phone_number=str(payload["phone_number"]),
                issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError):
            return AuthError(AuthErrorKind.invalid_signature, "Access token is malformed.")

    # ------------------------------------------------------------------
    # Redeem
    # ------------------------------------------------------------------

    def redeem_refresh(self, refresh_token: str) -> tuple[Principal, TokenPair] | AuthError:
        """Redeem a refresh token for a new pair; the presented token is consumed.

        Fails with InvalidOrExpiredRefreshToken when no principal holds the
        token, the slot has expired, the account is inactive, or a concurrent
        redemption of the same token won the rotation.
        """
        if not refresh_token:
            return INVALID_REFRESH
        now = datetime.now(timezone.utc)
        old_digest = self.refresh_digest(refresh_token)

        principal = self._store.find_by_refresh_digest(old_digest)
        if principal is None or not principal.is_active:
            return INVALID_REFRESH
        if principal.refresh_token_expiry is None or principal.refresh_token_expiry <= now:
            return INVALID_REFRESH

        pair, new_digest = self._mint(principal.id, principal.phone_number)
        if not self._store.rotate_refresh_token(principal.id, old_digest, new_digest, pair.refresh_expires_at, now):
            logger.info("Refresh token for principal %s lost a rotation race", principal.id)
            return INVALID_REFRESH
        return principal, pair


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookies(response, pair: TokenPair, secure: bool) -> None:
    """Write both tokens as httpOnly cookies on the response.

    httponly=True: JS cannot read the cookies (XSS mitigation).
    samesite="strict": never sent on cross-site requests.
    secure: HTTPS-only outside development (Settings.secure_cookies).
    max_age: matches each token's own lifetime so cookie and token expire together.
    """
    now = datetime.now(timezone.utc)
    response.set_cookie(
        ACCESS_COOKIE,
        value=pair.access_token,
        httponly=True,
        samesite="strict",
        secure=secure,
        max_age=max(0, int((pair.access_expires_at - now).total_seconds())),
    )
    response.set_cookie(
        REFRESH_COOKIE,
        value=pair.refresh_token,
        httponly=True,
        samesite="strict",
        secure=secure,
        max_age=max(0, int((pair.refresh_expires_at - now).total_seconds())),
    )


def clear_auth_cookies(response, secure: bool) -> None:
    """Expire both cookies with the attributes they were set with."""
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(name, httponly=True, samesite="strict", secure=secure)
