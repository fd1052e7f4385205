"""
auth/hashing.py -- Password hashing (bcrypt, used directly).

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

The cost factor comes from Settings.bcrypt_rounds. At the default of 10 one
verification takes tens of milliseconds; route handlers that hash are plain
`def` so FastAPI runs them in its threadpool, off the event loop.

Failure modes:
  hash()   -- raises PasswordHashingError. Fatal to the calling operation.
  verify() -- returns False on mismatch and on a malformed digest. A negative
              verification is a normal result, never an exception.

Plaintext passwords are never logged or returned.
"""

from __future__ import annotations

import logging

import bcrypt

from auth.errors import PasswordHashingError

logger = logging.getLogger("accessgate.auth.hashing")

# bcrypt hashes at most 72 bytes of input; 5.x rejects longer input outright.
PASSWORD_MAX_BYTES = 72


class PasswordHasher:
    """Salted one-way hashing with a configurable bcrypt cost factor.

    Usage:
        hasher = PasswordHasher(rounds=10)
        digest = hasher.hash("secret123")
        hasher.verify("secret123", digest)   # True
    """

    def __init__(self, rounds: int = 10) -> None:
        self.rounds = rounds
        # Timing equalization: verify against this when the identity is
        # unknown so the response time does not reveal whether it exists.
        self._dummy_hash = self.hash("accessgate_timing_dummy")

    def hash(self, plaintext: str) -> str:
        """Return a bcrypt digest of plaintext."""
        try:
            return bcrypt.hashpw(plaintext.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")
        except (ValueError, TypeError) as exc:
            logger.error("Password hashing failed: %s", type(exc).__name__)
            raise PasswordHashingError("Password hashing failed.") from exc

    def verify(self, plaintext: str, digest: str) -> bool:
        """Return True if plaintext matches digest."""
        try:
            return bcrypt.checkpw(plaintext.encode("utf-8"), digest.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    def burn(self, plaintext: str) -> None:
        """Run one verification against the dummy digest and discard the result."""
        self.verify(plaintext, self._dummy_hash)
