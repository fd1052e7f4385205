"""
auth/store.py -- SQLAlchemy Core persistence layer for principals.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_principal
is the mapper. Services never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Refresh tokens are never stored raw. The refresh_token_digest column holds
  HMAC-SHA256(SECRET_KEY, raw_token) (see auth/tokens.py), which keeps lookup
  O(1) via the UNIQUE index while a leaked database yields no usable token.

  One slot per principal: update_refresh_token() overwrites, never appends.

Concurrency:
  rotate_refresh_token() is a single conditional UPDATE (compare-and-swap on
  the stored digest). Two concurrent redemptions of the same token cannot both
  match the WHERE clause, so at most one rotation reports success.

Expiry is stored as float epoch seconds so SQL comparisons are numeric rather
than lexicographic on ISO strings.

Layer rule: no imports from api/ or rbac/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Float, Integer, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from auth.models import Principal
from core.database import guarded

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("phone_number", String(32), nullable=False, unique=True),
    # NULLs are distinct in UNIQUE constraints, so many principals may omit email.
    Column("email", String(255), unique=True),
    Column("password_hash", Text, nullable=False),
    Column("first_name", String(100)),
    Column("last_name", String(100)),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("refresh_token_digest", String(64), unique=True),
    Column("refresh_token_expires_at", Float),
    Column("created_at", String(32), nullable=False),
)

# Fields update_profile() may touch. Anything else is rejected.
_PROFILE_FIELDS = {"first_name", "last_name", "email"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_epoch(value: datetime | None) -> float | None:
    return value.timestamp() if value is not None else None


def _from_epoch(value: float | None) -> datetime | None:
    return datetime.fromtimestamp(value, tz=timezone.utc) if value is not None else None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for Principal records (the identity store).

    Usage:
        engine = create_store_engine("sqlite:///accessgate.db")
        store = UserStore(engine)
        principal = store.create(Principal(phone_number="0900000001", password_hash=digest))
        store.find_by_identity_key("0900000001")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_by_identity_key(self, phone_number: str) -> Principal | None:
        """Look up a principal by exact phone number. Returns None if not found."""
        with guarded(self.engine) as conn:
            row = conn.execute(_users.select().where(_users.c.phone_number == phone_number)).fetchone()
        return _row_to_principal(row) if row is not None else None

    def find_by_email(self, email: str) -> Principal | None:
        with guarded(self.engine) as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_principal(row) if row is not None else None

    def find_by_id(self, principal_id: int) -> Principal | None:
        """Look up a principal by primary key. Returns None if not found."""
        with guarded(self.engine) as conn:
            row = conn.execute(_users.select().where(_users.c.id == principal_id)).fetchone()
        return _row_to_principal(row) if row is not None else None

    def find_by_refresh_digest(self, digest: str) -> Principal | None:
        """Look up the principal whose refresh-token slot holds digest.

        Expiry and active status are NOT checked here; the token issuer checks
        both, and rotate_refresh_token() re-checks them inside the write.
        """
        with guarded(self.engine) as conn:
            row = conn.execute(_users.select().where(_users.c.refresh_token_digest == digest)).fetchone()
        return _row_to_principal(row) if row is not None else None

    def identity_taken(self, phone_number: str, email: str | None = None) -> bool:
        """Return True if phone_number, or email when given, is already registered."""
        condition = _users.c.phone_number == phone_number
        if email:
            condition = condition | (_users.c.email == email)
        with guarded(self.engine) as conn:
            row = conn.execute(_users.select().where(condition).limit(1)).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, principal: Principal) -> Principal:
        """Insert a new principal and return it with id and created_at filled in.

        Raises sqlalchemy.exc.IntegrityError if the phone number or email already
        exists. Callers treat that as a duplicate identity: a concurrent request
        can register the same key between the pre-check and this insert.
        """
        created_at = _now_iso()
        with guarded(self.engine) as conn:
            result = conn.execute(
                _users.insert().values(
                    phone_number=principal.phone_number,
                    email=principal.email,
                    password_hash=principal.password_hash,
                    first_name=principal.first_name,
                    last_name=principal.last_name,
                    is_active=1 if principal.is_active else 0,
                    created_at=created_at,
                )
            )
            conn.commit()
            principal.id = result.inserted_primary_key[0]
        principal.created_at = created_at
        return principal

    def update_password_hash(self, principal_id: int, password_hash: str) -> bool:
        """Replace the stored password hash. Returns False if principal_id is unknown."""
        with guarded(self.engine) as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == principal_id).values(password_hash=password_hash)
            )
            conn.commit()
        return result.rowcount > 0

    def update_refresh_token(self, principal_id: int, digest: str | None, expires_at: datetime | None) -> bool:
        """Overwrite the single refresh-token slot. Pass (None, None) to clear it."""
        with guarded(self.engine) as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == principal_id)
                .values(refresh_token_digest=digest, refresh_token_expires_at=_to_epoch(expires_at))
            )
            conn.commit()
        return result.rowcount > 0

    def rotate_refresh_token(
        self,
        principal_id: int,
        old_digest: str,
        new_digest: str,
        new_expires_at: datetime,
        now: datetime,
    ) -> bool:
        """Swap old_digest for new_digest if and only if the slot still holds a live old_digest.

        The WHERE clause re-asserts every redemption precondition (same digest,
        not expired, account active) so the check and the write are one atomic
        statement. Returns True only for the caller whose UPDATE matched.
        """
        with guarded(self.engine) as conn:
            result = conn.execute(
                _users.update()
                .where(
                    (_users.c.id == principal_id)
                    & (_users.c.refresh_token_digest == old_digest)
                    & (_users.c.refresh_token_expires_at > now.timestamp())
                    & (_users.c.is_active == 1)
                )
                .values(refresh_token_digest=new_digest, refresh_token_expires_at=new_expires_at.timestamp())
            )
            conn.commit()
        return result.rowcount == 1

    def set_active(self, principal_id: int, active: bool) -> bool:
        """Activate or deactivate a principal. Rows are never hard-deleted."""
        with guarded(self.engine) as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == principal_id).values(is_active=1 if active else 0)
            )
            conn.commit()
        return result.rowcount > 0

    def update_profile(self, principal_id: int, **fields) -> bool:
        """Update first_name, last_name and/or email.

        Unknown keys raise ValueError rather than being silently ignored.
        Raises IntegrityError if email collides with another principal.
        """
        unknown = set(fields) - _PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Unknown profile fields: {unknown!r}")
        if not fields:
            return False
        with guarded(self.engine) as conn:
            result = conn.execute(_users.update().where(_users.c.id == principal_id).values(**fields))
            conn.commit()
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_principal(row) -> Principal:
    return Principal(
        id=row.id,
        phone_number=row.phone_number,
        email=row.email,
        password_hash=row.password_hash,
        first_name=row.first_name,
        last_name=row.last_name,
        is_active=bool(row.is_active),
        refresh_token_digest=row.refresh_token_digest,
        refresh_token_expiry=_from_epoch(row.refresh_token_expires_at),
        created_at=row.created_at,
    )
