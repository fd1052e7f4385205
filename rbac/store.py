"""
rbac/store.py -- SQLAlchemy Core persistence for roles, permissions and their edges.

Tables:
  permissions       -- key ("resource:action", unique) + description
  roles             -- name (unique) + description
  role_permissions  -- (role_id, permission_id) grant edges
  user_roles        -- (principal_id, role_id) assignment edges

Pattern: Repository + Data Mapper, same as auth/store.py. Edge inserts are
idempotent: a duplicate edge trips the UNIQUE constraint and the method
returns False instead of raising. That keeps seeding and repeated
assignments portable across SQLite and PostgreSQL without dialect-specific
upsert syntax.

principal_id is a plain integer, not a foreign key into auth's users table,
so the two repositories keep independent metadata.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, UniqueConstraint, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from core.database import guarded
from rbac.models import Permission, Role

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_permissions = Table(
    "permissions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("key", String(100), nullable=False, unique=True),
    Column("description", Text, nullable=False, server_default=""),
    Column("created_at", String(32), nullable=False),
)

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("description", Text, nullable=False, server_default=""),
    Column("created_at", String(32), nullable=False),
)

_role_permissions = Table(
    "role_permissions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("role_id", Integer, nullable=False, index=True),
    Column("permission_id", Integer, nullable=False),
    UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
)

_user_roles = Table(
    "user_roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("principal_id", Integer, nullable=False, index=True),
    Column("role_id", Integer, nullable=False),
    Column("assigned_at", String(32), nullable=False),
    UniqueConstraint("principal_id", "role_id", name="uq_user_role"),
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class RoleStore:
    """Repository for the role/permission graph.

    Usage:
        store = RoleStore(engine)
        perm = store.create_permission("bookings:read", "View bookings")
        role = store.create_role("manager", "Manager with booking management")
        store.grant(role.id, perm.id)
        store.assign_role(principal_id, role.id)
        store.permissions_of(role.id)    # ["bookings:read"]
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Graph reads (the enforcement path)
    # ------------------------------------------------------------------

    def roles_of(self, principal_id: int) -> list[int]:
        """Return the ids of every role assigned to principal_id."""
        with guarded(self.engine) as conn:
            rows = conn.execute(
                select(_user_roles.c.role_id)
                .where(_user_roles.c.principal_id == principal_id)
                .order_by(_user_roles.c.role_id)
            ).fetchall()
        return [r.role_id for r in rows]

    def permissions_of(self, role_id: int) -> list[str]:
        """Return the permission keys granted to role_id, sorted."""
        with guarded(self.engine) as conn:
            rows = conn.execute(
                select(_permissions.c.key)
                .select_from(_role_permissions.join(_permissions, _role_permissions.c.permission_id == _permissions.c.id))
                .where(_role_permissions.c.role_id == role_id)
                .order_by(_permissions.c.key)
            ).fetchall()
        return [r.key for r in rows]

    def permission_keys_for_principal(self, principal_id: int) -> list[str]:
        """Return every permission key reachable from principal_id's roles in one query, sorted."""
        with guarded(self.engine) as conn:
            rows = conn.execute(
                select(_permissions.c.key)
                .distinct()
                .select_from(
                    _user_roles.join(_role_permissions, _user_roles.c.role_id == _role_permissions.c.role_id).join(
                        _permissions, _role_permissions.c.permission_id == _permissions.c.id
                    )
                )
                .where(_user_roles.c.principal_id == principal_id)
                .order_by(_permissions.c.key)
            ).fetchall()
        return [r.key for r in rows]

    def role_names_of(self, principal_id: int) -> list[str]:
        with guarded(self.engine) as conn:
            rows = conn.execute(
                select(_roles.c.name)
                .select_from(_user_roles.join(_roles, _user_roles.c.role_id == _roles.c.id))
                .where(_user_roles.c.principal_id == principal_id)
                .order_by(_roles.c.name)
            ).fetchall()
        return [r.name for r in rows]

    # ------------------------------------------------------------------
    # Assignment edges
    # ------------------------------------------------------------------

    def assign_role(self, principal_id: int, role_id: int) -> bool:
        """Assign role_id to principal_id. Returns False if already assigned."""
        try:
            with guarded(self.engine) as conn:
                conn.execute(
                    _user_roles.insert().values(principal_id=principal_id, role_id=role_id, assigned_at=_now_iso())
                )
                conn.commit()
        except IntegrityError:
            return False
        return True

    def unassign_role(self, principal_id: int, role_id: int) -> bool:
        """Remove the assignment. Returns False if it did not exist."""
        with guarded(self.engine) as conn:
            result = conn.execute(
                _user_roles.delete().where(
                    (_user_roles.c.principal_id == principal_id) & (_user_roles.c.role_id == role_id)
                )
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Grant edges
    # ------------------------------------------------------------------

    def grant(self, role_id: int, permission_id: int) -> bool:
        """Grant a permission to a role. Returns False if already granted."""
        try:
            with guarded(self.engine) as conn:
                conn.execute(_role_permissions.insert().values(role_id=role_id, permission_id=permission_id))
                conn.commit()
        except IntegrityError:
            return False
        return True

    def revoke(self, role_id: int, permission_id: int) -> bool:
        with guarded(self.engine) as conn:
            result = conn.execute(
                _role_permissions.delete().where(
                    (_role_permissions.c.role_id == role_id) & (_role_permissions.c.permission_id == permission_id)
                )
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Roles and permissions (administration)
    # ------------------------------------------------------------------

    def create_permission(self, key: str, description: str = "") -> Permission:
        """Insert a permission. Raises IntegrityError if key already exists."""
        with guarded(self.engine) as conn:
            result = conn.execute(
                _permissions.insert().values(key=key, description=description, created_at=_now_iso())
            )
            conn.commit()
        return Permission(key=key, description=description, id=result.inserted_primary_key[0])

    def ensure_permission(self, key: str, description: str = "") -> Permission:
        """Return the permission with key, creating it if absent. Existing descriptions are kept."""
        existing = self.get_permission_by_key(key)
        if existing is not None:
            return existing
        try:
            return self.create_permission(key, description)
        except IntegrityError:
            return self.get_permission_by_key(key)

    def get_permission_by_key(self, key: str) -> Permission | None:
        with guarded(self.engine) as conn:
            row = conn.execute(_permissions.select().where(_permissions.c.key == key)).fetchone()
        return _row_to_permission(row) if row is not None else None

    def list_permissions(self) -> list[Permission]:
        """Return all permissions ordered by key."""
        with guarded(self.engine) as conn:
            rows = conn.execute(_permissions.select().order_by(_permissions.c.key)).fetchall()
        return [_row_to_permission(r) for r in rows]

    def create_role(self, name: str, description: str = "") -> Role:
        """Insert a role. Raises IntegrityError if name already exists."""
        with guarded(self.engine) as conn:
            result = conn.execute(_roles.insert().values(name=name, description=description, created_at=_now_iso()))
            conn.commit()
        return Role(name=name, description=description, id=result.inserted_primary_key[0])

    def ensure_role(self, name: str, description: str = "") -> Role:
        """Return the role with name, creating it if absent."""
        existing = self.get_role_by_name(name)
        if existing is not None:
            return existing
        try:
            return self.create_role(name, description)
        except IntegrityError:
            return self.get_role_by_name(name)

    def update_role(self, role_id: int, name: str | None = None, description: str | None = None) -> bool:
        """Rename or re-describe a role. Raises IntegrityError if name is taken."""
        fields = {k: v for k, v in (("name", name), ("description", description)) if v is not None}
        if not fields:
            return self.get_role(role_id) is not None
        with guarded(self.engine) as conn:
            result = conn.execute(_roles.update().where(_roles.c.id == role_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_role(self, role_id: int) -> bool:
        """Delete a role together with its grant and assignment edges."""
        with guarded(self.engine) as conn:
            conn.execute(_role_permissions.delete().where(_role_permissions.c.role_id == role_id))
            conn.execute(_user_roles.delete().where(_user_roles.c.role_id == role_id))
            result = conn.execute(_roles.delete().where(_roles.c.id == role_id))
            conn.commit()
        return result.rowcount > 0

    def get_role(self, role_id: int) -> Role | None:
        with guarded(self.engine) as conn:
            row = conn.execute(_roles.select().where(_roles.c.id == role_id)).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_role_by_name(self, name: str) -> Role | None:
        with guarded(self.engine) as conn:
            row = conn.execute(_roles.select().where(_roles.c.name == name)).fetchone()
        return _row_to_role(row) if row is not None else None

    def list_roles(self) -> list[Role]:
        """Return all roles ordered by name, each with its granted permission keys."""
        with guarded(self.engine) as conn:
            role_rows = conn.execute(_roles.select().order_by(_roles.c.name)).fetchall()
            grant_rows = conn.execute(
                select(_role_permissions.c.role_id, _permissions.c.key)
                .select_from(_role_permissions.join(_permissions, _role_permissions.c.permission_id == _permissions.c.id))
                .order_by(_permissions.c.key)
            ).fetchall()
        keys_by_role: dict[int, list[str]] = {}
        for row in grant_rows:
            keys_by_role.setdefault(row.role_id, []).append(row.key)
        roles = [_row_to_role(r) for r in role_rows]
        for role in roles:
            role.permissions = keys_by_role.get(role.id, [])
        return roles


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_permission(row) -> Permission:
    return Permission(id=row.id, key=row.key, description=row.description or "")


def _row_to_role(row) -> Role:
    return Role(id=row.id, name=row.name, description=row.description or "")
