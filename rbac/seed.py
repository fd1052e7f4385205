"""
rbac/seed.py -- Default permission catalogue and roles.

seed_defaults() is idempotent: permissions and roles are created only when
missing and grant edges are inserted only once. It runs at API startup and
from `python main.py seed`, so an empty database is immediately usable.

Roles:
  super-admin -- every permission
  admin       -- every permission except users:delete and permissions:delete
  manager     -- read catalogue, manage bookings and orders, take payments
  staff       -- read catalogue, read/create bookings, read orders
  customer    -- read catalogue
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rbac.store import RoleStore

logger = logging.getLogger("accessgate.rbac.seed")

_CRUD_RESOURCES: dict[str, tuple[str, str, str, str]] = {
    "roles": ("Create new roles", "View roles and their details", "Update roles and manage permissions", "Delete roles"),
    "permissions": (
        "Create new permissions",
        "View permissions and their details",
        "Update permissions",
        "Delete permissions",
    ),
    "users": ("Create new users", "View users and their details", "Update user information", "Delete users"),
    "products": ("Create new products", "View products", "Update products", "Delete products"),
    "services": ("Create new services", "View services", "Update services", "Delete services"),
    "packages": ("Create new packages", "View packages", "Update packages", "Delete packages"),
    "bookings": ("Create new bookings", "View bookings", "Update bookings", "Delete bookings"),
    "orders": ("Create new orders", "View orders", "Update orders", "Delete orders"),
}

DEFAULT_PERMISSIONS: dict[str, str] = {
    f"{resource}:{action}": description
    for resource, descriptions in _CRUD_RESOURCES.items()
    for action, description in zip(("create", "read", "update", "delete"), descriptions)
}
DEFAULT_PERMISSIONS.update(
    {
        "payments:create": "Process payments",
        "payments:read": "View payment records",
        "payments:update": "Update payment information",
        "payments:refund": "Process refunds",
    }
)

_ALL = frozenset(DEFAULT_PERMISSIONS)

DEFAULT_ROLES: dict[str, tuple[str, frozenset[str]]] = {
    "super-admin": ("Super administrator with all permissions", _ALL),
    "admin": ("Administrator with most permissions", _ALL - {"users:delete", "permissions:delete"}),
    "manager": (
        "Manager with booking and order management",
        frozenset(
            {
                "products:read",
                "services:read",
                "packages:read",
                "bookings:create",
                "bookings:read",
                "bookings:update",
                "orders:create",
                "orders:read",
                "orders:update",
                "payments:create",
                "payments:read",
            }
        ),
    ),
    "staff": (
        "Staff member with basic permissions",
        frozenset(
            {"products:read", "services:read", "packages:read", "bookings:read", "bookings:create", "orders:read"}
        ),
    ),
    "customer": ("Customer with basic read permissions", frozenset({"products:read", "services:read", "packages:read"})),
}


def seed_defaults(store: RoleStore) -> int:
    """Create the default catalogue. Returns the number of new grant edges."""
    permission_ids: dict[str, int] = {}
    for key, description in DEFAULT_PERMISSIONS.items():
        permission_ids[key] = store.ensure_permission(key, description).id

    new_grants = 0
    for name, (description, keys) in DEFAULT_ROLES.items():
        role = store.ensure_role(name, description)
        for key in sorted(keys):
            if store.grant(role.id, permission_ids[key]):
                new_grants += 1

    if new_grants:
        logger.info(
            "Seeded %d permissions, %d roles, %d new grants", len(DEFAULT_PERMISSIONS), len(DEFAULT_ROLES), new_grants
        )
    return new_grants
