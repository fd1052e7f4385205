"""
rbac/models.py -- Domain dataclasses for the role/permission graph.

Permission keys have the form "resource:action" (e.g. "bookings:read").
Permissions are reference data; roles bundle them; principals receive roles.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Permission:
    key: str
    description: str = ""
    id: int | None = None


@dataclass
class Role:
    """A named bundle of permissions.

    permissions holds the granted keys when the role was loaded with them
    (RoleStore.list_roles); it is empty for bare lookups.
    """

    name: str
    description: str = ""
    id: int | None = None
    permissions: list[str] = field(default_factory=list)
