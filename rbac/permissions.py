"""
rbac/permissions.py -- Effective-permission resolution.

effective_permissions(principal_id) is the union, over every role assigned to
the principal, of every permission granted to that role. There are no
negative permissions and no precedence rules.

Caching:
  Optional per-principal TTL cache (Settings.permission_cache_ttl_seconds;
  0 disables it). Mutations that change a principal's result must go through
  this class -- assign_role()/unassign_role() drop that principal's entry,
  grant()/revoke()/delete_role() drop every entry because a role edge
  affects all holders.
  The cache is guarded by a lock since sync handlers run in a threadpool.
  Invalidations bump a generation counter; a lookup that raced with one
  returns its result without caching it.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rbac.store import RoleStore

logger = logging.getLogger("accessgate.rbac.permissions")


class PermissionGraphReader:
    """Resolves principals to permission sets through RoleStore.

    Usage:
        reader = PermissionGraphReader(role_store, cache_ttl_seconds=30)
        reader.effective_permissions(principal_id)   # frozenset({"bookings:read", ...})
        reader.assign_role(principal_id, role_id)    # writes through and invalidates
    """

    def __init__(self, store: RoleStore, cache_ttl_seconds: float = 0.0) -> None:
        self._store = store
        self.cache_ttl = cache_ttl_seconds
        self._cache: dict[int, tuple[float, frozenset[str]]] = {}
        # Bumped by every invalidation; a read only caches its result if no
        # invalidation happened while it was querying the store.
        self._generation = 0
        self._principal_generation: dict[int, int] = {}
        self._lock = threading.Lock()

    def effective_permissions(self, principal_id: int) -> frozenset[str]:
        generation = None
        if self.cache_ttl > 0:
            with self._lock:
                entry = self._cache.get(principal_id)
                generation = self._generation_of(principal_id)
            if entry is not None and time.monotonic() - entry[0] < self.cache_ttl:
                return entry[1]

        keys: set[str] = set()
        for role_id in self._store.roles_of(principal_id):
            keys.update(self._store.permissions_of(role_id))
        result = frozenset(keys)

        if generation is not None:
            with self._lock:
                if self._generation_of(principal_id) == generation:
                    self._cache[principal_id] = (time.monotonic(), result)
        return result

    # ------------------------------------------------------------------
    # Write-through mutations
    # ------------------------------------------------------------------

    def assign_role(self, principal_id: int, role_id: int) -> bool:
        changed = self._store.assign_role(principal_id, role_id)
        self.invalidate(principal_id)
        return changed

    def unassign_role(self, principal_id: int, role_id: int) -> bool:
        changed = self._store.unassign_role(principal_id, role_id)
        self.invalidate(principal_id)
        return changed

    def grant(self, role_id: int, permission_id: int) -> bool:
        changed = self._store.grant(role_id, permission_id)
        self.invalidate_all()
        return changed

    def revoke(self, role_id: int, permission_id: int) -> bool:
        changed = self._store.revoke(role_id, permission_id)
        self.invalidate_all()
        return changed

    def delete_role(self, role_id: int) -> bool:
        deleted = self._store.delete_role(role_id)
        self.invalidate_all()
        return deleted

    # ------------------------------------------------------------------
    # Cache control
    # ------------------------------------------------------------------

    def invalidate(self, principal_id: int) -> None:
        with self._lock:
            self._principal_generation[principal_id] = self._principal_generation.get(principal_id, 0) + 1
            self._cache.pop(principal_id, None)

    def invalidate_all(self) -> None:
        with self._lock:
            self._generation += 1
            self._cache.clear()

    def _generation_of(self, principal_id: int) -> tuple[int, int]:
        # Caller holds self._lock.
        return self._generation, self._principal_generation.get(principal_id, 0)
