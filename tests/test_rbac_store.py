"""
tests/test_rbac_store.py -- Unit tests for rbac/store.py and rbac/seed.py.

Covers:
  - create/ensure/get for permissions and roles; duplicate keys raise
  - grant()/revoke() and assign_role()/unassign_role() report whether anything changed
  - roles_of(), permissions_of(), role_names_of() read the graph back
  - list_roles() carries each role's granted keys
  - seed_defaults(): catalogue shape, role contents, idempotency
  - update_role()/delete_role(); deletion also removes grant and assignment edges
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from core.database import create_store_engine
from rbac.seed import DEFAULT_PERMISSIONS, DEFAULT_ROLES, seed_defaults
from rbac.store import RoleStore


@pytest.fixture
def store():
    s = RoleStore(create_store_engine("sqlite:///:memory:"))
    yield s
    s.engine.dispose()


class TestCatalogue:
    def test_create_and_get_permission(self, store):
        perm = store.create_permission("bookings:read", "View bookings")
        assert perm.id is not None
        assert store.get_permission_by_key("bookings:read") == perm

    def test_duplicate_permission_key_raises(self, store):
        store.create_permission("bookings:read")
        with pytest.raises(IntegrityError):
            store.create_permission("bookings:read")

    def test_ensure_permission_keeps_existing(self, store):
        first = store.ensure_permission("bookings:read", "View bookings")
        second = store.ensure_permission("bookings:read", "Different description")
        assert second.id == first.id
        assert second.description == "View bookings"

    def test_create_and_get_role(self, store):
        role = store.create_role("manager", "Manager")
        assert store.get_role(role.id).name == "manager"
        assert store.get_role_by_name("manager").id == role.id
        assert store.get_role_by_name("nobody") is None

    def test_duplicate_role_name_raises(self, store):
        store.create_role("manager")
        with pytest.raises(IntegrityError):
            store.create_role("manager")

    def test_list_permissions_sorted(self, store):
        for key in ("orders:read", "bookings:read", "products:read"):
            store.create_permission(key)
        assert [p.key for p in store.list_permissions()] == ["bookings:read", "orders:read", "products:read"]


class TestGraph:
    def test_grant_and_revoke(self, store):
        role = store.create_role("manager")
        perm = store.create_permission("bookings:read")

        assert store.grant(role.id, perm.id) is True
        assert store.grant(role.id, perm.id) is False
        assert store.permissions_of(role.id) == ["bookings:read"]

        assert store.revoke(role.id, perm.id) is True
        assert store.revoke(role.id, perm.id) is False
        assert store.permissions_of(role.id) == []

    def test_assign_and_unassign(self, store):
        manager = store.create_role("manager")
        staff = store.create_role("staff")

        assert store.assign_role(7, manager.id) is True
        assert store.assign_role(7, manager.id) is False
        store.assign_role(7, staff.id)
        assert store.roles_of(7) == sorted([manager.id, staff.id])
        assert store.role_names_of(7) == ["manager", "staff"]

        assert store.unassign_role(7, manager.id) is True
        assert store.unassign_role(7, manager.id) is False
        assert store.role_names_of(7) == ["staff"]

    def test_principal_without_roles(self, store):
        assert store.roles_of(99) == []
        assert store.role_names_of(99) == []

    def test_list_roles_includes_keys(self, store):
        role = store.create_role("manager")
        for key in ("orders:read", "bookings:read"):
            store.grant(role.id, store.create_permission(key).id)
        store.create_role("empty")

        roles = {r.name: r for r in store.list_roles()}
        assert roles["manager"].permissions == ["bookings:read", "orders:read"]
        assert roles["empty"].permissions == []


class TestSeed:
    def test_seeds_full_catalogue(self, store):
        added = seed_defaults(store)
        assert added > 0
        assert {p.key for p in store.list_permissions()} == set(DEFAULT_PERMISSIONS)
        assert {r.name for r in store.list_roles()} == set(DEFAULT_ROLES)

    def test_idempotent(self, store):
        seed_defaults(store)
        assert seed_defaults(store) == 0
        assert len(store.list_permissions()) == len(DEFAULT_PERMISSIONS)

    def test_role_contents(self, store):
        seed_defaults(store)
        roles = {r.name: set(r.permissions) for r in store.list_roles()}
        assert roles["super-admin"] == set(DEFAULT_PERMISSIONS)
        assert "users:delete" not in roles["admin"]
        assert "bookings:read" in roles["manager"]
        assert "payments:refund" not in roles["manager"]
        assert roles["customer"] == {"products:read", "services:read", "packages:read"}

    def test_keys_are_resource_action(self):
        for key in DEFAULT_PERMISSIONS:
            resource, _, action = key.partition(":")
            assert resource and action


class TestPermissionKeysForPrincipal:
    def test_single_query_matches_union(self, store):
        seed_defaults(store)
        staff = store.get_role_by_name("staff")
        manager = store.get_role_by_name("manager")
        store.assign_role(5, staff.id)
        store.assign_role(5, manager.id)

        expected = sorted(set(store.permissions_of(staff.id)) | set(store.permissions_of(manager.id)))
        assert store.permission_keys_for_principal(5) == expected

    def test_no_roles(self, store):
        assert store.permission_keys_for_principal(5) == []


class TestRoleLifecycle:
    def test_update_role(self, store):
        role = store.create_role("staff", "Staff")
        assert store.update_role(role.id, name="crew") is True
        assert store.get_role(role.id).name == "crew"
        assert store.get_role(role.id).description == "Staff"
        assert store.update_role(role.id, description="Front desk") is True
        assert store.get_role(role.id).description == "Front desk"

    def test_update_missing_role(self, store):
        assert store.update_role(42, name="ghost") is False
        assert store.update_role(42) is False

    def test_update_to_taken_name_raises(self, store):
        store.create_role("manager")
        staff = store.create_role("staff")
        with pytest.raises(IntegrityError):
            store.update_role(staff.id, name="manager")

    def test_delete_role_removes_edges(self, store):
        role = store.create_role("manager")
        perm = store.create_permission("bookings:read")
        store.grant(role.id, perm.id)
        store.assign_role(7, role.id)

        assert store.delete_role(role.id) is True
        assert store.get_role(role.id) is None
        assert store.roles_of(7) == []
        assert store.permissions_of(role.id) == []
        assert store.get_permission_by_key("bookings:read") is not None
        assert store.delete_role(role.id) is False
