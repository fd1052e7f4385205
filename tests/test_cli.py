"""
tests/test_cli.py -- Tests for the administration CLI in main.py.

Covers:
  - seed creates the default catalogue and is idempotent
  - create-user with --role provisions an active, role-bearing account
  - create-user rejects a duplicate phone number and an unknown role
  - assign-role / unassign-role / permissions reflect the graph
  - grant / revoke change a role's keys; unknown keys are rejected
  - create-user rejects a password over bcrypt's 72-byte limit
  - deactivate / activate toggle login
"""

from __future__ import annotations

import pytest

from auth.errors import AuthErrorKind
from auth.models import Session
from core.config import get_settings
from main import main
from rbac.services import build_services


@pytest.fixture
def cli_db(tmp_path, monkeypatch):
    """Point Settings at a throwaway database file for the duration of one test."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.setenv("SECRET_KEY", "cli-secret-key-with-at-least-32-characters")
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def inspect(cli_db):
    """Open the CLI's database with a fresh component graph."""
    opened = []

    def _open():
        svc = build_services(get_settings())
        opened.append(svc)
        return svc

    yield _open
    for svc in opened:
        svc.close()


def test_seed(cli_db, capsys, inspect):
    assert main(["seed"]) == 0
    assert "new grant" in capsys.readouterr().out
    assert main(["seed"]) == 0
    assert "(0 new grant(s))" in capsys.readouterr().out
    assert inspect().role_store.get_role_by_name("manager") is not None


def test_create_user_with_role(cli_db, capsys, inspect):
    main(["seed"])
    assert main(["create-user", "0900000001", "--password", "secret123", "--role", "manager"]) == 0
    out = capsys.readouterr().out
    assert "Created user" in out
    assert "Assigned role 'manager'" in out

    svc = inspect()
    session = svc.sessions.login("0900000001", "secret123")
    assert isinstance(session, Session)
    assert "bookings:read" in svc.permission_reader.effective_permissions(session.principal.id)


def test_create_user_leaves_no_refresh_token(cli_db, inspect):
    main(["create-user", "0900000001", "--password", "secret123"])
    principal = inspect().user_store.find_by_identity_key("0900000001")
    assert principal.refresh_token_digest is None


def test_create_user_duplicate(cli_db, capsys):
    main(["create-user", "0900000001", "--password", "secret123"])
    assert main(["create-user", "0900000001", "--password", "secret123"]) == 1
    assert "already exists" in capsys.readouterr().out


def test_create_user_unknown_role(cli_db, capsys, inspect):
    main(["seed"])
    assert main(["create-user", "0900000001", "--password", "secret123", "--role", "wizard"]) == 1
    assert inspect().user_store.find_by_identity_key("0900000001") is None


def test_create_user_short_password(cli_db):
    assert main(["create-user", "0900000001", "--password", "abc"]) == 1


def test_create_user_password_over_byte_limit(cli_db, capsys, inspect):
    assert main(["create-user", "0900000001", "--password", "\U0001F600" * 20]) == 1
    assert "72 bytes" in capsys.readouterr().out
    assert inspect().user_store.find_by_identity_key("0900000001") is None


def test_assign_unassign_and_permissions(cli_db, capsys):
    main(["seed"])
    main(["create-user", "0900000001", "--password", "secret123"])
    capsys.readouterr()

    assert main(["assign-role", "0900000001", "staff"]) == 0
    assert main(["permissions", "0900000001"]) == 0
    out = capsys.readouterr().out
    assert "Roles: staff" in out
    assert "bookings:create" in out

    assert main(["unassign-role", "0900000001", "staff"]) == 0
    main(["permissions", "0900000001"])
    out = capsys.readouterr().out
    assert "Roles: (none)" in out


def test_grant_and_revoke(cli_db, capsys, inspect):
    main(["seed"])
    main(["create-user", "0900000001", "--password", "secret123", "--role", "staff"])
    capsys.readouterr()

    assert main(["grant", "staff", "orders:update"]) == 0
    assert "granted to 'staff'" in capsys.readouterr().out
    svc = inspect()
    principal = svc.user_store.find_by_identity_key("0900000001")
    assert "orders:update" in svc.permission_reader.effective_permissions(principal.id)

    assert main(["revoke", "staff", "orders:update"]) == 0
    assert "revoked from 'staff'" in capsys.readouterr().out
    assert "orders:update" not in inspect().permission_reader.effective_permissions(principal.id)


def test_grant_unknown_key(cli_db, capsys):
    main(["seed"])
    assert main(["grant", "staff", "wizards:summon"]) == 1
    assert "Unknown permission" in capsys.readouterr().out


def test_unknown_user(cli_db, capsys):
    main(["seed"])
    assert main(["assign-role", "0999999999", "staff"]) == 1
    assert "No user" in capsys.readouterr().out


def test_deactivate_and_activate(cli_db, inspect):
    main(["create-user", "0900000001", "--password", "secret123"])

    assert main(["deactivate", "0900000001"]) == 0
    assert inspect().sessions.login("0900000001", "secret123").kind == AuthErrorKind.account_inactive

    assert main(["activate", "0900000001"]) == 0
    assert isinstance(inspect().sessions.login("0900000001", "secret123"), Session)


def test_no_command_prints_help(cli_db, capsys):
    assert main([]) == 0
    assert "usage" in capsys.readouterr().out.lower()
