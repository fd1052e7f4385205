"""
tests/test_guard.py -- Unit tests for rbac/guard.py.

Covers:
  - missing, malformed, expired or foreign-signed token -> unauthenticated
  - token whose principal was deactivated after issue -> unauthenticated
  - empty requirement set -> allow for any authenticated principal
  - required keys are a conjunction; Forbidden lists every missing key
  - role assignment takes effect on the next call
  - store failure raises StoreUnavailable, never "allow"
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.errors import AuthError, AuthErrorKind, StoreUnavailable


class TestAuthentication:
    @pytest.mark.parametrize("token", [None, "", "garbage", "a.b.c"])
    def test_bad_tokens(self, services, token):
        result = services.guard.authorize(token)
        assert isinstance(result, AuthError)
        assert result.kind == AuthErrorKind.unauthenticated

    def test_expired_token(self, services, settings, make_principal):
        principal = make_principal().principal
        past = datetime.now(timezone.utc) - timedelta(minutes=1)
        token = jwt.encode(
            {"sub": str(principal.id), "phone_number": principal.phone_number, "iat": past, "exp": past},
            settings.secret_key,
            algorithm="HS256",
        )
        assert services.guard.authorize(token).kind == AuthErrorKind.unauthenticated

    def test_deactivated_after_issue(self, services, make_principal):
        session = make_principal()
        services.sessions.set_active(session.principal.id, False)
        assert services.guard.authorize(session.tokens.access_token).kind == AuthErrorKind.unauthenticated

    def test_authenticate_returns_summary(self, services, make_principal):
        session = make_principal()
        assert services.guard.authenticate(session.tokens.access_token) == session.principal


class TestAuthorization:
    def test_no_requirements_allows(self, services, make_principal):
        session = make_principal()
        assert services.guard.authorize(session.tokens.access_token) == session.principal.id

    def test_single_key_allowed(self, services, make_principal):
        session = make_principal(roles=("manager",))
        assert services.guard.authorize(session.tokens.access_token, {"bookings:read"}) == session.principal.id

    def test_conjunction_reports_every_missing_key(self, services, make_principal):
        session = make_principal(roles=("staff",))
        result = services.guard.authorize(
            session.tokens.access_token, {"bookings:read", "orders:update", "payments:refund"}
        )
        assert result.kind == AuthErrorKind.forbidden
        assert result.missing == ("orders:update", "payments:refund")

    def test_no_roles_is_forbidden(self, services, make_principal):
        session = make_principal()
        result = services.guard.authorize(session.tokens.access_token, ["products:read"])
        assert result.kind == AuthErrorKind.forbidden
        assert result.missing == ("products:read",)

    def test_role_change_visible_on_next_call(self, services, make_principal):
        session = make_principal()
        token = session.tokens.access_token
        assert services.guard.authorize(token, {"bookings:read"}).kind == AuthErrorKind.forbidden

        manager = services.role_store.get_role_by_name("manager")
        services.permission_reader.assign_role(session.principal.id, manager.id)
        assert services.guard.authorize(token, {"bookings:read"}) == session.principal.id

        services.permission_reader.unassign_role(session.principal.id, manager.id)
        assert services.guard.authorize(token, {"bookings:read"}).kind == AuthErrorKind.forbidden


class TestFailClosed:
    def test_store_failure_raises(self, services, make_principal, monkeypatch):
        session = make_principal(roles=("manager",))

        def broken(principal_id):
            raise StoreUnavailable("roles table unreachable")

        monkeypatch.setattr(services.role_store, "roles_of", broken)
        with pytest.raises(StoreUnavailable):
            services.guard.authorize(session.tokens.access_token, {"bookings:read"})

    def test_engine_failure_surfaces_as_store_unavailable(self, services, make_principal):
        session = make_principal(roles=("manager",))
        with services.engine.connect() as conn:
            conn.exec_driver_sql("DROP TABLE user_roles")
            conn.commit()
        with pytest.raises(StoreUnavailable):
            services.guard.authorize(session.tokens.access_token, {"bookings:read"})
