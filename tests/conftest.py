"""
tests/conftest.py -- Shared test fixtures for AccessGate unit and integration tests.

This module provides:
  - settings: a dev-mode Settings pointing at an in-memory SQLite database
  - services: the full component graph (stores, hasher, issuer, sessions,
    permission reader, guard) built on that database, seeded with the
    default roles and permissions
  - make_principal: registers a principal and optionally assigns roles
  - api_client: TestClient on the real FastAPI app with a patched lifespan

Design: sqlite:///:memory: gets a StaticPool from create_store_engine(), so
every connection -- including the ones TestClient's threadpool opens --
sees the same in-memory database.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
LOGIN_RATE_LIMIT is raised so the login/register limit never trips mid-suite.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app, install_services
from auth.errors import AuthError
from auth.models import Session
from core.config import Settings
from rbac.seed import seed_defaults
from rbac.services import Services, build_services

TEST_SECRET = "test-secret-key-with-at-least-32-characters"


def make_settings(**overrides) -> Settings:
    values = dict(
        debug=True,
        secret_key=TEST_SECRET,
        database_url="sqlite:///:memory:",
        bcrypt_rounds=4,
        store_timeout_seconds=2.0,
    )
    values.update(overrides)
    return Settings(**values)


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def services(settings: Settings) -> Generator[Services, None, None]:
    """Fresh, seeded component graph per test."""
    svc = build_services(settings)
    seed_defaults(svc.role_store)
    yield svc
    svc.close()


@pytest.fixture
def make_principal(services: Services) -> Callable[..., Session]:
    """Register a principal and assign the named roles. Returns its Session."""

    def _make(phone_number: str = "0900000001", password: str = "secret123", roles: tuple = (), **profile) -> Session:
        session = services.sessions.register(phone_number, password, **profile)
        assert not isinstance(session, AuthError), session
        for name in roles:
            role = services.role_store.get_role_by_name(name)
            services.permission_reader.assign_role(session.principal.id, role.id)
        return session

    return _make


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(services: Services):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-built test services into app.state so TestClient routes see
    the isolated in-memory database rather than the configured one.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        install_services(app, services)
        yield

    return test_lifespan


@pytest.fixture
def api_client(services: Services) -> Generator[tuple[TestClient, Services], None, None]:
    """Yield (client, services) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers and the real guard. Function-scoped: the client's
    cookie jar and the database start empty for every test.
    """
    app.router.lifespan_context = _patch_lifespan(services)

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client, services
