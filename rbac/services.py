"""
rbac/services.py -- Assemble the auth + rbac component graph.

Every component receives its collaborators at construction; nothing reaches
for a module-level database client. build_services() is the one place that
wires them, used by the API lifespan, the CLI, and the tests.

Usage:
    services = build_services(get_settings())
    services.sessions.login("0900000001", "secret123")
    services.close()
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import Engine

from auth.hashing import PasswordHasher
from auth.sessions import SessionManager
from auth.store import UserStore
from auth.tokens import TokenIssuer
from core.config import Settings
from core.database import create_store_engine
from rbac.guard import AuthorizationGuard
from rbac.permissions import PermissionGraphReader
from rbac.store import RoleStore


@dataclass
class Services:
    """The wired component graph. Owns the engine; the stores only borrow it."""

    engine: Engine
    user_store: UserStore
    role_store: RoleStore
    hasher: PasswordHasher
    issuer: TokenIssuer
    sessions: SessionManager
    permission_reader: PermissionGraphReader
    guard: AuthorizationGuard

    def close(self) -> None:
        self.engine.dispose()


def build_services(settings: Settings, engine: Engine | None = None) -> Services:
    """Build the full component graph. Pass engine to share an existing database."""
    if engine is None:
        engine = create_store_engine(settings.database_url, settings.store_timeout_seconds)
    user_store = UserStore(engine)
    role_store = RoleStore(engine)
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    issuer = TokenIssuer(
        user_store,
        secret_key=settings.secret_key,
        access_ttl_seconds=settings.access_token_expire_seconds,
        refresh_ttl_seconds=settings.refresh_token_expire_seconds,
    )
    sessions = SessionManager(user_store, hasher, issuer)
    reader = PermissionGraphReader(role_store, cache_ttl_seconds=settings.permission_cache_ttl_seconds)
    guard = AuthorizationGuard(issuer, sessions, reader)
    return Services(
        engine=engine,
        user_store=user_store,
        role_store=role_store,
        hasher=hasher,
        issuer=issuer,
        sessions=sessions,
        permission_reader=reader,
        guard=guard,
    )
