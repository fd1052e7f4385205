"""
tests/test_concurrent_refresh.py -- Refresh-token redemption under concurrency.

Covers:
  - N threads redeeming the same refresh token at once: exactly one wins,
    every other caller gets invalid_or_expired_refresh_token
  - the winner's new refresh token is the one left in the slot

Uses a file-backed SQLite database (not :memory:) so each thread gets its own
pooled connection and the compare-and-swap UPDATE is really contended.
"""

from __future__ import annotations

import threading

import pytest

from auth.errors import AuthError, AuthErrorKind
from auth.models import Session
from rbac.services import build_services

THREADS = 8


@pytest.fixture
def file_services(settings, tmp_path):
    file_settings = settings.model_copy(
        update={"database_url": f"sqlite:///{tmp_path / 'refresh.db'}", "store_timeout_seconds": 10.0}
    )
    svc = build_services(file_settings)
    yield svc
    svc.close()


def test_exactly_one_concurrent_redemption_wins(file_services):
    session = file_services.sessions.register("0900000001", "secret123")
    assert isinstance(session, Session)

    barrier = threading.Barrier(THREADS)
    results: list = []
    lock = threading.Lock()

    def redeem():
        barrier.wait()
        outcome = file_services.sessions.refresh(session.tokens.refresh_token)
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=redeem) for _ in range(THREADS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert len(results) == THREADS
    winners = [r for r in results if isinstance(r, Session)]
    losers = [r for r in results if isinstance(r, AuthError)]
    assert len(winners) == 1
    assert len(losers) == THREADS - 1
    assert all(r.kind == AuthErrorKind.invalid_or_expired_refresh_token for r in losers)

    stored = file_services.user_store.find_by_id(session.principal.id)
    assert stored.refresh_token_digest == file_services.issuer.refresh_digest(winners[0].tokens.refresh_token)


def test_sequential_replay_after_rotation_fails(file_services):
    session = file_services.sessions.register("0900000002", "secret123")
    assert isinstance(file_services.sessions.refresh(session.tokens.refresh_token), Session)
    replay = file_services.sessions.refresh(session.tokens.refresh_token)
    assert replay.kind == AuthErrorKind.invalid_or_expired_refresh_token
