"""
tests/test_config.py -- Unit tests for core/config.py.

Covers:
  - DEBUG=true without SECRET_KEY auto-generates a 64-char key
  - production mode without SECRET_KEY refuses to start
  - keys shorter than 32 characters are rejected in every mode
  - secure_cookies defaults to "not debug" unless set explicitly
  - bcrypt_rounds outside 4..31 is rejected
  - values are read from environment variables
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings, get_settings

GOOD_KEY = "k" * 32


def test_debug_generates_secret_key():
    settings = Settings(debug=True, secret_key="")
    assert len(settings.secret_key) == 64


def test_production_requires_secret_key():
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(debug=False, secret_key="")


@pytest.mark.parametrize("debug", [True, False])
def test_short_secret_key_rejected(debug):
    with pytest.raises(ValidationError, match="at least 32 characters"):
        Settings(debug=debug, secret_key="too-short")


def test_secure_cookies_follow_debug():
    assert Settings(debug=False, secret_key=GOOD_KEY).secure_cookies is True
    assert Settings(debug=True, secret_key=GOOD_KEY).secure_cookies is False
    assert Settings(debug=True, secret_key=GOOD_KEY, secure_cookies=True).secure_cookies is True


@pytest.mark.parametrize("rounds", [3, 32])
def test_bcrypt_rounds_bounds(rounds):
    with pytest.raises(ValidationError):
        Settings(debug=True, secret_key=GOOD_KEY, bcrypt_rounds=rounds)


def test_defaults():
    settings = Settings(debug=True, secret_key=GOOD_KEY)
    assert settings.access_token_expire_seconds == 900
    assert settings.refresh_token_expire_seconds == 7 * 24 * 60 * 60
    assert settings.permission_cache_ttl_seconds == 0.0


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", GOOD_KEY)
    monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_SECONDS", "60")
    monkeypatch.setenv("PERMISSION_CACHE_TTL_SECONDS", "15")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.secret_key == GOOD_KEY
        assert settings.access_token_expire_seconds == 60
        assert settings.permission_cache_ttl_seconds == 15.0
        assert get_settings() is settings
    finally:
        get_settings.cache_clear()


def test_login_rate_limit_follows_settings():
    from api.limiter import login_rate_limit

    assert login_rate_limit() == get_settings().login_rate_limit
