"""
api/limiter.py -- Shared slowapi rate limiter for the credential endpoints.

api/main.py mounts it (SlowAPIMiddleware + app.state.limiter) and
api/routes/v1/auth.py applies it to login and register with
@limiter.limit(login_rate_limit).

Counters are keyed by client IP and kept in process memory, so the limit is
per worker. The limit string is read from Settings on each check rather than
frozen at import time.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_rate_limit() -> str:
    """Current per-IP limit for login/register, e.g. "10/minute"."""
    return get_settings().login_rate_limit
