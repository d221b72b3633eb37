"""
api/limiter.py -- The one slowapi Limiter shared by the app and the auth routes.

api/main.py mounts it (SlowAPIMiddleware looks for app.state.limiter);
api/routes/v1/auth.py applies LOGIN_LIMIT to POST /auth/login. A second
Limiter instance would keep its own counters and the limit would never fire.

Counters live in process memory and are keyed by client IP. Tests switch the
limiter off with `limiter.enabled = False`.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Brute-force ceiling for password login, per client IP.
LOGIN_LIMIT = "10/minute"

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
