"""
api/limiter.py -- Shared slowapi rate limiter and the limit strings routes use.

One Limiter instance for the whole app so every route shares the same
in-memory counter store; per-module instances would each count separately
and never trip.

Limits are keyed by client IP:
  AUTH_LIMIT -- register and login (credential stuffing / mass sign-up)
  API_LIMIT  -- document uploads and link minting

RATE_LIMIT_ENABLED=false turns every limit off (test suites, load tests).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

_settings = get_settings()

AUTH_LIMIT = _settings.auth_rate_limit
API_LIMIT = _settings.api_rate_limit

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=_settings.rate_limit_enabled,
)
