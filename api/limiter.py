"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in the route modules
(to apply per-route limits with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

Layers:
  global -- default_limits, every route without its own limit (100 per 15 minutes)
  api    -- generation proxy routes (20/minute)
  login  -- POST /api/login and POST /api/signup (10/minute)
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

_settings = get_settings()

GLOBAL_LIMIT = _settings.global_rate_limit
API_LIMIT = _settings.api_rate_limit
LOGIN_LIMIT = _settings.login_rate_limit

limiter = Limiter(key_func=get_remote_address, default_limits=[GLOBAL_LIMIT], storage_uri="memory://")
