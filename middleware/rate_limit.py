# middleware/rate_limit.py
"""
Rate limiting with slowapi, keyed per user when a bearer token is present.

Usage in route files:
    from middleware.rate_limit import limiter

    @router.get("/symbols")
    @limiter.limit(SYMBOL_SEARCH_RATE_LIMIT)
    async def search(request: Request, ...):
        ...
"""
import logging
import os

from fastapi import Request
from jose import JWTError, jwt
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)


def _get_rate_limit_key(request: Request) -> str:
    """JWT `sub` when available (unverified; auth is enforced by the route), else client IP."""
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        token = auth.split(" ", 1)[1].strip()
        try:
            sub = jwt.get_unverified_claims(token).get("sub")
        except JWTError:
            sub = None
        if sub:
            return f"user:{sub}"

    return get_remote_address(request)


DEFAULT_RATE_LIMIT = os.getenv("RATE_LIMIT_DEFAULT", "60/minute")
# autocomplete fires on every debounced keystroke
SYMBOL_SEARCH_RATE_LIMIT = os.getenv("RATE_LIMIT_SYMBOL_SEARCH", "30/minute")

limiter = Limiter(
    key_func=_get_rate_limit_key,
    default_limits=[DEFAULT_RATE_LIMIT],
    storage_uri=os.getenv("REDIS_URL", "memory://"),
    strategy="fixed-window",
)
