"""Rate limiting middleware using slowapi.

Default limits:
- Global: 300 req/min per IP (Stripe bursts webhooks after outages)
- Callable endpoints: 20 req/min (each call reaches Stripe)
- Auth events: 120 req/min
"""

from __future__ import annotations

import logging

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from ..utils.client_ip import get_client_ip
from ..utils.security_logger import security_logger

logger = logging.getLogger("stripe_sync.rate_limit")


limiter = Limiter(
    key_func=get_client_ip,
    default_limits=["300/minute"],
    storage_uri="memory://",
)

# Usage: @rate_limit_callable on endpoints that call Stripe for a user
rate_limit_callable = limiter.limit("20/minute")
rate_limit_auth_events = limiter.limit("120/minute")


def setup_rate_limiting(app):
    """Configure rate limiting on the FastAPI app."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)
    app.add_middleware(SlowAPIMiddleware)
    logger.info("Rate limiting enabled")


async def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Log the violation and answer 429 with Retry-After."""
    security_logger.rate_limit_exceeded(
        ip=get_client_ip(request),
        path=request.url.path,
        limit=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content={
            "error": "Too many requests",
            "code": "RATE_LIMIT_EXCEEDED",
            "detail": str(exc.detail)
        },
        headers={"Retry-After": "60"}
    )
