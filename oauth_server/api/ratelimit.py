"""Rate limiting dependency for the unauthenticated OAuth routes.

A dependency rather than middleware: only the routes that declare it pay
for it, and each route picks its own limits.  Discovery documents and
/health stay unlimited so liveness checks always get through.

Keys are by client IP.  These routes run before the caller holds any
token, so there is no better identity to key on.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

from oauth_server.core.metrics import RATE_LIMIT_HITS
from oauth_server.services.rate_limiter import RateLimitConfig, RateLimiter

logger = logging.getLogger(__name__)

# 10 registrations burst, then one every 6 seconds.
REGISTER_LIMIT = RateLimitConfig(capacity=10, refill_rate=10 / 60)
# Token redemption: generous for real clients, slow for code guessing.
TOKEN_LIMIT = RateLimitConfig(capacity=30, refill_rate=0.5)


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def require_rate_limit(config: RateLimitConfig, scope: str):
    """Dependency factory: enforce ``config`` per client IP on a route.

    ``scope`` namespaces the bucket so the same IP has separate budgets
    per endpoint:

        @router.post("/oauth/register",
                     dependencies=[Depends(require_rate_limit(REGISTER_LIMIT, "register"))])
    """

    def _check(request: Request) -> None:
        client_ip = request.client.host if request.client else "unknown"
        key = f"{scope}:ip:{client_ip}"
        result = get_rate_limiter(request).check(key, config)

        if not result.allowed:
            RATE_LIMIT_HITS.labels(key_type="ip").inc()
            logger.warning("Rate limit exceeded key=%s", key)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Rate limit exceeded",
                headers={
                    "Retry-After": str(int(result.retry_after) + 1),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

    return _check
