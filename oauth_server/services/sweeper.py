"""Background sweep of expired authorization codes and access tokens.

Lookups already ignore expired records, so the sweep is memory hygiene,
not a correctness mechanism: a code minted and never redeemed would
otherwise sit in the dict forever.  The same pass drops idle rate-limit
buckets.

The sweep is driven by an asyncio task owned by the app lifespan.  It is
created at startup and cancelled at shutdown, so no timer outlives the
app that started it (tests that build many apps leave nothing behind).
Each pass runs in a worker thread: it holds the store locks for as long
as the stores are large, and the event loop must keep serving the async
routes meanwhile.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from oauth_server.core.metrics import STORE_SWEPT
from oauth_server.services.authorization_server import AuthorizationServer
from oauth_server.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def sweep_once(
    server: AuthorizationServer, rate_limiter: RateLimiter | None = None
) -> dict[str, int]:
    removed = server.sweep()
    if rate_limiter is not None:
        removed["rate_limit_buckets"] = rate_limiter.prune()
    for store, count in removed.items():
        if count:
            STORE_SWEPT.labels(store=store).inc(count)
    if any(removed.values()):
        logger.info(
            "Swept expired records  codes=%d tokens=%d buckets=%d",
            removed["authorization_codes"],
            removed["access_tokens"],
            removed.get("rate_limit_buckets", 0),
        )
    return removed


async def sweep_forever(
    server: AuthorizationServer,
    interval_sec: float,
    rate_limiter: RateLimiter | None = None,
) -> None:
    while True:
        await asyncio.sleep(interval_sec)
        try:
            await asyncio.to_thread(sweep_once, server, rate_limiter)
        except Exception:
            # One bad pass must not kill the loop; the next one retries.
            logger.exception("Expired-record sweep failed")


@asynccontextmanager
async def lifespan_sweeper(
    server: AuthorizationServer,
    interval_sec: float,
    rate_limiter: RateLimiter | None = None,
) -> AsyncGenerator[asyncio.Task[None], None]:
    task = asyncio.create_task(
        sweep_forever(server, interval_sec, rate_limiter), name="oauth-sweeper"
    )
    logger.info("Expired-record sweeper started  interval=%ss", interval_sec)
    try:
        yield task
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Expired-record sweeper stopped")
