from __future__ import annotations

import logging
import time
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from oauth_server.api.health import router as health_router
from oauth_server.api.metrics_endpoint import router as metrics_router
from oauth_server.api.oauth import router as oauth_router
from oauth_server.api.resource import router as resource_router
from oauth_server.api.well_known import router as well_known_router
from oauth_server.core.config import SETTINGS, Settings
from oauth_server.core.logging import setup_logging
from oauth_server.middleware.metrics import MetricsMiddleware
from oauth_server.middleware.request_context import (
    RequestContextMiddleware,
    install_request_context_filter,
)
from oauth_server.models.oauth_error import OAuthError
from oauth_server.services.authorization_server import build_authorization_server
from oauth_server.services.rate_limiter import InMemoryRateLimiter
from oauth_server.services.sweeper import lifespan_sweeper

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
install_request_context_filter()

logger = logging.getLogger(__name__)


async def oauth_error_handler(_request: Request, exc: OAuthError) -> JSONResponse:
    return JSONResponse(
        exc.to_dict(),
        status_code=exc.status_code,
        headers={"Cache-Control": "no-store", "Pragma": "no-cache"},
    )


def create_app(
    settings: Settings | None = None,
    *,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Build the app and the state it owns.

    The code and token stores are created here, one pair per app, and
    hung on ``app.state``; the sweeper task that reclaims their expired
    records is started and cancelled by the lifespan.  Tests build a
    fresh app per test instead of clearing module globals.
    """
    settings = settings or SETTINGS
    server = build_authorization_server(settings, clock=clock)
    rate_limiter = InMemoryRateLimiter()

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
        async with lifespan_sweeper(
            server, settings.sweep_interval_sec, rate_limiter
        ):
            yield

    app = FastAPI(
        title="mcp-oauth-server",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_dev else None,
        redoc_url="/redoc" if settings.is_dev else None,
    )
    app.state.settings = settings
    app.state.authorization_server = server
    app.state.rate_limiter = rate_limiter

    app.add_exception_handler(OAuthError, oauth_error_handler)  # type: ignore[arg-type]

    # Last-added runs first: RequestContext (outermost) → Metrics → route.
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestContextMiddleware)

    app.include_router(metrics_router)
    app.include_router(health_router)
    app.include_router(well_known_router)
    app.include_router(oauth_router)
    app.include_router(resource_router)

    logger.info(
        "mcp-oauth-server configured  env=%s base_url=%s redirect_uris=%d "
        "static_client=%s signed_consent=%s",
        settings.app_env,
        settings.base_url,
        len(settings.allowed_redirect_uris),
        "on" if settings.client_id else "off",
        "required" if settings.require_signed_consent else "optional",
    )
    return app


app = create_app()
