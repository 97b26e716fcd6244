"""Prometheus metrics middleware: count, time and gauge every request.

A middleware instead of per-route instrumentation, so a route added
later is measured without anyone remembering to.

The endpoint label is the template of the route that handled the
request, read from the ASGI scope once routing is done.  The raw URL is
never a label: the well-known routes accept any suffix, and a raw-path
label would let a client mint a new time series per request.  Requests
no route matched share the single label "unmatched".
"""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from oauth_server.core.metrics import ACTIVE_REQUESTS, REQUEST_COUNT, REQUEST_DURATION

UNMATCHED = "unmatched"


def endpoint_label(scope: dict) -> str:
    """Route template recorded in ``scope`` by the router, else "unmatched"."""
    route = scope.get("route")
    template = getattr(route, "path", None) or getattr(route, "path_format", None)
    return template if isinstance(template, str) and template else UNMATCHED


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Don't let Prometheus scrapes inflate the request count.
        if request.url.path == "/metrics":
            return await call_next(request)

        ACTIVE_REQUESTS.inc()
        start = time.monotonic()
        status_code = "500"

        try:
            response = await call_next(request)
            status_code = str(response.status_code)
        finally:
            duration = time.monotonic() - start
            ACTIVE_REQUESTS.dec()
            # The router writes the matched route into the shared scope
            # during call_next, so the label is only known here.
            endpoint = endpoint_label(request.scope)
            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=status_code,
            ).inc()
            REQUEST_DURATION.labels(
                method=request.method,
                endpoint=endpoint,
            ).observe(duration)

        return response
