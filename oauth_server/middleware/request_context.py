"""Request context middleware: a request ID on every request and log line.

An OAuth handshake is several requests (discovery, authorize, consent,
token) interleaved with every other client's.  The request ID ties the
log lines of one request together; the client_id that the OAuth
handlers pass via ``extra=`` ties the requests of one handshake together.

The ID lives in a ContextVar rather than a thread-local.  Async routes
share the event-loop thread, sync routes hop to a worker thread; a
ContextVar follows the request through both (Starlette copies the
context into the thread pool).
"""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

# Upper bound on a client-supplied X-Request-ID; longer values are replaced.
_MAX_REQUEST_ID_LEN = 128


class _RequestContextFilter(logging.Filter):
    """Attach the current request ID to every LogRecord."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        return True


def install_request_context_filter() -> None:
    """Install the filter on the root handlers, once.

    Filters on a logger only run for records created by that logger, so
    the filter goes on the handlers, which see every propagated record.
    """
    root = logging.getLogger()
    for handler in root.handlers:
        if not any(isinstance(f, _RequestContextFilter) for f in handler.filters):
            handler.addFilter(_RequestContextFilter())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request ID, time the request, log one summary line.

    A client-provided X-Request-ID is echoed back (so a client can
    correlate its own logs) unless it is absurdly long.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        incoming = request.headers.get("x-request-id")
        if incoming and len(incoming) <= _MAX_REQUEST_ID_LEN:
            req_id = incoming
        else:
            req_id = str(uuid.uuid4())
        token = request_id_var.set(req_id)

        try:
            start = time.monotonic()
            response = await call_next(request)
            duration_ms = round((time.monotonic() - start) * 1000, 1)

            # Path only: the query string of /oauth/authorize carries state
            # and the PKCE challenge, which have no business in access logs.
            logger.info(
                "%s %s → %d (%.1fms)",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "request_id": req_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
            response.headers["X-Request-ID"] = req_id
            return response
        finally:
            request_id_var.reset(token)
