"""Prometheus metrics: one inventory of everything the server measures.

Modules import the metric they own and increment it at the point of
action.  Counters only go up; the /metrics endpoint exposes the current
values in text exposition format for Prometheus to scrape.

Label values are kept to small closed sets (HTTP method, route path,
OAuth error code, store name) so series cardinality stays bounded.
Client ids are NOT used as labels: registration is open, so a label per
client would let anyone create unbounded series.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# OAuth metrics
# ---------------------------------------------------------------------------

AUTHORIZATION_CODES_ISSUED = Counter(
    "oauth_authorization_codes_issued_total",
    "Authorization codes minted after user approval",
)

ACCESS_TOKENS_ISSUED = Counter(
    "oauth_access_tokens_issued_total",
    "Access tokens minted by successful code redemption",
)

OAUTH_ERRORS = Counter(
    "oauth_errors_total",
    "OAuth protocol errors returned to callers",
    ["endpoint", "error"],  # endpoint: authorize|consent|token|register
)

BEARER_CHECKS = Counter(
    "oauth_bearer_checks_total",
    "Bearer token validations by result",
    ["result"],  # "valid", "missing", "invalid"
)

STORE_SWEPT = Counter(
    "oauth_store_swept_total",
    "Expired records removed by the background sweep",
    ["store"],  # "authorization_codes", "access_tokens", "rate_limit_buckets"
)

CLIENT_REGISTRATIONS = Counter(
    "oauth_client_registrations_total",
    "Successful dynamic client registrations",
)

RATE_LIMIT_HITS = Counter(
    "rate_limit_hits_total",
    "Requests rejected by rate limiting (429s)",
    ["key_type"],
)
