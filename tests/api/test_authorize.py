"""GET /oauth/authorize validation and POST /oauth/authorize consent handling."""

from __future__ import annotations

import re

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from oauth_server.main import create_app
from oauth_server.services.authorization_server import AuthorizationServer
from tests.conftest import (
    CALLBACK,
    CHALLENGE,
    FakeClock,
    authorize_params,
    consent_form,
    make_settings,
    redirect_query,
)

NOT_ALLOWED = [
    "https://claude.ai/api/mcp/auth_callback/",
    "https://claude.ai/api/mcp/auth_callback?next=/",
    "http://claude.ai/api/mcp/auth_callback",
    "https://CLAUDE.ai/api/mcp/auth_callback",
    "https://evil.example.com/callback",
]


def _error(resp) -> str:
    return resp.json()["error"]


# ---- GET: validation order ----


def test_rejects_non_code_response_type(client: TestClient) -> None:
    resp = client.get("/oauth/authorize", params=authorize_params(response_type="token"))
    assert resp.status_code == 400
    assert _error(resp) == "unsupported_response_type"


def test_response_type_checked_before_client_id(client: TestClient) -> None:
    resp = client.get(
        "/oauth/authorize",
        params=authorize_params(response_type=None, client_id=None),
    )
    assert _error(resp) == "unsupported_response_type"


def test_rejects_missing_client_id(client: TestClient) -> None:
    resp = client.get("/oauth/authorize", params=authorize_params(client_id=None))
    assert resp.status_code == 400
    assert _error(resp) == "invalid_client"


def test_rejects_empty_client_id(client: TestClient) -> None:
    resp = client.get("/oauth/authorize", params=authorize_params(client_id=""))
    assert _error(resp) == "invalid_client"


def test_rejects_missing_redirect_uri(client: TestClient) -> None:
    resp = client.get("/oauth/authorize", params=authorize_params(redirect_uri=None))
    assert resp.status_code == 400
    assert _error(resp) == "invalid_redirect_uri"


@pytest.mark.parametrize("uri", NOT_ALLOWED)
def test_rejects_redirect_uri_not_exactly_allowed(client: TestClient, uri: str) -> None:
    resp = client.get("/oauth/authorize", params=authorize_params(redirect_uri=uri))
    assert resp.status_code == 400
    assert _error(resp) == "invalid_redirect_uri"
    # Returned directly, never via redirect
    assert "location" not in resp.headers


def test_rejects_plain_pkce(client: TestClient) -> None:
    resp = client.get(
        "/oauth/authorize", params=authorize_params(code_challenge_method="plain")
    )
    assert resp.status_code == 400
    assert resp.json() == {
        "error": "invalid_request",
        "error_description": "PKCE S256 required",
    }


def test_rejects_missing_pkce_method(client: TestClient) -> None:
    resp = client.get(
        "/oauth/authorize", params=authorize_params(code_challenge_method=None)
    )
    assert _error(resp) == "invalid_request"


def test_rejects_missing_code_challenge(client: TestClient) -> None:
    resp = client.get("/oauth/authorize", params=authorize_params(code_challenge=None))
    assert _error(resp) == "invalid_request"


def test_error_responses_are_not_cached(client: TestClient) -> None:
    resp = client.get("/oauth/authorize", params=authorize_params(client_id=None))
    assert resp.headers["cache-control"] == "no-store"


# ---- GET: consent page ----


def test_consent_page_has_no_side_effects(
    client: TestClient, server: AuthorizationServer
) -> None:
    resp = client.get("/oauth/authorize", params=authorize_params())
    assert resp.status_code == 200
    assert len(server.code_repo) == 0
    assert len(server.token_repo) == 0


def test_consent_page_escapes_reflected_values(client: TestClient) -> None:
    resp = client.get(
        "/oauth/authorize",
        params=authorize_params(
            client_id='<script>alert(1)</script>', state='"><img src=x>'
        ),
    )
    assert resp.status_code == 200
    assert "<script>alert(1)</script>" not in resp.text
    assert "&lt;script&gt;" in resp.text
    assert '"><img' not in resp.text


def test_consent_page_state_optional(client: TestClient) -> None:
    resp = client.get("/oauth/authorize", params=authorize_params(state=None))
    assert resp.status_code == 200
    assert 'name="state" value=""' in resp.text


def test_consent_page_cannot_be_framed(client: TestClient) -> None:
    resp = client.get("/oauth/authorize", params=authorize_params())
    assert resp.headers["x-frame-options"] == "DENY"


# ---- POST: consent decision ----


@pytest.mark.parametrize("action", ["approve", "deny"])
def test_consent_rejects_tampered_redirect_uri(client: TestClient, action: str) -> None:
    resp = client.post(
        "/oauth/authorize",
        data=consent_form(action, redirect_uri="https://evil.example.com/cb"),
    )
    assert resp.status_code == 400
    assert _error(resp) == "invalid_redirect_uri"
    assert "location" not in resp.headers


def test_approve_requires_client_id(
    client: TestClient, server: AuthorizationServer
) -> None:
    resp = client.post("/oauth/authorize", data=consent_form("approve", client_id=None))
    assert resp.status_code == 400
    assert _error(resp) == "invalid_client"
    assert len(server.code_repo) == 0


def test_approve_requires_code_challenge(client: TestClient) -> None:
    resp = client.post(
        "/oauth/authorize", data=consent_form("approve", code_challenge=None)
    )
    assert resp.status_code == 400
    assert _error(resp) == "invalid_request"


def test_unknown_action_rejected(client: TestClient) -> None:
    resp = client.post("/oauth/authorize", data=consent_form("maybe"))
    assert resp.status_code == 400
    assert _error(resp) == "invalid_request"
    assert "location" not in resp.headers


def test_approve_rejects_fields_that_differ_from_consent_token(
    client: TestClient, server: AuthorizationServer
) -> None:
    page = client.get("/oauth/authorize", params=authorize_params())
    token = re.search(r'name="consent_token" value="([^"]+)"', page.text).group(1)

    resp = client.post(
        "/oauth/authorize",
        data=consent_form("approve", code_challenge="A" * 43, consent_token=token),
    )
    assert resp.status_code == 400
    assert resp.json()["error_description"] == "consent token invalid"
    assert len(server.code_repo) == 0


def test_approve_rejects_forged_consent_token(client: TestClient) -> None:
    resp = client.post(
        "/oauth/authorize",
        data=consent_form("approve", consent_token="not.a.jwt"),
    )
    assert resp.status_code == 400
    assert _error(resp) == "invalid_request"


def _strict_app(clock: FakeClock) -> FastAPI:
    return create_app(make_settings(require_signed_consent=True), clock=clock)


def test_signed_consent_required_when_configured(clock: FakeClock) -> None:
    client = TestClient(_strict_app(clock), follow_redirects=False)

    bare = client.post("/oauth/authorize", data=consent_form("approve"))
    assert bare.status_code == 400
    assert bare.json()["error_description"] == "consent token required"

    page = client.get("/oauth/authorize", params=authorize_params())
    token = re.search(r'name="consent_token" value="([^"]+)"', page.text).group(1)
    signed = client.post(
        "/oauth/authorize", data=consent_form("approve", consent_token=token)
    )
    assert signed.status_code == 302
    assert "code" in redirect_query(signed.headers["location"])


def test_approve_keeps_existing_query_on_redirect_uri(clock: FakeClock) -> None:
    uri = "https://app.example.com/callback?tenant=acme"
    app = create_app(make_settings(allowed_redirect_uris=(uri,)), clock=clock)
    client = TestClient(app, follow_redirects=False)

    resp = client.post(
        "/oauth/authorize", data=consent_form("approve", redirect_uri=uri)
    )
    assert resp.status_code == 302
    query = redirect_query(resp.headers["location"])
    assert query["tenant"] == ["acme"]
    assert query["state"] == ["xyz"]
    assert len(query["code"][0]) == 64


def test_approve_stores_challenge_from_form(
    client: TestClient, server: AuthorizationServer
) -> None:
    resp = client.post("/oauth/authorize", data=consent_form("approve"))
    code = redirect_query(resp.headers["location"])["code"][0]
    record = server.code_repo.consume(code)
    assert record is not None
    assert record.code_challenge == CHALLENGE
    assert record.redirect_uri == CALLBACK
    assert record.state == "xyz"
