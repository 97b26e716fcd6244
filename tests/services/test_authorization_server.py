"""AuthorizationServer exercised directly, without HTTP."""

from __future__ import annotations

import threading
from urllib.parse import parse_qs, urlparse

import pytest

from oauth_server.models.oauth_error import OAuthError, OAuthErrorCode, default_status
from oauth_server.services.authorization_server import (
    AuthorizationServer,
    build_authorization_server,
    build_redirect,
)
from tests.conftest import CALLBACK, CHALLENGE, VERIFIER, FakeClock, make_settings


@pytest.fixture
def auth_server(clock: FakeClock) -> AuthorizationServer:
    return build_authorization_server(make_settings(), clock=clock)


def _approve(server: AuthorizationServer, **overrides) -> str:
    kwargs = {
        "client_id": "abc",
        "redirect_uri": CALLBACK,
        "code_challenge": CHALLENGE,
        "state": "xyz",
    }
    kwargs.update(overrides)
    location = server.approve(**kwargs)
    return parse_qs(urlparse(location).query)["code"][0]


def _exchange(server: AuthorizationServer, code: str, **overrides):
    kwargs = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": CALLBACK,
        "client_id": "abc",
        "client_secret": None,
        "code_verifier": VERIFIER,
    }
    kwargs.update(overrides)
    return server.exchange_code(**kwargs)


# ---- error model ----


def test_every_error_code_has_a_status() -> None:
    for code in OAuthErrorCode:
        assert default_status(code) in (400, 401, 403)


def test_error_status_mapping() -> None:
    assert default_status(OAuthErrorCode.INVALID_CLIENT) == 401
    assert default_status(OAuthErrorCode.INVALID_GRANT) == 400
    assert default_status(OAuthErrorCode.ACCESS_DENIED) == 403


def test_error_body_omits_missing_description() -> None:
    assert OAuthError(OAuthErrorCode.INVALID_GRANT).to_dict() == {"error": "invalid_grant"}
    assert OAuthError(OAuthErrorCode.INVALID_CLIENT, status_code=400).status_code == 400


# ---- redirect building ----


def test_build_redirect_plain() -> None:
    assert build_redirect(CALLBACK, {"code": "c", "state": "s"}) == f"{CALLBACK}?code=c&state=s"


def test_build_redirect_encodes_values() -> None:
    location = build_redirect(CALLBACK, {"state": "a b&c=d"})
    assert parse_qs(urlparse(location).query) == {"state": ["a b&c=d"]}


def test_build_redirect_keeps_existing_query() -> None:
    location = build_redirect("https://x.example.com/cb?tenant=1", {"code": "c"})
    assert parse_qs(urlparse(location).query) == {"tenant": ["1"], "code": ["c"]}


# ---- authorization request ----


def test_validate_authorization_request_returns_request(
    auth_server: AuthorizationServer,
) -> None:
    request = auth_server.validate_authorization_request(
        client_id="abc",
        redirect_uri=CALLBACK,
        response_type="code",
        code_challenge=CHALLENGE,
        code_challenge_method="S256",
        state=None,
    )
    assert request.client_id == "abc"
    assert request.state == ""


def test_validate_authorization_request_invalid_client_is_400(
    auth_server: AuthorizationServer,
) -> None:
    with pytest.raises(OAuthError) as exc_info:
        auth_server.validate_authorization_request(
            client_id=None,
            redirect_uri=CALLBACK,
            response_type="code",
            code_challenge=CHALLENGE,
            code_challenge_method="S256",
            state=None,
        )
    assert exc_info.value.code is OAuthErrorCode.INVALID_CLIENT
    assert exc_info.value.status_code == 400


# ---- exchange ----


def test_exchange_issues_token(auth_server: AuthorizationServer) -> None:
    grant = _exchange(auth_server, _approve(auth_server))
    assert grant.token_type == "Bearer"
    assert grant.expires_in == 86400
    assert auth_server.validate_bearer_token(grant.access_token) is not None


def test_concurrent_redemption_yields_exactly_one_token(
    auth_server: AuthorizationServer,
) -> None:
    code = _approve(auth_server)
    barrier = threading.Barrier(8)
    outcomes: list[str] = []
    lock = threading.Lock()

    def redeem() -> None:
        barrier.wait()
        try:
            _exchange(auth_server, code)
            outcome = "ok"
        except OAuthError as e:
            outcome = e.code.value
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=redeem) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("ok") == 1
    assert outcomes.count("invalid_grant") == 7
    assert len(auth_server.token_repo) == 1


def test_exchange_validation_order(auth_server: AuthorizationServer) -> None:
    code = _approve(auth_server)
    # grant_type is checked before the code is touched
    with pytest.raises(OAuthError) as exc_info:
        _exchange(auth_server, code, grant_type="password", client_id=None)
    assert exc_info.value.code is OAuthErrorCode.UNSUPPORTED_GRANT_TYPE

    with pytest.raises(OAuthError) as exc_info:
        _exchange(auth_server, code, client_id=None)
    assert exc_info.value.code is OAuthErrorCode.INVALID_CLIENT
    assert exc_info.value.status_code == 401

    # Code still there; redirect mismatch burns it
    with pytest.raises(OAuthError) as exc_info:
        _exchange(auth_server, code, redirect_uri="https://claude.com/api/mcp/auth_callback")
    assert exc_info.value.description == "redirect_uri mismatch"
    assert len(auth_server.code_repo) == 0


def test_validate_bearer_token_rejects_empty(auth_server: AuthorizationServer) -> None:
    assert auth_server.validate_bearer_token(None) is None
    assert auth_server.validate_bearer_token("") is None


# ---- registration ----


def test_register_client_rejects_non_mapping(auth_server: AuthorizationServer) -> None:
    with pytest.raises(OAuthError) as exc_info:
        auth_server.register_client(None)
    assert exc_info.value.code is OAuthErrorCode.INVALID_REQUEST


def test_register_client_returns_allow_list_copy(auth_server: AuthorizationServer) -> None:
    response = auth_server.register_client({})
    response.redirect_uris.append("https://evil.example.com")
    assert "https://evil.example.com" not in auth_server.settings.allowed_redirect_uris


# ---- sweep ----


def test_sweep_reports_removed_counts(
    auth_server: AuthorizationServer, clock: FakeClock
) -> None:
    _approve(auth_server)
    _exchange(auth_server, _approve(auth_server))
    assert auth_server.sweep() == {"authorization_codes": 0, "access_tokens": 0}

    clock.advance(301)
    assert auth_server.sweep() == {"authorization_codes": 1, "access_tokens": 0}

    clock.advance(86400)
    assert auth_server.sweep() == {"authorization_codes": 0, "access_tokens": 1}


def test_configured_consent_secret_is_used(clock: FakeClock) -> None:
    settings = make_settings(consent_signing_secret="fixed-secret-0123456789abcdef0123")
    first = build_authorization_server(settings, clock=clock)
    second = build_authorization_server(settings, clock=clock)
    request = first.validate_authorization_request(
        client_id="abc",
        redirect_uri=CALLBACK,
        response_type="code",
        code_challenge=CHALLENGE,
        code_challenge_method="S256",
        state="xyz",
    )
    token = first.consent_token_for(request)
    # A second process with the same secret honours the token
    second.approve(
        client_id="abc",
        redirect_uri=CALLBACK,
        code_challenge=CHALLENGE,
        state="xyz",
        consent_token=token,
    )
    assert len(second.code_repo) == 1
