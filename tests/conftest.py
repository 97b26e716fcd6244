from __future__ import annotations

import sys
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import oauth_server` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from oauth_server.core.config import DEFAULT_REDIRECT_URIS, Settings  # noqa: E402
from oauth_server.main import create_app  # noqa: E402
from oauth_server.services.authorization_server import AuthorizationServer  # noqa: E402

BASE_URL = "https://agency.example.com"
CALLBACK = "https://claude.ai/api/mcp/auth_callback"
OTHER_CALLBACK = "https://claude.com/api/mcp/auth_callback"
CLIENT_ID = "abc"

# RFC 7636 Appendix B test vector.
VERIFIER = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
CHALLENGE = "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


class FakeClock:
    """Injectable time source; tests move it instead of sleeping."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_settings(**overrides) -> Settings:
    values: dict = {
        "app_env": "test",
        "log_level": "info",
        "log_json": False,
        "port": 8000,
        "base_url": BASE_URL,
        "resource_path": "/mcp/sse",
        "allowed_redirect_uris": DEFAULT_REDIRECT_URIS,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def app(settings: Settings, clock: FakeClock) -> FastAPI:
    return create_app(settings, clock=clock)


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app, follow_redirects=False)


@pytest.fixture
def server(app: FastAPI) -> AuthorizationServer:
    return app.state.authorization_server


# ---------------------------------------------------------------------------
# Flow helpers (the test plays the OAuth client)
# ---------------------------------------------------------------------------


def authorize_params(**overrides: str | None) -> dict[str, str]:
    params: dict[str, str | None] = {
        "client_id": CLIENT_ID,
        "redirect_uri": CALLBACK,
        "response_type": "code",
        "code_challenge": CHALLENGE,
        "code_challenge_method": "S256",
        "state": "xyz",
    }
    params.update(overrides)
    return {k: v for k, v in params.items() if v is not None}


def consent_form(action: str = "approve", **overrides: str | None) -> dict[str, str]:
    form: dict[str, str | None] = {
        "client_id": CLIENT_ID,
        "redirect_uri": CALLBACK,
        "code_challenge": CHALLENGE,
        "state": "xyz",
        "action": action,
    }
    form.update(overrides)
    return {k: v for k, v in form.items() if v is not None}


def redirect_query(location: str) -> dict[str, list[str]]:
    return parse_qs(urlparse(location).query)


def obtain_code(client: TestClient, **overrides: str | None) -> str:
    """POST an approval and return the code from the redirect."""
    resp = client.post("/oauth/authorize", data=consent_form("approve", **overrides))
    assert resp.status_code == 302, resp.text
    return redirect_query(resp.headers["location"])["code"][0]


def token_form(code: str, **overrides: str | None) -> dict[str, str]:
    form: dict[str, str | None] = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": CALLBACK,
        "client_id": CLIENT_ID,
        "code_verifier": VERIFIER,
    }
    form.update(overrides)
    return {k: v for k, v in form.items() if v is not None}
