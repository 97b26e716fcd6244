from __future__ import annotations

import html
import json
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Form, Query, Request, Response, status
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import BaseModel

from oauth_server.api.dependencies import get_authorization_server
from oauth_server.api.ratelimit import REGISTER_LIMIT, TOKEN_LIMIT, require_rate_limit
from oauth_server.models.registration import ClientRegistrationResponse
from oauth_server.services.authorization_server import (
    AuthorizationRequest,
    AuthorizationServer,
)

# ---------------------------------------------------------------------------
# Authorization Server: OAuth 2.1 Authorization Code + PKCE
#
# Endpoints:
#   GET  /oauth/authorize  validate request, render consent page
#   POST /oauth/authorize  consent decision, redirect with code or error
#   POST /oauth/token      exchange code + code_verifier for access token
#   POST /oauth/register   RFC 7591 dynamic client registration
#
# Every parameter is optional at the FastAPI layer.  A missing field must
# produce the OAuth error for its position in the validation order, not a
# generic 422, so the checks live in AuthorizationServer.
# ---------------------------------------------------------------------------

logger = logging.getLogger(__name__)

router = APIRouter(tags=["oauth"])

Server = Annotated[AuthorizationServer, Depends(get_authorization_server)]

# Token responses carry credentials and must never be cached (RFC 6749 §5.1).
_NO_STORE = {"Cache-Control": "no-store", "Pragma": "no-cache"}


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int


# ---------------------------------------------------------------------------
# Consent page (inline HTML; a template engine is not worth it for one form).
# Every interpolated value is HTML-escaped: client_id and state are
# attacker-controlled query parameters.
# ---------------------------------------------------------------------------

_CONSENT_HTML = """\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>Authorize MCP Access</title>
  <style>
    * {{ margin: 0; padding: 0; box-sizing: border-box; }}
    body {{
      font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
      background: #0f172a; color: #e2e8f0;
      display: flex; align-items: center; justify-content: center; min-height: 100vh;
    }}
    .card {{
      background: #1e293b; border: 1px solid #334155; border-radius: 12px;
      padding: 2rem; max-width: 420px; width: 100%;
    }}
    h1 {{ font-size: 1.25rem; margin-bottom: .5rem; }}
    p {{ color: #94a3b8; margin-bottom: 1.5rem; line-height: 1.5; }}
    .client {{ color: #60a5fa; font-weight: 600; }}
    .actions {{ display: flex; gap: .75rem; }}
    button {{
      flex: 1; padding: .75rem; border: none; border-radius: 8px;
      font-size: 1rem; cursor: pointer; font-weight: 500;
    }}
    .allow {{ background: #3b82f6; color: #fff; }}
    .deny {{ background: #334155; color: #94a3b8; }}
  </style>
</head>
<body>
  <div class="card">
    <h1>Authorize MCP Access</h1>
    <p><span class="client">{client_id}</span> is requesting access to the
       Agency Workflow Server MCP tools.</p>
    <form method="POST" action="/oauth/authorize">
      <input type="hidden" name="client_id" value="{client_id}">
      <input type="hidden" name="redirect_uri" value="{redirect_uri}">
      <input type="hidden" name="code_challenge" value="{code_challenge}">
      <input type="hidden" name="state" value="{state}">
      <input type="hidden" name="consent_token" value="{consent_token}">
      <div class="actions">
        <button type="submit" name="action" value="deny" class="deny">Deny</button>
        <button type="submit" name="action" value="approve" class="allow">Authorize</button>
      </div>
    </form>
  </div>
</body>
</html>
"""


def _render_consent(request: AuthorizationRequest, consent_token: str) -> str:
    def esc(value: str) -> str:
        return html.escape(value, quote=True)

    return _CONSENT_HTML.format(
        client_id=esc(request.client_id),
        redirect_uri=esc(request.redirect_uri),
        code_challenge=esc(request.code_challenge),
        state=esc(request.state),
        consent_token=esc(consent_token),
    )


# ========================== GET /oauth/authorize ==========================


@router.get("/oauth/authorize", response_class=HTMLResponse)
def authorize(
    server: Server,
    client_id: str | None = Query(None),
    redirect_uri: str | None = Query(None),
    response_type: str | None = Query(None),
    code_challenge: str | None = Query(None),
    code_challenge_method: str | None = Query(None),
    state: str | None = Query(None),
) -> HTMLResponse:
    auth_request = server.validate_authorization_request(
        client_id=client_id,
        redirect_uri=redirect_uri,
        response_type=response_type,
        code_challenge=code_challenge,
        code_challenge_method=code_challenge_method,
        state=state,
    )
    page = _render_consent(auth_request, server.consent_token_for(auth_request))
    # The consent page must not be framed (clickjacking) or cached.
    return HTMLResponse(
        page,
        headers={
            "Cache-Control": "no-store",
            "X-Frame-Options": "DENY",
            "Content-Security-Policy": "frame-ancestors 'none'",
        },
    )


# ========================== POST /oauth/authorize =========================


@router.post("/oauth/authorize")
def authorize_decision(
    server: Server,
    client_id: str | None = Form(None),
    redirect_uri: str | None = Form(None),
    code_challenge: str | None = Form(None),
    state: str | None = Form(None),
    action: str | None = Form(None),
    consent_token: str | None = Form(None),
) -> RedirectResponse:
    location = server.decide(
        action=action,
        client_id=client_id,
        redirect_uri=redirect_uri,
        code_challenge=code_challenge,
        state=state,
        consent_token=consent_token,
    )
    return RedirectResponse(url=location, status_code=status.HTTP_302_FOUND)


# ========================== POST /oauth/token =============================


@router.post(
    "/oauth/token",
    response_model=TokenResponse,
    dependencies=[Depends(require_rate_limit(TOKEN_LIMIT, "token"))],
)
def exchange_token(
    server: Server,
    response: Response,
    grant_type: str | None = Form(None),
    code: str | None = Form(None),
    redirect_uri: str | None = Form(None),
    client_id: str | None = Form(None),
    client_secret: str | None = Form(None),
    code_verifier: str | None = Form(None),
) -> TokenResponse:
    grant = server.exchange_code(
        grant_type=grant_type,
        code=code,
        redirect_uri=redirect_uri,
        client_id=client_id,
        client_secret=client_secret,
        code_verifier=code_verifier,
    )
    response.headers.update(_NO_STORE)
    return TokenResponse(
        access_token=grant.access_token,
        token_type=grant.token_type,
        expires_in=grant.expires_in,
    )


# ========================== POST /oauth/register ==========================


@router.post(
    "/oauth/register",
    status_code=status.HTTP_201_CREATED,
    response_model=ClientRegistrationResponse,
    dependencies=[Depends(require_rate_limit(REGISTER_LIMIT, "register"))],
)
async def register(request: Request, server: Server) -> ClientRegistrationResponse:
    raw = await request.body()
    payload: Any
    if not raw.strip():
        payload = {}
    else:
        try:
            payload = json.loads(raw)
        except ValueError:
            logger.info("OAUTH FLOW [register] body is not valid JSON")
            payload = None  # rejected as invalid_request by the service
    return server.register_client(payload)
