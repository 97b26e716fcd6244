"""OAuth 2.1 Authorization Code + PKCE: the protocol state machine.

    consent page ──approve──▶ AuthorizationCode ──redeem──▶ AccessToken
         │                          │                          │
       (none)               pop on lookup (once)        expires, evicted
                                    │
                                 expires

Every public method either returns a value or raises OAuthError.  The api
layer only translates HTTP in and out; all validation ordering lives here
so it can be tested without a client.

The only state changes are:
  - approve()        creates one authorization code
  - exchange_code()  removes one code (before any other check, so a failed
                     redemption still burns it) and, on success, creates
                     one access token
Everything else is read-only.

Trust anchor: the redirect-URI allow-list in Settings.  client_id is
bookkeeping (registration is open, anyone can get one) and is never what
makes a request acceptable.
"""

from __future__ import annotations

import hmac
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import ValidationError

from oauth_server.core.config import Settings
from oauth_server.core.metrics import (
    ACCESS_TOKENS_ISSUED,
    AUTHORIZATION_CODES_ISSUED,
    CLIENT_REGISTRATIONS,
    OAUTH_ERRORS,
)
from oauth_server.models.access_token import AccessToken
from oauth_server.models.oauth_error import OAuthError, OAuthErrorCode
from oauth_server.models.registration import (
    DEFAULT_CLIENT_NAME,
    ClientRegistrationRequest,
    ClientRegistrationResponse,
)
from oauth_server.repos.access_token_repo import AccessTokenRepo, InMemoryAccessTokenRepo
from oauth_server.repos.auth_code_repo import AuthCodeRepo, InMemoryAuthCodeRepo
from oauth_server.repos.expiring_store import InMemoryExpiringStore
from oauth_server.services import pkce_service, token_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AuthorizationRequest:
    """A validated /oauth/authorize request, ready to be shown for consent."""

    client_id: str
    redirect_uri: str
    code_challenge: str
    state: str


@dataclass(frozen=True, slots=True)
class TokenGrant:
    access_token: str
    expires_in: int
    token_type: str = "Bearer"


def build_redirect(uri: str, params: dict[str, str]) -> str:
    """Append params to uri's query, keeping whatever query it already has."""
    parts = urlsplit(uri)
    query = [
        (k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in params
    ]
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


class AuthorizationServer:
    def __init__(
        self,
        settings: Settings,
        *,
        code_repo: AuthCodeRepo,
        token_repo: AccessTokenRepo,
        consent_secret: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.code_repo = code_repo
        self.token_repo = token_repo
        self._consent_secret = consent_secret
        self._clock = clock

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _fail(
        endpoint: str,
        code: OAuthErrorCode,
        description: str | None = None,
        *,
        status_code: int | None = None,
    ) -> OAuthError:
        OAUTH_ERRORS.labels(endpoint=endpoint, error=code.value).inc()
        logger.warning(
            "OAUTH FLOW [%s] FAIL: %s%s",
            endpoint,
            code.value,
            f" ({description})" if description else "",
        )
        return OAuthError(code, description, status_code=status_code)

    def _require_allowed_redirect(self, endpoint: str, redirect_uri: str | None) -> str:
        # Fails BEFORE any redirect target is trusted, so the error goes back
        # to the requester directly.  Redirecting to an unvetted URI is the
        # open-redirect hole this check exists to close.
        if redirect_uri is None or not self.settings.is_allowed_redirect_uri(redirect_uri):
            raise self._fail(
                endpoint,
                OAuthErrorCode.INVALID_REDIRECT_URI,
                "redirect_uri is not on the allow-list",
            )
        return redirect_uri

    # ------------------------------------------------------------------
    # GET /oauth/authorize
    # ------------------------------------------------------------------

    def validate_authorization_request(
        self,
        *,
        client_id: str | None,
        redirect_uri: str | None,
        response_type: str | None,
        code_challenge: str | None,
        code_challenge_method: str | None,
        state: str | None,
    ) -> AuthorizationRequest:
        """Check an authorization request in protocol order.  No side effects."""
        logger.info(
            "OAUTH FLOW [authorize] request  client_id=%s redirect_uri=%s pkce=%s",
            client_id,
            redirect_uri,
            code_challenge_method,
            extra={"client_id": client_id},
        )

        if response_type != "code":
            raise self._fail(
                "authorize",
                OAuthErrorCode.UNSUPPORTED_RESPONSE_TYPE,
                "response_type must be 'code'",
            )

        if not client_id:
            raise self._fail(
                "authorize",
                OAuthErrorCode.INVALID_CLIENT,
                "client_id is required",
                status_code=400,
            )

        redirect_uri = self._require_allowed_redirect("authorize", redirect_uri)

        if not pkce_service.is_supported_method(code_challenge_method) or not code_challenge:
            raise self._fail(
                "authorize", OAuthErrorCode.INVALID_REQUEST, "PKCE S256 required"
            )

        logger.info("OAUTH FLOW [authorize] request valid, rendering consent  ✓")
        return AuthorizationRequest(
            client_id=client_id,
            redirect_uri=redirect_uri,
            code_challenge=code_challenge,
            state=state or "",
        )

    def consent_token_for(self, request: AuthorizationRequest) -> str:
        return token_service.create_consent_token(
            secret=self._consent_secret,
            issuer=self.settings.base_url,
            ttl_seconds=self.settings.auth_code_ttl_sec,
            client_id=request.client_id,
            redirect_uri=request.redirect_uri,
            code_challenge=request.code_challenge,
            state=request.state,
        )

    # ------------------------------------------------------------------
    # POST /oauth/authorize
    # ------------------------------------------------------------------

    def decide(
        self,
        *,
        action: str | None,
        client_id: str | None,
        redirect_uri: str | None,
        code_challenge: str | None,
        state: str | None,
        consent_token: str | None = None,
    ) -> str:
        """Process the consent form.  Returns the URL to redirect the browser to.

        Hidden fields come back from the browser and are validated from
        scratch; nothing the consent page checked is assumed to still hold.
        """
        if action == "deny":
            return self.deny(redirect_uri=redirect_uri, state=state)
        if action == "approve":
            return self.approve(
                client_id=client_id,
                redirect_uri=redirect_uri,
                code_challenge=code_challenge,
                state=state,
                consent_token=consent_token,
            )
        # Unknown action: do not redirect anywhere.
        raise self._fail(
            "consent", OAuthErrorCode.INVALID_REQUEST, "action must be approve or deny"
        )

    def deny(self, *, redirect_uri: str | None, state: str | None) -> str:
        redirect_uri = self._require_allowed_redirect("consent", redirect_uri)
        params = {"error": OAuthErrorCode.ACCESS_DENIED.value}
        if state:
            params["state"] = state
        OAUTH_ERRORS.labels(endpoint="consent", error=OAuthErrorCode.ACCESS_DENIED.value).inc()
        logger.info("OAUTH FLOW [consent] user denied access")
        return build_redirect(redirect_uri, params)

    def approve(
        self,
        *,
        client_id: str | None,
        redirect_uri: str | None,
        code_challenge: str | None,
        state: str | None,
        consent_token: str | None = None,
    ) -> str:
        if not client_id:
            raise self._fail(
                "consent",
                OAuthErrorCode.INVALID_CLIENT,
                "client_id is required",
                status_code=400,
            )
        redirect_uri = self._require_allowed_redirect("consent", redirect_uri)
        if not code_challenge:
            raise self._fail(
                "consent", OAuthErrorCode.INVALID_REQUEST, "PKCE S256 required"
            )

        if consent_token:
            bound = token_service.verify_consent_token(
                consent_token,
                secret=self._consent_secret,
                issuer=self.settings.base_url,
                client_id=client_id,
                redirect_uri=redirect_uri,
                code_challenge=code_challenge,
                state=state or "",
            )
            if not bound:
                raise self._fail(
                    "consent", OAuthErrorCode.INVALID_REQUEST, "consent token invalid"
                )
        elif self.settings.require_signed_consent:
            raise self._fail(
                "consent", OAuthErrorCode.INVALID_REQUEST, "consent token required"
            )

        record = self.code_repo.issue(
            client_id=client_id,
            redirect_uri=redirect_uri,
            code_challenge=code_challenge,
            state=state,
        )
        AUTHORIZATION_CODES_ISSUED.inc()
        logger.info(
            "OAUTH FLOW [consent] approved, code issued  (fp=%s) client_id=%s",
            token_service.fingerprint(record.code),
            client_id,
            extra={"client_id": client_id},
        )

        params = {"code": record.code}
        if state:
            params["state"] = state
        return build_redirect(redirect_uri, params)

    # ------------------------------------------------------------------
    # POST /oauth/token
    # ------------------------------------------------------------------

    def exchange_code(
        self,
        *,
        grant_type: str | None,
        code: str | None,
        redirect_uri: str | None,
        client_id: str | None,
        client_secret: str | None,
        code_verifier: str | None,
    ) -> TokenGrant:
        # Never log code, code_verifier or client_secret.
        logger.info(
            "OAUTH FLOW [token] request  grant_type=%s client_id=%s has_secret=%s has_verifier=%s",
            grant_type,
            client_id,
            bool(client_secret),
            bool(code_verifier),
            extra={"client_id": client_id},
        )

        if grant_type != "authorization_code":
            raise self._fail(
                "token",
                OAuthErrorCode.UNSUPPORTED_GRANT_TYPE,
                "grant_type must be authorization_code",
            )

        if not client_id:
            raise self._fail("token", OAuthErrorCode.INVALID_CLIENT, "client_id is required")

        # client_secret_post when both sides have a secret; public client otherwise.
        expected_secret = self.settings.client_secret
        if expected_secret and client_secret and not hmac.compare_digest(
            client_secret.encode(), expected_secret.encode()
        ):
            raise self._fail("token", OAuthErrorCode.INVALID_CLIENT, "client authentication failed")

        # Point of no return: the code leaves the store here, whatever happens next.
        record = self.code_repo.consume(code or "")
        if record is None:
            raise self._fail(
                "token", OAuthErrorCode.INVALID_GRANT, "unknown or expired code"
            )

        if record.is_expired(self._clock()):
            raise self._fail("token", OAuthErrorCode.INVALID_GRANT, "code expired")

        if record.client_id != client_id:
            raise self._fail("token", OAuthErrorCode.INVALID_GRANT, "client_id mismatch")

        if record.redirect_uri != redirect_uri:
            raise self._fail("token", OAuthErrorCode.INVALID_GRANT, "redirect_uri mismatch")

        if not code_verifier:
            raise self._fail(
                "token", OAuthErrorCode.INVALID_REQUEST, "code_verifier required"
            )

        if not pkce_service.verify_code_challenge(code_verifier, record.code_challenge):
            raise self._fail(
                "token", OAuthErrorCode.INVALID_GRANT, "PKCE verification failed"
            )

        token = self.token_repo.issue(client_id=client_id)
        ACCESS_TOKENS_ISSUED.inc()
        logger.info(
            "OAUTH FLOW [token] access token issued  (fp=%s) client_id=%s expires_in=%d  ✓",
            token_service.fingerprint(token.token),
            client_id,
            self.settings.access_token_ttl_sec,
            extra={"client_id": client_id},
        )
        return TokenGrant(
            access_token=token.token,
            expires_in=self.settings.access_token_ttl_sec,
        )

    # ------------------------------------------------------------------
    # POST /oauth/register
    # ------------------------------------------------------------------

    def register_client(self, payload: Any) -> ClientRegistrationResponse:
        """RFC 7591 registration against the static allow-list.

        Nothing is stored.  The allow-list is never extended; registration
        only reports which of its URIs the client may use.
        """
        try:
            request = ClientRegistrationRequest.model_validate(payload)
        except ValidationError as e:
            raise self._fail(
                "register",
                OAuthErrorCode.INVALID_REQUEST,
                f"malformed registration request ({e.error_count()} error(s))",
            ) from None

        logger.info(
            "OAUTH FLOW [register] request  client_name=%s redirect_uris=%s",
            request.client_name,
            request.redirect_uris,
        )

        if request.redirect_uris:
            for uri in request.redirect_uris:
                self._require_allowed_redirect("register", uri)
            redirect_uris = list(request.redirect_uris)
        else:
            redirect_uris = list(self.settings.allowed_redirect_uris)

        client_id = self.settings.client_id or token_service.generate_client_id()
        CLIENT_REGISTRATIONS.inc()
        logger.info(
            "OAUTH FLOW [register] client registered  client_id=%s",
            client_id,
            extra={"client_id": client_id},
        )
        return ClientRegistrationResponse(
            client_id=client_id,
            client_name=request.client_name or DEFAULT_CLIENT_NAME,
            redirect_uris=redirect_uris,
        )

    # ------------------------------------------------------------------
    # Resource-server side
    # ------------------------------------------------------------------

    def validate_bearer_token(self, token: str | None) -> AccessToken | None:
        """The sole authorization decision for protected requests.

        Trusts nothing the caller claims; only a live record this server
        issued counts.  Expired records are evicted by the lookup itself.
        """
        if not token:
            return None
        return self.token_repo.get(token)

    def sweep(self) -> dict[str, int]:
        return {
            "authorization_codes": self.code_repo.sweep(),
            "access_tokens": self.token_repo.sweep(),
        }


def build_authorization_server(
    settings: Settings,
    *,
    clock: Callable[[], float] = time.time,
) -> AuthorizationServer:
    """Construct the server and its two stores.  Called once per app."""
    consent_secret = settings.consent_signing_secret
    if consent_secret is None:
        # Consent tokens live for one code TTL and never outlive the
        # process, so a per-process key is enough.
        consent_secret = token_service.generate_signing_secret()

    return AuthorizationServer(
        settings,
        code_repo=InMemoryAuthCodeRepo(
            InMemoryExpiringStore(clock), ttl_seconds=settings.auth_code_ttl_sec
        ),
        token_repo=InMemoryAccessTokenRepo(
            InMemoryExpiringStore(clock), ttl_seconds=settings.access_token_ttl_sec
        ),
        consent_secret=consent_secret,
        clock=clock,
    )
