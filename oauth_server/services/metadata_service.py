"""Discovery documents derived from the configured base URL.

Clients fetch these before anything else: the protected-resource document
tells an MCP client which authorization server guards the resource, the
authorization-server document tells it where to register, authorize and
redeem codes.  Both are pure functions of Settings.
"""

from __future__ import annotations

from oauth_server.core.config import Settings
from oauth_server.models.metadata import (
    AuthorizationServerMetadata,
    ProtectedResourceMetadata,
)

SCOPE = "mcp"


def protected_resource_metadata(settings: Settings) -> ProtectedResourceMetadata:
    return ProtectedResourceMetadata(
        resource=settings.resource_url,
        authorization_servers=[settings.base_url],
        scopes_supported=[SCOPE],
        bearer_methods_supported=["header"],
    )


def authorization_server_metadata(settings: Settings) -> AuthorizationServerMetadata:
    base = settings.base_url
    return AuthorizationServerMetadata(
        issuer=base,
        authorization_endpoint=f"{base}/oauth/authorize",
        token_endpoint=f"{base}/oauth/token",
        registration_endpoint=f"{base}/oauth/register",
        response_types_supported=["code"],
        grant_types_supported=["authorization_code"],
        code_challenge_methods_supported=["S256"],
        token_endpoint_auth_methods_supported=["none", "client_secret_post"],
    )
