from __future__ import annotations

from pydantic import BaseModel


class ProtectedResourceMetadata(BaseModel):
    """RFC 9728 protected-resource metadata document."""

    resource: str
    authorization_servers: list[str]
    scopes_supported: list[str]
    bearer_methods_supported: list[str]


class AuthorizationServerMetadata(BaseModel):
    """RFC 8414 authorization-server metadata document."""

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    registration_endpoint: str
    response_types_supported: list[str]
    grant_types_supported: list[str]
    code_challenge_methods_supported: list[str]
    token_endpoint_auth_methods_supported: list[str]
