from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from oauth_server.api.dependencies import get_settings
from oauth_server.core.config import Settings
from oauth_server.models.metadata import (
    AuthorizationServerMetadata,
    ProtectedResourceMetadata,
)
from oauth_server.services import metadata_service

router = APIRouter(tags=["discovery"])

# Clients may append the resource path (RFC 9728 §3.1, RFC 8414 §3.1), e.g.
# /.well-known/oauth-protected-resource/mcp/sse.  One document serves all.


@router.get(
    "/.well-known/oauth-protected-resource",
    response_model=ProtectedResourceMetadata,
)
@router.get(
    "/.well-known/oauth-protected-resource/{suffix:path}",
    response_model=ProtectedResourceMetadata,
    include_in_schema=False,
)
def protected_resource(
    settings: Annotated[Settings, Depends(get_settings)],
) -> ProtectedResourceMetadata:
    return metadata_service.protected_resource_metadata(settings)


@router.get(
    "/.well-known/oauth-authorization-server",
    response_model=AuthorizationServerMetadata,
)
@router.get(
    "/.well-known/oauth-authorization-server/{suffix:path}",
    response_model=AuthorizationServerMetadata,
    include_in_schema=False,
)
def authorization_server(
    settings: Annotated[Settings, Depends(get_settings)],
) -> AuthorizationServerMetadata:
    return metadata_service.authorization_server_metadata(settings)
