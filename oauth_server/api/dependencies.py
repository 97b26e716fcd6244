from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from oauth_server.core.config import Settings
from oauth_server.core.metrics import BEARER_CHECKS
from oauth_server.models.access_token import AccessToken
from oauth_server.services import token_service
from oauth_server.services.authorization_server import AuthorizationServer

logger = logging.getLogger(__name__)

# auto_error=False: a missing header must get OUR 401 (with the metadata
# pointer), not FastAPI's bare 403.
bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_authorization_server(request: Request) -> AuthorizationServer:
    return request.app.state.authorization_server


def _unauthorized(settings: Settings, detail: str) -> HTTPException:
    # RFC 9728 §5.1: point the client at the protected-resource metadata so
    # it can discover where to get a token.
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={
            "WWW-Authenticate": (
                f'Bearer resource_metadata="{settings.protected_resource_metadata_url}"'
            )
        },
    )


def require_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    server: Annotated[AuthorizationServer, Depends(get_authorization_server)],
) -> AccessToken:
    """Resource-server guard: accept only a live token this server issued.

    Used as a FastAPI dependency on any protected endpoint.
    """
    if credentials is None or not credentials.credentials:
        BEARER_CHECKS.labels(result="missing").inc()
        logger.info("Bearer token missing")
        raise _unauthorized(server.settings, "Unauthorized")

    access_token = server.validate_bearer_token(credentials.credentials)
    if access_token is None:
        BEARER_CHECKS.labels(result="invalid").inc()
        logger.warning(
            "Bearer token rejected  (fp=%s)",
            token_service.fingerprint(credentials.credentials),
        )
        raise _unauthorized(server.settings, "Invalid or expired token")

    BEARER_CHECKS.labels(result="valid").inc()
    logger.debug(
        "Bearer token accepted for client=%s",
        access_token.client_id,
        extra={"client_id": access_token.client_id},
    )
    return access_token
