from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from oauth_server.api.dependencies import require_bearer_token
from oauth_server.models.access_token import AccessToken

logger = logging.getLogger(__name__)

router = APIRouter(tags=["resource"])


class TokenInfoOut(BaseModel):
    client_id: str
    expires_at: int


@router.get("/resource/me", response_model=TokenInfoOut)
def get_token_info(
    access_token: Annotated[AccessToken, Depends(require_bearer_token)],
) -> TokenInfoOut:
    """Protected endpoint: requires a valid access token.

    Stands in for the tool-invocation endpoint.  It shows the last leg of
    the flow: the client presents the token it redeemed and the resource
    server trusts only the record this server issued.
    """
    logger.info("Resource accessed by client=%s", access_token.client_id)
    return TokenInfoOut(
        client_id=access_token.client_id,
        expires_at=int(access_token.expires_at),
    )
