"""Liveness endpoint.

The server has no external dependencies (no database, no cache), so
"the process answers" is the whole health story.  The response also
reports how many codes and tokens are held in memory, which is the one
resource that can grow: a steadily rising count means the sweeper is not
running.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from oauth_server.api.dependencies import get_authorization_server
from oauth_server.services.authorization_server import AuthorizationServer

router = APIRouter(tags=["health"])


@router.get("/health")
def health(
    server: Annotated[AuthorizationServer, Depends(get_authorization_server)],
) -> dict:
    return {
        "status": "ok",
        "stores": {
            "authorization_codes": len(server.code_repo),
            "access_tokens": len(server.token_repo),
        },
    }
