from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

CLIENT_NAME_MAX_LEN = 256
DEFAULT_CLIENT_NAME = "MCP Client"


class ClientRegistrationRequest(BaseModel):
    """RFC 7591 registration body.  Only the fields this server reads.

    Unknown metadata (logo_uri, scope, ...) is accepted and ignored, as
    RFC 7591 §2 asks of servers that do not support a field.
    """

    model_config = ConfigDict(extra="ignore")

    client_name: str | None = Field(default=None, max_length=CLIENT_NAME_MAX_LEN)
    redirect_uris: list[str] | None = None


class ClientRegistrationResponse(BaseModel):
    client_id: str
    client_name: str
    redirect_uris: list[str]
    grant_types: list[str] = ["authorization_code"]
    response_types: list[str] = ["code"]
    token_endpoint_auth_method: str = "none"
