from __future__ import annotations

from enum import StrEnum


class OAuthErrorCode(StrEnum):
    """Every error this server can report.  Values are the RFC 6749 wire strings."""

    UNSUPPORTED_RESPONSE_TYPE = "unsupported_response_type"
    UNSUPPORTED_GRANT_TYPE = "unsupported_grant_type"
    INVALID_CLIENT = "invalid_client"
    INVALID_REDIRECT_URI = "invalid_redirect_uri"
    INVALID_REQUEST = "invalid_request"
    INVALID_GRANT = "invalid_grant"
    ACCESS_DENIED = "access_denied"


# One entry per member; tests assert the mapping is exhaustive.
_DEFAULT_STATUS: dict[OAuthErrorCode, int] = {
    OAuthErrorCode.UNSUPPORTED_RESPONSE_TYPE: 400,
    OAuthErrorCode.UNSUPPORTED_GRANT_TYPE: 400,
    OAuthErrorCode.INVALID_CLIENT: 401,
    OAuthErrorCode.INVALID_REDIRECT_URI: 400,
    OAuthErrorCode.INVALID_REQUEST: 400,
    OAuthErrorCode.INVALID_GRANT: 400,
    OAuthErrorCode.ACCESS_DENIED: 403,
}


def default_status(code: OAuthErrorCode) -> int:
    return _DEFAULT_STATUS[code]


class OAuthError(Exception):
    """A terminal protocol failure for the current request.

    Raised by the service layer and rendered by the exception handler in
    main.py as ``{"error": ..., "error_description": ...}``.  The status
    defaults from the code; callers override it where the endpoint calls
    for a different one (``invalid_client`` at /oauth/authorize is a 400).
    """

    def __init__(
        self,
        code: OAuthErrorCode,
        description: str | None = None,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(description or code.value)
        self.code = code
        self.description = description
        self.status_code = status_code if status_code is not None else default_status(code)

    def to_dict(self) -> dict[str, str]:
        body = {"error": self.code.value}
        if self.description:
            body["error_description"] = self.description
        return body
