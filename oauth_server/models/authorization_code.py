from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class AuthorizationCode:
    code: str
    client_id: str
    redirect_uri: str
    code_challenge: str
    state: str
    expires_at: float

    @staticmethod
    def new(
        *,
        code: str,
        client_id: str,
        redirect_uri: str,
        code_challenge: str,
        state: str | None,
        issued_at: float,
        ttl_seconds: float,
    ) -> AuthorizationCode:
        return AuthorizationCode(
            code=code,
            client_id=client_id,
            redirect_uri=redirect_uri,
            code_challenge=code_challenge,
            state=state or "",
            expires_at=issued_at + ttl_seconds,
        )

    def is_expired(self, now: float) -> bool:
        return self.expires_at < now
