from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class AccessToken:
    token: str
    client_id: str
    expires_at: float

    @staticmethod
    def new(
        *,
        token: str,
        client_id: str,
        issued_at: float,
        ttl_seconds: float,
    ) -> AccessToken:
        return AccessToken(
            token=token,
            client_id=client_id,
            expires_at=issued_at + ttl_seconds,
        )

    def is_expired(self, now: float) -> bool:
        return self.expires_at < now
