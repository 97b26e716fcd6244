from __future__ import annotations

from typing import Protocol

from oauth_server.models.access_token import AccessToken
from oauth_server.repos.expiring_store import ExpiringStore, InMemoryExpiringStore
from oauth_server.services import token_service


class AccessTokenRepo(Protocol):
    def issue(self, *, client_id: str) -> AccessToken: ...
    def get(self, token: str) -> AccessToken | None: ...
    def sweep(self) -> int: ...
    def __len__(self) -> int: ...


class InMemoryAccessTokenRepo:
    def __init__(
        self,
        store: ExpiringStore[AccessToken] | None = None,
        *,
        ttl_seconds: int = 86400,
    ) -> None:
        self._store: ExpiringStore[AccessToken] = (
            store if store is not None else InMemoryExpiringStore()
        )
        self.ttl_seconds = ttl_seconds

    def issue(self, *, client_id: str) -> AccessToken:
        record = AccessToken.new(
            token=token_service.generate_opaque_token(),
            client_id=client_id,
            issued_at=self._store.now(),
            ttl_seconds=self.ttl_seconds,
        )
        self._store.put(record.token, record, self.ttl_seconds)
        return record

    def get(self, token: str) -> AccessToken | None:
        if not token:
            return None
        return self._store.get(token)

    def sweep(self) -> int:
        return self._store.sweep()

    def __len__(self) -> int:
        return len(self._store)
