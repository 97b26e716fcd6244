from __future__ import annotations

from typing import Protocol

from oauth_server.models.authorization_code import AuthorizationCode
from oauth_server.repos.expiring_store import ExpiringStore, InMemoryExpiringStore
from oauth_server.services import token_service


class AuthCodeRepo(Protocol):
    def issue(
        self,
        *,
        client_id: str,
        redirect_uri: str,
        code_challenge: str,
        state: str | None,
    ) -> AuthorizationCode: ...
    def consume(self, code: str) -> AuthorizationCode | None: ...
    def sweep(self) -> int: ...
    def __len__(self) -> int: ...


class InMemoryAuthCodeRepo:
    def __init__(
        self,
        store: ExpiringStore[AuthorizationCode] | None = None,
        *,
        ttl_seconds: int = 300,
    ) -> None:
        self._store: ExpiringStore[AuthorizationCode] = (
            store if store is not None else InMemoryExpiringStore()
        )
        self.ttl_seconds = ttl_seconds

    def issue(
        self,
        *,
        client_id: str,
        redirect_uri: str,
        code_challenge: str,
        state: str | None,
    ) -> AuthorizationCode:
        record = AuthorizationCode.new(
            code=token_service.generate_opaque_token(),
            client_id=client_id,
            redirect_uri=redirect_uri,
            code_challenge=code_challenge,
            state=state,
            issued_at=self._store.now(),
            ttl_seconds=self.ttl_seconds,
        )
        self._store.put(record.code, record, self.ttl_seconds)
        return record

    def consume(self, code: str) -> AuthorizationCode | None:
        """Single-use redemption: the code is gone after this call, whatever
        the caller decides about the returned record.

        An expired record is still returned; the caller checks
        ``is_expired`` so it can tell an expired code from an unknown one.
        """
        if not code:
            return None
        return self._store.pop(code, include_expired=True)

    def sweep(self) -> int:
        return self._store.sweep()

    def __len__(self) -> int:
        return len(self._store)
