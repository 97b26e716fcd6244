from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

# Callback URIs of the MCP client this server is built for.  Exact-match only.
DEFAULT_REDIRECT_URIS: tuple[str, ...] = (
    "https://claude.ai/api/mcp/auth_callback",
    "https://www.claude.ai/api/mcp/auth_callback",
    "https://claude.com/api/mcp/auth_callback",
    "https://www.claude.com/api/mcp/auth_callback",
)


def _getenv(name: str, default: str) -> str:
    # Centralize env access so casting and validation live in one place
    return os.environ.get(name, default).strip()


def _getenv_int(name: str, default: int, *, minimum: int = 1) -> int:
    raw = _getenv(name, str(default))
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum} (got {value})")
    return value


def _getenv_bool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    base_url: str
    resource_path: str
    allowed_redirect_uris: tuple[str, ...]
    client_id: str | None = None
    client_secret: str | None = None
    auth_code_ttl_sec: int = 300
    access_token_ttl_sec: int = 86400
    sweep_interval_sec: int = 600
    consent_signing_secret: str | None = None
    require_signed_consent: bool = False

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    @property
    def resource_url(self) -> str:
        return f"{self.base_url}{self.resource_path}"

    @property
    def protected_resource_metadata_url(self) -> str:
        return f"{self.base_url}/.well-known/oauth-protected-resource"

    def is_allowed_redirect_uri(self, uri: str | None) -> bool:
        """Exact, byte-for-byte membership in the allow-list.

        No normalization: a trailing slash, a query string or a different
        letter case all make the URI a different URI.
        """
        return bool(uri) and uri in self.allowed_redirect_uris


def _parse_redirect_uris(raw: str) -> tuple[str, ...]:
    uris = tuple(u.strip() for u in raw.split(",") if u.strip())
    if not uris:
        raise ValueError("ALLOWED_REDIRECT_URIS must contain at least one URI")
    for uri in uris:
        if not uri.startswith(("https://", "http://")):
            raise ValueError(
                f"ALLOWED_REDIRECT_URIS entries must be absolute http(s) URIs (got {uri!r})"
            )
    return uris


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    port = _getenv_int("PORT", 8000)

    base_url = _getenv("BASE_URL", f"http://localhost:{port}").rstrip("/")
    if not base_url.startswith(("https://", "http://")):
        raise ValueError(f"BASE_URL must start with http:// or https:// (got {base_url!r})")

    resource_path = _getenv("RESOURCE_PATH", "/mcp/sse")
    if not resource_path.startswith("/"):
        raise ValueError(f"RESOURCE_PATH must start with '/' (got {resource_path!r})")

    redirect_raw = _getenv("ALLOWED_REDIRECT_URIS", "")
    allowed_redirect_uris = (
        _parse_redirect_uris(redirect_raw) if redirect_raw else DEFAULT_REDIRECT_URIS
    )

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getenv_bool("LOG_JSON", False),
        port=port,
        base_url=base_url,
        resource_path=resource_path,
        allowed_redirect_uris=allowed_redirect_uris,
        client_id=_getenv("MCP_OAUTH_CLIENT_ID", "") or None,
        client_secret=_getenv("MCP_OAUTH_CLIENT_SECRET", "") or None,
        auth_code_ttl_sec=_getenv_int("AUTH_CODE_TTL_SEC", 300),
        access_token_ttl_sec=_getenv_int("ACCESS_TOKEN_TTL_SEC", 86400),
        sweep_interval_sec=_getenv_int("SWEEP_INTERVAL_SEC", 600),
        consent_signing_secret=_getenv("CONSENT_SIGNING_SECRET", "") or None,
        require_signed_consent=_getenv_bool("REQUIRE_SIGNED_CONSENT", False),
    )


# Module-level singleton so imports are cheap
SETTINGS = load_settings()
