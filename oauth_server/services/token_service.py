"""Opaque credential minting and signed consent tokens.

Authorization codes and access tokens are opaque: 32 random bytes,
hex-encoded (64 chars, 256 bits).  The server's own store is the only
authority on them, so there is nothing to sign or parse.

The consent token is the one signed artifact.  The consent page carries
client_id, redirect_uri, code_challenge and state as hidden form fields;
the browser posts them back and nothing stops a user (or a script) from
editing them in between.  Re-checking the allow-list catches a foreign
redirect_uri but not, say, a swapped code_challenge.  So the page also
embeds an HS256 JWT over those four fields, and the approve step checks
that the posted fields are exactly the ones that were shown.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import UTC, datetime, timedelta

import jwt

ALGORITHM = "HS256"
CONSENT_AUDIENCE = "oauth-consent"

# Claims that bind a consent token to the request it was rendered for.
_BOUND_FIELDS = ("client_id", "redirect_uri", "code_challenge", "state")


def generate_opaque_token() -> str:
    return secrets.token_hex(32)


def generate_client_id() -> str:
    return f"dcr-{secrets.token_hex(8)}"


def generate_signing_secret() -> str:
    return secrets.token_urlsafe(32)


def fingerprint(value: str) -> str:
    """Short, non-reversible tag for correlating a credential across log lines."""
    return hashlib.sha256(value.encode()).hexdigest()[:12]


def create_consent_token(
    *,
    secret: str,
    issuer: str,
    ttl_seconds: int,
    client_id: str,
    redirect_uri: str,
    code_challenge: str,
    state: str,
) -> str:
    now = datetime.now(UTC)
    payload = {
        "iss": issuer,
        "aud": CONSENT_AUDIENCE,
        "iat": now,
        "exp": now + timedelta(seconds=ttl_seconds),
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "code_challenge": code_challenge,
        "state": state,
    }
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def verify_consent_token(
    token: str,
    *,
    secret: str,
    issuer: str,
    client_id: str,
    redirect_uri: str,
    code_challenge: str,
    state: str,
) -> bool:
    """True only if the token is valid, unexpired, and binds exactly these fields.

    Pins the algorithm to HS256 so an ``alg: none`` token is rejected.
    """
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            issuer=issuer,
            audience=CONSENT_AUDIENCE,
            options={"require": ["exp", "iat", *_BOUND_FIELDS]},
        )
    except jwt.InvalidTokenError:
        return False

    submitted = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "code_challenge": code_challenge,
        "state": state,
    }
    return all(
        hmac.compare_digest(str(claims[name]).encode(), submitted[name].encode())
        for name in _BOUND_FIELDS
    )
