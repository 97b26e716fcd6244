from __future__ import annotations

import base64
import hashlib
import hmac
import secrets

# PKCE (RFC 7636) as used by /oauth/authorize and /oauth/token.
#
# Only the S256 method exists here.  "plain" would send the verifier itself
# as the challenge, so an intercepted authorization request would be enough
# to redeem the code; OAuth 2.1 drops it and so do we.

SUPPORTED_METHODS = frozenset({"S256"})


def is_supported_method(method: str | None) -> bool:
    return method in SUPPORTED_METHODS


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_code_verifier() -> str:
    """Client-side helper: 32 random bytes → 43 unreserved characters."""
    return _b64url(secrets.token_bytes(32))


def compute_code_challenge(code_verifier: str) -> str:
    """base64url(SHA-256(verifier)), unpadded."""
    return _b64url(hashlib.sha256(code_verifier.encode("ascii", "strict")).digest())


def verify_code_challenge(code_verifier: str, expected_challenge: str) -> bool:
    """Constant-time check that the verifier hashes to the stored challenge.

    A verifier with non-ASCII characters can never be valid (RFC 7636 §4.1
    restricts it to the unreserved set) and fails rather than raising.
    """
    if not code_verifier or not expected_challenge:
        return False
    try:
        actual = compute_code_challenge(code_verifier)
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(actual.encode(), expected_challenge.encode())
