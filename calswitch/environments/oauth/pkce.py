"""PKCE helpers (RFC 7636)."""

import base64
import hashlib
import secrets


VERIFIER_LENGTH = 64


def generate_verifier(length: int = VERIFIER_LENGTH) -> str:
    """
    Generate a cryptographically random code verifier.

    RFC 7636 requires 43..128 characters from the unreserved set; the
    URL-safe base64 alphabet is a subset of it.
    """
    if not 43 <= length <= 128:
        raise ValueError("PKCE verifier length must be between 43 and 128")
    return secrets.token_urlsafe(length)[:length]


def challenge_for(verifier: str) -> str:
    """S256 challenge: base64url(sha256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_nonce() -> str:
    """Anti-replay value carried in the OAuth state parameter."""
    return secrets.token_urlsafe(16)
