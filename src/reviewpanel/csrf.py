"""Anti-forgery tokens for write tools.

The server issues one token per process; every write tool must echo it back.
"""

from __future__ import annotations

import hmac
import secrets

_TOKEN_BYTES = 32


def generate_token() -> str:
    return secrets.token_hex(_TOKEN_BYTES)


def validate_token(supplied: str | None, issued: str | None) -> bool:
    """True iff both tokens are non-empty and equal (constant-time compare)."""
    if not supplied or not issued:
        return False
    return hmac.compare_digest(supplied.encode(), issued.encode())
