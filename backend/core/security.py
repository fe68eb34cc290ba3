"""Security utilities for random secrets and timestamps."""

import re
import secrets
from datetime import datetime, timezone
from typing import Optional

from authlib.common.security import generate_token

_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]{16,128}$")


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from stores that drop tzinfo (SQLite)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def generate_session_token() -> str:
    """Create an unguessable bearer secret for a session cookie."""
    return secrets.token_urlsafe(32)


def generate_verification_token() -> str:
    """Create a single-use email verification secret."""
    return secrets.token_urlsafe(32)


def generate_oauth_state() -> str:
    """Create a CSRF state value for an OAuth authorization request."""
    return generate_token(32)


def generate_code_verifier() -> str:
    """Create a PKCE code verifier (RFC 7636 allows 43-128 characters)."""
    return generate_token(64)


def is_well_formed_token(value: Optional[str]) -> bool:
    """Check a client-supplied token before it reaches the database.

    Tokens minted here are URL-safe base64; anything else (cookie injection
    attempts, truncated values) is rejected without a lookup.
    """
    if not value or not isinstance(value, str):
        return False
    return bool(_TOKEN_PATTERN.match(value))
