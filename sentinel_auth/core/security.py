"""
Secret and clock helpers shared by the credential services.

Opaque secrets (refresh tokens, reset tokens, API keys) are generated
here and only ever persisted as their SHA-256 digest.
"""

import hashlib
import secrets
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Aware UTC copy of ``value``; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def generate_secret(num_bytes: int = 32) -> str:
    """Return ``num_bytes`` of CSPRNG output as lowercase hex."""
    return secrets.token_hex(num_bytes)


def hash_secret(secret: str) -> str:
    """SHA-256 hex digest used as the lookup key for stored secrets."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()
