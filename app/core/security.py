"""Internal API key hashing utilities."""

import hashlib
import hmac
import secrets

from app.core.config import settings


def hash_api_key(raw_key: str) -> str:
    """SHA-256 hash of raw API key for storage."""
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key() -> tuple[str, str]:
    """Generate a new API key. Returns (raw_key, hashed_key)."""
    raw = f"{settings.api_key_prefix}{secrets.token_urlsafe(32)}"
    hashed = hash_api_key(raw)
    return raw, hashed


def verify_api_key(raw_key: str, stored_hash: str) -> bool:
    """Verify a raw API key against its stored hash."""
    if not raw_key or not stored_hash:
        return False
    return hmac.compare_digest(hash_api_key(raw_key), stored_hash)
