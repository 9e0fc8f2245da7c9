"""
shared/utils/security.py
Security helpers shared across services.
"""

import hashlib


def hash_token(token: str) -> str:
    """SHA-256 hash of a token. Credentials are never logged or stored raw."""
    return hashlib.sha256(token.encode()).hexdigest()


def mask_secret(value: str, visible: int = 4) -> str:
    """Mask all but the last few characters (account numbers, Aadhar, PAN)."""
    if not value:
        return value
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]
