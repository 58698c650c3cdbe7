from __future__ import annotations

import os

import bcrypt

_admin_token_hash: bytes | None = None


def _hash_token(plain: str) -> bytes:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt())


def configure_admin_token(token: str | None) -> None:
    """Set (or clear, with ``None``) the token that unlocks admin endpoints."""
    global _admin_token_hash
    _admin_token_hash = _hash_token(token) if token else None


def verify_admin_token(token: str) -> bool:
    if _admin_token_hash is None:
        return False
    return bcrypt.checkpw(token.encode(), _admin_token_hash)


def admin_configured() -> bool:
    return _admin_token_hash is not None


configure_admin_token(os.environ.get("ADMIN_TOKEN"))
