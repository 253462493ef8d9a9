# storefront/security.py
"""Password hashing and bearer-token material.

Passwords go through bcrypt. Tokens are random URL-safe strings; only
their SHA-256 digest is stored, so the digest needs no secret key.
"""

import hashlib
import secrets
from datetime import timedelta

import bcrypt

from .database import utcnow
from .models import Token


def hash_password(password: str, rounds: int = 12) -> bytes:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))


def verify_password(password: str, password_hash: bytes) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), bytes(password_hash))
    except ValueError:
        # malformed stored hash
        return False


def hash_token(plain: str) -> bytes:
    return hashlib.sha256(plain.encode("utf-8")).digest()


def generate_token(user_id: int, length: int = 16, ttl: timedelta = timedelta(hours=72)) -> Token:
    plain = secrets.token_urlsafe(length)
    return Token(plain=plain, hashed=hash_token(plain), user_id=user_id, expiry=utcnow() + ttl)
