"""Security utilities: email hashing, random tokens, password hashes, admin JWTs."""

import hashlib
import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
import jwt

from consent_api.core.config import settings

ADMIN_TOKEN_ALGORITHM = "HS256"


def normalize_email(email: str) -> str:
    """Canonical form used for storage and hashing."""
    return email.strip().lower()


def hash_email(email: str) -> str:
    """One-way SHA-256 hash of the normalized email, used for every lookup."""
    return hashlib.sha256(normalize_email(email).encode()).hexdigest()


def generate_token(length: int = 32) -> str:
    """Generate a secure random token (``length`` bytes of entropy)."""
    return secrets.token_urlsafe(length)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        return False


def create_admin_token(admin_id: str, email: str, role: str) -> str:
    """Sign a bearer token for the admin surface."""
    now = datetime.now(UTC)
    payload: dict[str, Any] = {
        "sub": admin_id,
        "email": email,
        "role": role,
        "iat": now,
        "exp": now + timedelta(hours=settings.admin_token_expire_hours),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ADMIN_TOKEN_ALGORITHM)


def decode_admin_token(token: str) -> dict[str, Any]:
    """Decode and validate an admin bearer token.

    Raises:
        jwt.InvalidTokenError: If the token is malformed, tampered with or expired.
    """
    payload: dict[str, Any] = jwt.decode(
        token,
        settings.secret_key,
        algorithms=[ADMIN_TOKEN_ALGORITHM],
        options={"require": ["sub", "exp"]},
    )
    return payload
