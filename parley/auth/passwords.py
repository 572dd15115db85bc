"""Password hashing and verification using bcrypt."""

import hashlib

import bcrypt

from parley.auth.config import auth_settings

MIN_PASSWORD_LENGTH = 8


def _prehash(password: str) -> bytes:
    # SHA-256 prehash so passwords > 72 bytes still get full entropy.
    return hashlib.sha256(password.encode("utf-8")).hexdigest().encode("utf-8")


def hash_password(password: str) -> str:
    """Hash a password using bcrypt with the configured work factor."""
    hashed = bcrypt.hashpw(_prehash(password), bcrypt.gensalt(rounds=auth_settings.bcrypt_rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its bcrypt hash."""
    try:
        return bcrypt.checkpw(_prehash(password), password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def password_problem(password: str) -> str | None:
    """Return a human-readable reason the password is unacceptable, or None."""
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    if password.strip() != password:
        return "Password must not start or end with whitespace"
    return None
