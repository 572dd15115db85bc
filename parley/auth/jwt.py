"""JWT token creation and validation."""

import uuid
from datetime import datetime, timedelta, timezone

import jwt as pyjwt

from parley.auth.config import auth_settings

TOKEN_TYPE_ACCESS = "access"


def create_access_token(user_id: str, email: str, is_admin: bool) -> str:
    """Create a short-lived access token."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "is_admin": is_admin,
        "type": TOKEN_TYPE_ACCESS,
        "iat": now,
        "exp": now + timedelta(seconds=auth_settings.access_token_ttl_seconds),
        "jti": uuid.uuid4().hex,
    }
    return pyjwt.encode(payload, auth_settings.secret_key, algorithm="HS256")


def decode_token(token: str) -> dict:
    """Decode and validate a JWT.

    Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
    """
    return pyjwt.decode(token, auth_settings.secret_key, algorithms=["HS256"])
