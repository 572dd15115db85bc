"""FastAPI authentication dependencies.

  get_current_user   : requires a valid access token (user must exist and be active)
  get_current_admin  : same as above + user must be admin
"""

from dataclasses import dataclass
from typing import Optional

import jwt as pyjwt
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parley.auth.config import auth_settings
from parley.auth.jwt import TOKEN_TYPE_ACCESS, decode_token
from parley.database import get_async_session
from parley.logging_config import get_logger
from parley.models.auth import User

logger = get_logger(__name__)


@dataclass
class AuthUser:
    """Represents the authenticated caller."""

    id: str
    email: Optional[str]
    display_name: Optional[str]
    is_admin: bool

    @staticmethod
    def anonymous() -> "AuthUser":
        """Synthetic admin used when AUTH_ENABLED=false."""
        return AuthUser(
            id="anonymous",
            email=None,
            display_name="Anonymous",
            is_admin=True,
        )


def _extract_bearer_token(request: Request) -> Optional[str]:
    """Extract the Bearer token from the Authorization header."""
    auth_header = request.headers.get("authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    request: Request,
    session: AsyncSession = Depends(get_async_session),
) -> AuthUser:
    """Resolve the current user from a JWT access token.

    Raises 401 if no valid credential is provided.
    """
    if not auth_settings.enabled:
        return AuthUser.anonymous()

    token = _extract_bearer_token(request)
    if not token:
        raise _unauthorized("Not authenticated")

    try:
        payload = decode_token(token)
    except pyjwt.ExpiredSignatureError:
        raise _unauthorized("Token expired")
    except pyjwt.InvalidTokenError:
        raise _unauthorized("Invalid or expired token")

    if payload.get("type") != TOKEN_TYPE_ACCESS:
        raise _unauthorized("Invalid token type")

    user_id = payload.get("sub")
    if not user_id:
        raise _unauthorized("Invalid or expired token")

    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise _unauthorized("User not found or inactive")

    return AuthUser(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        is_admin=user.is_admin,
    )


async def get_current_admin(
    user: AuthUser = Depends(get_current_user),
) -> AuthUser:
    """Require an admin user."""
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user
