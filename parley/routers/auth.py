"""Authentication API routes: local signup, login and the current user."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from parley.auth.config import auth_settings
from parley.auth.dependencies import AuthUser, get_current_user
from parley.auth.jwt import create_access_token
from parley.auth.passwords import hash_password, password_problem, verify_password
from parley.database import get_async_session
from parley.logging_config import get_logger
from parley.models.auth import User
from parley.models.base import now_ms
from parley.utils import gen_id

logger = get_logger(__name__)

router = APIRouter()


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "displayName": user.display_name,
        "isAdmin": user.is_admin,
    }


def _issue_token(user: User) -> dict:
    return {
        "accessToken": create_access_token(
            user_id=user.id, email=user.email, is_admin=user.is_admin
        ),
        "tokenType": "Bearer",
        "expiresIn": auth_settings.access_token_ttl_seconds,
        "user": _user_to_dict(user),
    }


# ─── Schemas ──────────────────────────────────────────────────────────────────


class RegisterRequest(BaseModel):
    email: str
    password: str
    displayName: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


# ─── Routes ───────────────────────────────────────────────────────────────────


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    session: AsyncSession = Depends(get_async_session),
):
    """Create a local account. The first account becomes the admin."""
    email = body.email.lower().strip()
    if "@" not in email:
        raise HTTPException(status_code=400, detail="Invalid email address")

    problem = password_problem(body.password)
    if problem:
        raise HTTPException(status_code=400, detail=problem)

    existing = await session.scalar(select(User.id).where(User.email == email))
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists",
        )

    user_count = await session.scalar(select(func.count()).select_from(User))

    now = now_ms()
    user = User(
        id=gen_id("usr_"),
        email=email,
        display_name=body.displayName or email.split("@")[0],
        password_hash=hash_password(body.password),
        is_active=True,
        is_admin=(user_count or 0) == 0,
        created_at=now,
        updated_at=now,
    )
    session.add(user)
    await session.flush()

    logger.info(f"Registered user {user.id} (admin={user.is_admin})")
    return _issue_token(user)


@router.post("/login")
async def login(
    body: LoginRequest,
    session: AsyncSession = Depends(get_async_session),
):
    """Email/password login."""
    result = await session.execute(
        select(User).where(User.email == body.email.lower().strip())
    )
    user = result.scalar_one_or_none()

    if not user or not user.password_hash:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is disabled",
        )
    if not verify_password(body.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    return _issue_token(user)


@router.get("/me")
async def get_me(user: AuthUser = Depends(get_current_user)):
    """Get the current authenticated user's info."""
    return {
        "id": user.id,
        "email": user.email,
        "displayName": user.display_name,
        "isAdmin": user.is_admin,
    }
