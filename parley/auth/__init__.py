"""Authentication module for the Parley API."""

from parley.auth.config import auth_settings
from parley.auth.dependencies import (
    get_current_user,
    get_current_admin,
    AuthUser,
)

__all__ = [
    "auth_settings",
    "get_current_user",
    "get_current_admin",
    "AuthUser",
]
