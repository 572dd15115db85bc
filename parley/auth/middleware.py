"""Auth middleware: global route protection with path allowlist.

Applied as Starlette middleware so it runs before FastAPI dependency
injection and covers every route without per-router Depends().
"""

import re

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from parley.auth.config import auth_settings
from parley.auth.dependencies import _extract_bearer_token
from parley.logging_config import get_logger

logger = get_logger(__name__)

# Paths that never require authentication.
PUBLIC_PATH_PATTERNS: list[re.Pattern] = [
    re.compile(r"^/v1/status$"),
    re.compile(r"^/v1/auth/register$"),
    re.compile(r"^/v1/auth/login$"),
    re.compile(r"^/v1/settings/public$"),
    # Webhook endpoints (protected by their own signature verification)
    re.compile(r"^/v1/webhooks/"),
    re.compile(r"^/docs$"),
    re.compile(r"^/redoc$"),
    re.compile(r"^/openapi\.json$"),
]


def _is_public_path(path: str) -> bool:
    """Return True if the path matches a public pattern."""
    return any(pattern.match(path) for pattern in PUBLIC_PATH_PATTERNS)


class AuthMiddleware(BaseHTTPMiddleware):
    """Reject requests without a bearer token on non-public paths.

    This is a fast pre-check only. Token validation and the user lookup
    happen in get_current_user.

    When AUTH_ENABLED=false, this middleware is a no-op.
    """

    async def dispatch(self, request: Request, call_next):
        if not auth_settings.enabled:
            return await call_next(request)

        if _is_public_path(request.url.path):
            return await call_next(request)

        # Allow CORS preflight
        if request.method == "OPTIONS":
            return await call_next(request)

        if not _extract_bearer_token(request):
            return JSONResponse(
                status_code=401,
                content={"detail": "Not authenticated"},
                headers={"WWW-Authenticate": "Bearer"},
            )

        return await call_next(request)
