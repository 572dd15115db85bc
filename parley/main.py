import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from parley.logging_config import setup_logging, get_logger

logger = get_logger(__name__)
from parley.auth.config import auth_settings
from parley.auth.middleware import AuthMiddleware
from parley.config import parley_settings
from parley.database import close_db_engine, get_session_factory, init_db_engine
from parley.migration_check import ensure_migrations
from parley.models.session import SESSION_STATUS_PENDING, Session
from parley.routers import admin as admin_router
from parley.routers import agents as agents_router
from parley.routers import auth as auth_router
from parley.routers import sessions as sessions_router
from parley.routers import settings as settings_router
from parley.routers import webhooks as webhooks_router

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging, check auth config, connect the database and migrate."""
    setup_logging()

    try:
        auth_settings.validate()
        if auth_settings.enabled:
            logger.info("Authentication is ENABLED")
        else:
            logger.warning("Authentication is DISABLED (AUTH_ENABLED=false)")
    except RuntimeError as e:
        logger.critical(f"Auth configuration error: {e}")
        raise

    await init_db_engine()
    await ensure_migrations()

    if not parley_settings.elevenlabs_webhook_secret:
        logger.warning(
            "ELEVENLABS_WEBHOOK_SECRET is not set; webhooks are rejected "
            "until a secret is saved in the elevenlabs settings section"
        )
    if not parley_settings.elevenlabs_api_key:
        logger.info("ELEVENLABS_API_KEY is not set; session start returns no signed URL")

    yield

    try:
        await close_db_engine()
        logger.info("Database engine closed")
    except Exception as e:
        logger.error(f"Error closing database engine: {e}")


app = FastAPI(
    title="Parley API",
    version=VERSION,
    description="Session lifecycle and webhook reconciliation for voice practice sessions",
    lifespan=lifespan,
)

# CORS_ORIGINS env var controls allowed origins.
#   "*" or unset         → wildcard, credentials disabled
#   "http://a,https://b" → explicit origin list, credentials enabled
_cors_origins_env = os.getenv("CORS_ORIGINS", "*").strip()
if _cors_origins_env == "*":
    _cors_origins = ["*"]
    _cors_credentials = False
else:
    _cors_origins = [o.strip() for o in _cors_origins_env.split(",") if o.strip()]
    _cors_credentials = True

# Starlette middleware order is LIFO: CORS added last runs outermost,
# so 401 responses from AuthMiddleware still carry CORS headers.
app.add_middleware(AuthMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=_cors_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions and return proper JSON response."""
    error_detail = str(exc)
    error_type = type(exc).__name__

    logger.error(
        f"Unhandled exception in {request.method} {request.url.path}: {error_type}: {error_detail}",
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={
            "detail": f"{error_type}: {error_detail}",
            "type": error_type,
            "path": str(request.url.path),
        },
    )


app.include_router(auth_router.router, prefix="/v1/auth", tags=["auth"])
app.include_router(agents_router.router, prefix="/v1/agents", tags=["agents"])
app.include_router(sessions_router.router, prefix="/v1/sessions", tags=["sessions"])
app.include_router(webhooks_router.router, prefix="/v1/webhooks", tags=["webhooks"])
app.include_router(settings_router.router, prefix="/v1/settings", tags=["settings"])
app.include_router(admin_router.router, prefix="/v1/admin", tags=["admin"])


@app.get("/v1/status")
async def status(session_factory: async_sessionmaker = Depends(get_session_factory)):
    """Get API health status."""
    database_ok = False
    pending_sessions = None
    try:
        async with session_factory() as session:
            pending_sessions = await session.scalar(
                select(func.count())
                .select_from(Session)
                .where(Session.status == SESSION_STATUS_PENDING)
            )
        database_ok = True
    except SQLAlchemyError as e:
        logger.warning(f"Status check could not reach the database: {e}")

    return {
        "status": "ok" if database_ok else "degraded",
        "version": VERSION,
        "database": database_ok,
        "pendingSessions": pending_sessions,
        "authEnabled": auth_settings.enabled,
    }
