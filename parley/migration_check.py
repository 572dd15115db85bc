"""Bring the database schema to the newest Alembic revision at startup.

Migrations run in-process through Alembic's command API with a ``Config``
built here, so the server's ``DATABASE_URL`` and logging setup are the ones
the migration uses. ``alembic/env.py`` runs its own event loop, so the
upgrade is executed in a worker thread rather than on the server's loop.

Environment:
    AUTO_MIGRATE=false        skip the upgrade entirely (tests, read replicas)
    REQUIRE_MIGRATIONS=false  log a failed upgrade and keep serving
"""
import asyncio
import os
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory

from parley.database import DATABASE_URL
from parley.logging_config import get_logger

logger = get_logger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _env_flag(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


def build_alembic_config(database_url: str = DATABASE_URL) -> Config:
    """Alembic config pointing at this project's scripts and database."""
    ini_path = PROJECT_ROOT / "alembic.ini"
    config = Config(str(ini_path)) if ini_path.exists() else Config()
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    config.attributes["database_url"] = database_url
    # env.py leaves the server's log handlers alone when this is False
    config.attributes["configure_logger"] = False
    return config


def head_revision(config: Config) -> Optional[str]:
    return ScriptDirectory.from_config(config).get_current_head()


async def ensure_migrations(database_url: str = DATABASE_URL) -> None:
    """Upgrade to head unless AUTO_MIGRATE=false.

    Raises RuntimeError when the upgrade fails and REQUIRE_MIGRATIONS is on
    (the default), which aborts application startup.
    """
    if not _env_flag("AUTO_MIGRATE", True):
        logger.info("AUTO_MIGRATE=false, skipping migration check")
        return

    config = build_alembic_config(database_url)
    head = head_revision(config)
    logger.info(f"Upgrading database schema to {head}")

    try:
        await asyncio.to_thread(command.upgrade, config, "head")
    except Exception as e:
        if _env_flag("REQUIRE_MIGRATIONS", True):
            logger.critical(f"Migration to {head} failed: {e}")
            raise RuntimeError(f"Database migration failed: {e}") from e
        logger.error(f"Migration to {head} failed, continuing without it: {e}")
        return

    logger.info(f"Database schema at {head}")
