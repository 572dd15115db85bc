"""Public settings for the landing page and branding."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from parley.database import get_async_session
from parley.services.settings_service import load_settings

router = APIRouter()


@router.get("/public")
async def get_public_settings(db: AsyncSession = Depends(get_async_session)):
    """Branding and landing copy. Never includes provider credentials."""
    settings = await load_settings(db)
    return settings.public_view()
