"""Typed access to the admin-editable settings table.

Each known key maps to a pydantic section model with a version and explicit
defaults. Rows are parsed and validated once, in ``load_settings``; call
sites receive an ``AppSettings`` aggregate and never touch raw JSON.
"""

import json
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parley.database import dialect_insert
from parley.logging_config import get_logger
from parley.models.settings import Setting
from parley.utils import now_ms

logger = get_logger(__name__)


class SettingsSection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: int = 1


class ElevenLabsSettings(SettingsSection):
    """Voice provider integration. ``secret`` is the rotating webhook secret."""

    secret: Optional[str] = None

    @field_validator("secret")
    @classmethod
    def _blank_secret_is_unset(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None


class BrandingSettings(SettingsSection):
    logo_path: Optional[str] = None
    primary_color: str = "#0BA37F"


class LandingSettings(SettingsSection):
    serviceName: str = "Parley"
    headline: str = "Trenuj rozmowy, które liczą się naprawdę"
    subClaim: str = "Ćwicz z agentami AI i otrzymuj szczegółowy feedback"
    lead: str = "Rozpocznij swoją podróż do perfekcji komunikacji"
    cta_login: str = "Zaloguj się"
    cta_register: str = "Utwórz konto"


class EmailSettings(SettingsSection):
    from_address: Optional[str] = None
    reply_to: Optional[str] = None
    feedback_ready_enabled: bool = False


SECTION_MODELS: dict[str, type[SettingsSection]] = {
    "elevenlabs": ElevenLabsSettings,
    "branding": BrandingSettings,
    "landing": LandingSettings,
    "email": EmailSettings,
}


class AppSettings(BaseModel):
    """Every known settings section, defaults filled in."""

    elevenlabs: ElevenLabsSettings = ElevenLabsSettings()
    branding: BrandingSettings = BrandingSettings()
    landing: LandingSettings = LandingSettings()
    email: EmailSettings = EmailSettings()

    def public_view(self) -> dict:
        """Sections safe to expose to unauthenticated clients."""
        return {
            "branding": self.branding.model_dump(),
            "landing": self.landing.model_dump(),
        }

    def admin_view(self) -> dict:
        """All sections, with the webhook secret reduced to a presence flag."""
        data = self.model_dump()
        data["elevenlabs"].pop("secret", None)
        data["elevenlabs"]["secretConfigured"] = self.elevenlabs.secret is not None
        return data


class UnknownSettingError(KeyError):
    pass


def parse_section(key: str, raw: Any) -> SettingsSection:
    """Validate a raw value against the section model for ``key``.

    Raises UnknownSettingError for keys with no model and
    pydantic.ValidationError for invalid values.
    """
    model = SECTION_MODELS.get(key)
    if model is None:
        raise UnknownSettingError(key)
    if raw is None:
        raw = {}
    return model.model_validate(raw)


async def load_settings(session: AsyncSession) -> AppSettings:
    """Load every settings row into an AppSettings aggregate.

    Rows that fail validation are logged and replaced by their defaults so a
    bad admin edit cannot take the webhook pipeline down.
    """
    result = await session.execute(select(Setting))
    sections: dict[str, SettingsSection] = {}
    for row in result.scalars().all():
        if row.key not in SECTION_MODELS:
            continue
        try:
            sections[row.key] = parse_section(row.key, json.loads(row.value))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Invalid settings row '{row.key}', using defaults: {e}")
    return AppSettings(**sections)


async def save_section(session: AsyncSession, key: str, raw: Any) -> SettingsSection:
    """Validate and upsert one section. Caller commits."""
    section = parse_section(key, raw)
    value = section.model_dump_json()
    now = now_ms()

    stmt = (
        dialect_insert(session, Setting)
        .values(key=key, value=value, updated_at=now)
        .on_conflict_do_update(
            index_elements=["key"],
            set_={"value": value, "updated_at": now},
        )
    )
    await session.execute(stmt)
    logger.info(f"Settings section '{key}' updated")
    return section
