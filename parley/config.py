"""Deployment configuration: reads from environment variables."""

import os
from dataclasses import dataclass, field
from typing import Optional


def _optional_env(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


@dataclass
class ParleySettings:
    """Static, deployment-wide configuration read from env vars at import time.

    Anything an admin may change at runtime (the rotating webhook secret,
    branding, landing copy) lives in the settings table instead; see
    parley.services.settings_service.
    """

    # Fallback webhook secret used when the settings store has none.
    elevenlabs_webhook_secret: Optional[str] = field(
        default_factory=lambda: _optional_env("ELEVENLABS_WEBHOOK_SECRET")
    )

    # Enables server-side signed conversation URLs on session start.
    elevenlabs_api_key: Optional[str] = field(
        default_factory=lambda: _optional_env("ELEVENLABS_API_KEY")
    )

    elevenlabs_api_url: str = field(
        default_factory=lambda: os.getenv(
            "ELEVENLABS_API_URL", "https://api.elevenlabs.io"
        ).rstrip("/")
    )

    # Header carrying the hex HMAC-SHA256 digest of the raw webhook body.
    webhook_signature_header: str = field(
        default_factory=lambda: os.getenv("WEBHOOK_SIGNATURE_HEADER", "X-Signature")
    )

    # How many recent audit rows the session detail view may scan
    # when reconstructing artifacts that were never persisted.
    webhook_recovery_scan_limit: int = field(
        default_factory=lambda: int(os.getenv("WEBHOOK_RECOVERY_SCAN_LIMIT", "50"))
    )


# Singleton: imported everywhere.
parley_settings = ParleySettings()
