"""Voice-provider webhook signature verification."""
import hashlib
import hmac
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from parley.config import parley_settings
from parley.logging_config import get_logger
from parley.services.settings_service import load_settings

logger = get_logger(__name__)


def compute_signature(payload_body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the raw body, as the provider sends it."""
    mac = hmac.new(
        key=secret.encode("utf-8"),
        msg=payload_body,
        digestmod=hashlib.sha256,
    )
    return mac.hexdigest()


def verify_signature(
    payload_body: bytes,
    signature_header: Optional[str],
    secret: Optional[str],
) -> bool:
    """Verify a webhook signature using HMAC-SHA256.

    Args:
        payload_body: Raw request body as bytes, before any JSON parsing
        signature_header: Signature header value (hex digest, optionally
            prefixed with ``sha256=``)
        secret: Webhook secret string

    Returns:
        True if signature is valid, False otherwise. A missing header or an
        empty secret is never valid.

    Example:
        >>> verify_signature(b'{"event":"x"}', compute_signature(b'{"event":"x"}', "s"), "s")
        True
    """
    if not secret or not signature_header:
        return False

    expected_signature = signature_header.strip()
    if expected_signature.lower().startswith("sha256="):
        expected_signature = expected_signature.split("=", 1)[1]
    expected_signature = expected_signature.lower()

    computed_signature = compute_signature(payload_body, secret)

    # Constant-time comparison; bytes so a non-ASCII header compares unequal
    return hmac.compare_digest(
        computed_signature.encode("ascii"),
        expected_signature.encode("utf-8", errors="replace"),
    )


async def resolve_webhook_secret(db: AsyncSession) -> Optional[str]:
    """Get the current webhook secret.

    Priority:
    1. ``secret`` of the ``elevenlabs`` settings section (rotatable at runtime)
    2. ELEVENLABS_WEBHOOK_SECRET from the environment

    Returns None when neither is configured; callers must then reject.
    """
    fallback = parley_settings.elevenlabs_webhook_secret

    try:
        settings = await load_settings(db)
    except SQLAlchemyError as e:
        logger.error(f"Unable to read webhook secret from settings store: {e}")
        return fallback

    return settings.elevenlabs.secret or fallback
