"""Append-only audit trail of inbound webhook deliveries."""

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parley.logging_config import get_logger
from parley.models.webhook import EVENT_TYPE_MAX_LENGTH, WEBHOOK_STATUSES, WebhookEvent
from parley.utils import dump_json, gen_id, now_ms

logger = get_logger(__name__)

# Unparseable bodies are stored as {"raw": <text>} cut to this many characters.
MAX_RAW_BODY_CHARS = 64_000


def raw_body_payload(raw_body: bytes) -> dict:
    """Wrap a body that could not be decoded as JSON so it still fits the log."""
    text = raw_body.decode("utf-8", errors="replace")
    if len(text) > MAX_RAW_BODY_CHARS:
        return {"raw": text[:MAX_RAW_BODY_CHARS], "truncated": True}
    return {"raw": text}


class WebhookAuditLog:
    """Writes one WebhookEvent row per delivery in its own transaction.

    ``record`` never raises: the audit write is the last step of every
    webhook request, including error paths, and must not replace the
    original outcome with its own failure.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def record(
        self,
        provider: str,
        event_type: str,
        payload: Any,
        status: str,
        error: Optional[str] = None,
        signature_verified: bool = False,
        event_id: Optional[str] = None,
    ) -> Optional[str]:
        """Append an audit row. Returns its id, or None if the write failed.

        ``event_type`` comes from the provider and is cut to the column
        width. ``event_id`` lets the caller reuse an id it already logged
        under; one is generated otherwise.
        """
        if status not in WEBHOOK_STATUSES:
            raise ValueError(f"Unknown webhook status: {status}")

        event_id = event_id or gen_id("whe_")
        event_type = (event_type or "unknown")[:EVENT_TYPE_MAX_LENGTH]
        try:
            async with self._session_factory() as session:
                session.add(
                    WebhookEvent(
                        id=event_id,
                        provider=provider,
                        event_type=event_type,
                        payload=dump_json(payload),
                        status=status,
                        error=error,
                        signature_verified=signature_verified,
                        created_at=now_ms(),
                    )
                )
                await session.commit()
        except Exception:
            # Without this log the delivery leaves no trace.
            logger.exception(
                f"Failed to record webhook event provider={provider} "
                f"type={event_type} status={status} error={error}"
            )
            return None

        return event_id


async def list_events(
    session: AsyncSession,
    provider: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> list[WebhookEvent]:
    """Recent audit rows, newest first."""
    query = select(WebhookEvent)
    if provider:
        query = query.where(WebhookEvent.provider == provider)
    if status:
        query = query.where(WebhookEvent.status == status)
    query = query.order_by(WebhookEvent.created_at.desc()).limit(limit).offset(offset)

    result = await session.execute(query)
    return list(result.scalars().all())
