"""Webhook delivery audit log."""
from typing import Optional

from sqlalchemy import BigInteger, Boolean, Index, String, Text, false
from sqlalchemy.orm import Mapped, mapped_column

from parley.models.base import Base

WEBHOOK_STATUS_PROCESSED = "processed"
WEBHOOK_STATUS_IGNORED = "ignored"
WEBHOOK_STATUS_FAILED = "failed"

WEBHOOK_STATUSES = (
    WEBHOOK_STATUS_PROCESSED,
    WEBHOOK_STATUS_IGNORED,
    WEBHOOK_STATUS_FAILED,
)

EVENT_TYPE_MAX_LENGTH = 128


class WebhookEvent(Base):
    """One row per inbound delivery attempt. Append-only.

    ``signature_verified`` is set only for deliveries whose HMAC signature
    checked out; anything read back from the log as session data must
    require it.
    """
    __tablename__ = "webhook_events"
    __table_args__ = (
        Index("idx_webhook_events_created", "created_at"),
        Index("idx_webhook_events_provider_status", "provider", "status"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    provider: Mapped[str] = mapped_column(String(64), nullable=False)
    event_type: Mapped[str] = mapped_column(String(EVENT_TYPE_MAX_LENGTH), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    signature_verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
