"""SQLAlchemy ORM models for Parley."""

from parley.models.base import Base, TimestampMixin, now_ms
from parley.models.auth import User
from parley.models.agent import Agent
from parley.models.session import (
    Session,
    SessionTranscript,
    SessionFeedback,
    SessionNote,
    SESSION_STATUS_PENDING,
    SESSION_STATUS_COMPLETED,
    SESSION_STATUS_ERROR,
    SESSION_STATUSES,
)
from parley.models.webhook import (
    WebhookEvent,
    WEBHOOK_STATUS_PROCESSED,
    WEBHOOK_STATUS_IGNORED,
    WEBHOOK_STATUS_FAILED,
    WEBHOOK_STATUSES,
)
from parley.models.settings import Setting

__all__ = [
    "Base",
    "TimestampMixin",
    "now_ms",
    "User",
    "Agent",
    "Session",
    "SessionTranscript",
    "SessionFeedback",
    "SessionNote",
    "SESSION_STATUS_PENDING",
    "SESSION_STATUS_COMPLETED",
    "SESSION_STATUS_ERROR",
    "SESSION_STATUSES",
    "WebhookEvent",
    "WEBHOOK_STATUS_PROCESSED",
    "WEBHOOK_STATUS_IGNORED",
    "WEBHOOK_STATUS_FAILED",
    "WEBHOOK_STATUSES",
    "Setting",
]
