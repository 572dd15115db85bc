"""Practice session and its per-session artifacts."""
from typing import Optional

from sqlalchemy import BigInteger, Float, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from parley.models.base import Base

SESSION_STATUS_PENDING = "pending"
SESSION_STATUS_COMPLETED = "completed"
SESSION_STATUS_ERROR = "error"

SESSION_STATUSES = (
    SESSION_STATUS_PENDING,
    SESSION_STATUS_COMPLETED,
    SESSION_STATUS_ERROR,
)


class Session(Base):
    """One attempted or completed conversation.

    The primary key doubles as the correlation token echoed back by the
    voice provider's webhook.
    """
    __tablename__ = "sessions"
    __table_args__ = (
        Index("idx_sessions_user_created", "user_id", "created_at"),
        Index("idx_sessions_agent", "agent_id"),
        Index("idx_sessions_status", "status"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    agent_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("agents.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=SESSION_STATUS_PENDING
    )
    title_override: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    started_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    ended_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    transcript: Mapped[Optional["SessionTranscript"]] = relationship(
        back_populates="session", cascade="all, delete-orphan"
    )
    feedback: Mapped[Optional["SessionFeedback"]] = relationship(
        back_populates="session", cascade="all, delete-orphan"
    )
    notes: Mapped[Optional["SessionNote"]] = relationship(
        back_populates="session", cascade="all, delete-orphan"
    )


class SessionTranscript(Base):
    """At most one transcript per session, replaced wholesale on redelivery."""
    __tablename__ = "session_transcripts"

    session_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("sessions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    # JSON array of {role, text, timestamp}
    transcript: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    session: Mapped["Session"] = relationship(back_populates="transcript")


class SessionFeedback(Base):
    """At most one scored feedback per session, replaced wholesale on redelivery."""
    __tablename__ = "session_feedback"

    session_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("sessions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    score_overall: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    # JSON object criterion -> score
    score_breakdown: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Provider analysis blob, kept verbatim for UI fallback rendering
    raw_feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    session: Mapped["Session"] = relationship(back_populates="feedback")


class SessionNote(Base):
    """User's private markdown notes on a session."""
    __tablename__ = "session_notes"

    session_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("sessions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    notes_md: Mapped[str] = mapped_column(Text, nullable=False, default="")
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    session: Mapped["Session"] = relationship(back_populates="notes")
