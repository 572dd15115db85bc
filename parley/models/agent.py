"""Conversation agent catalog."""
from typing import Optional

from sqlalchemy import Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from parley.models.base import Base, TimestampMixin


class Agent(Base, TimestampMixin):
    """A practice scenario backed by one agent on the voice provider."""
    __tablename__ = "agents"
    __table_args__ = (
        Index("idx_agents_active_order", "is_active", "display_order"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    short_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    difficulty: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    language: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    # JSON array of strings
    tags: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    thumbnail_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Agent id on the provider side, handed to the client at session start
    eleven_agent_id: Mapped[str] = mapped_column(String(128), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
