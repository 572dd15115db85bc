"""Runtime settings store."""

from sqlalchemy import BigInteger, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from parley.models.base import Base


class Setting(Base):
    """Key-value store for admin-editable settings.

    Values are JSON text; parley.services.settings_service validates them
    against a typed model per key.
    """

    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
