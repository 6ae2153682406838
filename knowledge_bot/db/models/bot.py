from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from knowledge_bot.db.base import Base, UUIDPkMixin, TimestampMixin


class Bot(UUIDPkMixin, TimestampMixin, Base):
    """Chat-widget instance owned by a company."""
    __tablename__ = "bots"

    name: Mapped[str] = mapped_column(Text, nullable=False)
    bot_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )

    processing_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    auto_correction_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    max_retry_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3, server_default="3")
    retry_delay_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=5, server_default="5")

    jwt_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    folder_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    company: Mapped["Company"] = relationship("Company", lazy="selectin")  # noqa: F821
