from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from knowledge_bot.db.base import Base, UUIDPkMixin, TimestampMixin


class NotificationPreference(UUIDPkMixin, TimestampMixin, Base):
    """Per (company, bot, user) notification batching settings."""
    __tablename__ = "user_notification_preferences"
    __table_args__ = (
        UniqueConstraint("company_id", "bot_id", "user_id", name="uq_user_notification_preferences_scope"),
    )

    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    bot_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("bots.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notification_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    batch_size_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=5, server_default="5")
    notification_delay_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=30, server_default="30")
    email_format: Mapped[str] = mapped_column(Text, nullable=False, default="html", server_default="html")
    include_success_details: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )
    include_error_details: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
