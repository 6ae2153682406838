from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from knowledge_bot.db.base import Base, UUIDPkMixin, TimestampMixin


class User(UUIDPkMixin, TimestampMixin, Base):
    """Application user. Belongs to one company and optionally to one bot."""
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    username: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    hashed_password: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    role: Mapped[str] = mapped_column(Text, nullable=False, default="authenticated", server_default="authenticated")

    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("companies.id", ondelete="SET NULL"), nullable=True, index=True
    )
    bot_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("bots.id", ondelete="SET NULL"), nullable=True, index=True
    )
    instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Ingestion notifications
    notification_channel: Mapped[str] = mapped_column(Text, nullable=False, default="email", server_default="email")
    notification_frequency: Mapped[str] = mapped_column(
        Text, nullable=False, default="immediate", server_default="immediate"
    )
    email_format: Mapped[str] = mapped_column(Text, nullable=False, default="html", server_default="html")
    include_failures: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    include_successes: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    include_processing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    cc_email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notification_grouping_window: Mapped[int] = mapped_column(
        Integer, nullable=False, default=60, server_default="60"
    )

    # Billing notifications
    billing_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    subscription_reminders: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    storage_limit_warnings: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    trial_ending_alerts: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")

    company: Mapped[Optional["Company"]] = relationship("Company", lazy="selectin")  # noqa: F821


class AdminUser(UUIDPkMixin, TimestampMixin, Base):
    """Administrative panel account. Linked to application users by email."""
    __tablename__ = "admin_users"

    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    firstname: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    lastname: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    hashed_password: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
