from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from knowledge_bot.db.base import Base, UUIDPkMixin, TimestampMixin

DEFAULT_STORAGE_LIMIT_BYTES = 2147483648


class Company(UUIDPkMixin, TimestampMixin, Base):
    """Tenant. Owns users, bots and files and carries the subscription state."""
    __tablename__ = "companies"

    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)

    subscription_status: Mapped[str] = mapped_column(
        Text, nullable=False, default="trial", server_default="trial"
    )
    plan_level: Mapped[str] = mapped_column(
        Text, nullable=False, default="starter", server_default="starter"
    )
    storage_used_bytes: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0, server_default="0"
    )
    storage_limit_bytes: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=DEFAULT_STORAGE_LIMIT_BYTES,
        server_default=text(str(DEFAULT_STORAGE_LIMIT_BYTES)),
    )
    storage_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    stripe_customer_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, index=True)
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    current_period_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    current_period_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Defaults applied to new notification preferences
    default_notifications_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )
    default_batch_size_threshold: Mapped[int] = mapped_column(
        Integer, nullable=False, default=5, server_default="5"
    )
    default_notification_delay_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=30, server_default="30"
    )
    notification_quota_daily: Mapped[int] = mapped_column(
        Integer, nullable=False, default=100, server_default="100"
    )
    notification_quota_monthly: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1000, server_default="1000"
    )
