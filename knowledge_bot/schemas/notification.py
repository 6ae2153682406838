from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .common import ListMeta


class NotificationSettings(BaseModel):
    """Batching settings shared by create, update and upsert payloads."""
    notification_enabled: Optional[bool] = Field(None)
    batch_size_threshold: Optional[int] = Field(None, ge=1)
    notification_delay_minutes: Optional[int] = Field(None, ge=0)
    email_format: Optional[Literal["html", "text"]] = Field(None)
    include_success_details: Optional[bool] = Field(None)
    include_error_details: Optional[bool] = Field(None)


class NotificationPreferenceWrite(NotificationSettings):
    """Preference payload. Any email sent by the client is ignored."""
    company: Optional[UUID] = Field(None, description="Company ID")
    bot: Optional[UUID] = Field(None, description="Bot ID")
    user: Optional[UUID] = Field(None, description="User ID")
    email: Optional[str] = Field(None, description="Ignored; derived from the user")


class NotificationPreferenceRead(BaseModel):
    """Stored or default notification preferences."""
    id: Optional[UUID] = Field(None, description="Preference ID; absent for defaults")
    company_id: Optional[UUID] = Field(None)
    bot_id: Optional[UUID] = Field(None)
    user_id: Optional[UUID] = Field(None)
    email: str = Field(..., description="Email of the owning user")
    notification_enabled: bool
    batch_size_threshold: int
    notification_delay_minutes: int
    email_format: str
    include_success_details: bool
    include_error_details: bool
    created_at: Optional[datetime] = Field(None)
    updated_at: Optional[datetime] = Field(None)

    class Config:
        from_attributes = True


class NotificationPreferenceResponse(BaseModel):
    data: NotificationPreferenceRead


class NotificationPreferenceListResponse(BaseModel):
    data: List[NotificationPreferenceRead]
    meta: ListMeta
