from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class BatchLookupRequest(BaseModel):
    userIds: List[UUID] = Field(..., description="Users to look up")
    companyId: UUID = Field(..., description="Company the users must belong to")
    includePreferences: bool = Field(True)


class NotificationPreferencesBody(BaseModel):
    channel: Optional[str] = None
    frequency: Optional[str] = None
    emailFormat: Optional[str] = None
    includeFailures: Optional[bool] = None
    includeSuccesses: Optional[bool] = None
    includeProcessing: Optional[bool] = None
    groupingWindow: Optional[int] = None


class EmailSettingsBody(BaseModel):
    ccEmails: Optional[List[str]] = None


class UserPreferencesBody(BaseModel):
    notifications: Optional[NotificationPreferencesBody] = None
    emailSettings: Optional[EmailSettingsBody] = None


class UpdateUserPreferencesRequest(BaseModel):
    """Only fields present in the payload are written."""
    companyId: UUID = Field(..., description="Company the user must belong to")
    preferences: UserPreferencesBody = Field(default_factory=UserPreferencesBody)
