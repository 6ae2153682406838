from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .common import ListMeta


class BotRead(BaseModel):
    """Read model for a bot, including its widget token and embed instructions."""
    id: UUID = Field(..., description="Bot ID")
    name: str = Field(..., description="Bot name")
    bot_id: Optional[str] = Field(None, description="External bot identifier")
    description: Optional[str] = Field(None)
    company_id: UUID = Field(..., description="Owning company ID")
    processing_enabled: bool = Field(..., description="Whether uploads are processed")
    auto_correction_enabled: bool = Field(...)
    max_retry_attempts: int = Field(...)
    retry_delay_minutes: int = Field(...)
    jwt_token: Optional[str] = Field(None, description="Widget token")
    instructions: Optional[str] = Field(None, description="Widget embed snippet")
    folder_path: Optional[str] = Field(None, description="Upload folder of the bot")
    published_at: Optional[datetime] = Field(None)
    created_at: datetime = Field(..., description="Created timestamp")
    updated_at: datetime = Field(..., description="Updated timestamp")

    class Config:
        from_attributes = True


class BotCreate(BaseModel):
    """Create bot payload; company is taken from the acting user."""
    name: str = Field(..., min_length=1, description="Bot name")
    bot_id: Optional[str] = Field(None, description="External bot identifier")
    description: Optional[str] = Field(None)
    processing_enabled: Optional[bool] = Field(None)
    auto_correction_enabled: Optional[bool] = Field(None)
    max_retry_attempts: Optional[int] = Field(None, ge=0)
    retry_delay_minutes: Optional[int] = Field(None, ge=0)


class BotUpdate(BaseModel):
    """Update bot payload; a company sent by the client is ignored."""
    name: Optional[str] = Field(None, min_length=1)
    bot_id: Optional[str] = Field(None)
    description: Optional[str] = Field(None)
    processing_enabled: Optional[bool] = Field(None)
    auto_correction_enabled: Optional[bool] = Field(None)
    max_retry_attempts: Optional[int] = Field(None, ge=0)
    retry_delay_minutes: Optional[int] = Field(None, ge=0)
    company: Optional[UUID] = Field(None, description="Ignored; bots cannot change company")


class BotResponse(BaseModel):
    data: BotRead


class BotListResponse(BaseModel):
    data: List[BotRead]
    meta: ListMeta


class BotDetails(BotRead):
    """Bot with aggregate file statistics."""
    file_count: int = Field(0, description="Non-deleted files of the bot")
    total_file_size: int = Field(0, description="Total bytes of those files")


class BotDetailsResponse(BaseModel):
    data: BotDetails


class BotDeleteResponse(BaseModel):
    message: str
    data: BotRead


class UploadTarget(BaseModel):
    """Published bot offered as an upload destination."""
    id: str
    name: str
    bot_id: Optional[str] = None
    folderPath: str


class UploadTargetsResponse(BaseModel):
    data: List[UploadTarget]
    meta: ListMeta
