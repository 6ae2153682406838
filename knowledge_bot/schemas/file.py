from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .common import ListMeta


class FileRead(BaseModel):
    """Read model for an uploaded file."""
    id: UUID = Field(..., description="File ID")
    name: str = Field(..., description="Original file name")
    hash: str = Field(..., description="Storage hash")
    ext: Optional[str] = Field(None, description="Lower-case extension including the dot")
    mime: Optional[str] = Field(None, description="MIME type")
    size: int = Field(..., description="Size in bytes")
    url: Optional[str] = Field(None, description="Public URL")
    source_type: Optional[str] = Field(None)
    folder_path: Optional[str] = Field(None)
    user_id: Optional[UUID] = Field(None)
    bot_id: Optional[UUID] = Field(None)
    company_id: Optional[UUID] = Field(None)
    created_at: datetime = Field(..., description="Upload timestamp")

    class Config:
        from_attributes = True


class UploadNotification(BaseModel):
    type: str = Field(..., description="Notification kind")
    title: str = Field(...)
    message: str = Field(...)


class UploadResponse(BaseModel):
    """Uploaded files plus the user-facing confirmation."""
    data: List[FileRead]
    batchId: Optional[str] = Field(None, description="Ingestion batch shared by the uploaded files")
    message: str
    notification: UploadNotification


class FileListResponse(BaseModel):
    data: List[FileRead]
    meta: ListMeta


class FileResponse(BaseModel):
    data: FileRead
