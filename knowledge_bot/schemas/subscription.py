from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ValidateDailyRequest(BaseModel):
    companyId: UUID = Field(..., description="Company ID")
    botId: UUID = Field(..., description="Bot ID")


class ValidateBatchRequest(BaseModel):
    validations: List[ValidateDailyRequest] = Field(..., min_length=1, description="Pairs to validate")


class ClearCacheRequest(BaseModel):
    companyId: Optional[UUID] = Field(None, description="Clear a single entry together with botId")
    botId: Optional[UUID] = Field(None)


class StorageCheckRequest(BaseModel):
    fileSize: int = Field(..., ge=0, description="Incoming bytes")
