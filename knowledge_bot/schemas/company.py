from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class CompanyUniqueResponse(BaseModel):
    """Result of a company name availability check."""
    isUnique: bool = Field(..., description="True when no company uses the name")
    message: str = Field(..., description="Human readable result")


class CompanySummary(BaseModel):
    """Minimal company reference used by search."""
    id: UUID = Field(..., description="Company ID")
    name: str = Field(..., description="Company name")

    class Config:
        from_attributes = True


class CompanySearchResponse(BaseModel):
    data: List[CompanySummary] = Field(default_factory=list)


class CompanyRead(BaseModel):
    """Company read model including subscription state."""
    id: UUID = Field(..., description="Company ID")
    name: str = Field(..., description="Company name")
    subscription_status: str = Field(..., description="trial | active | past_due | canceled")
    plan_level: str = Field(..., description="starter | professional | enterprise")
    storage_used_bytes: int = Field(..., description="Stored bytes")
    storage_limit_bytes: int = Field(..., description="Storage quota in bytes")
    current_period_start: Optional[datetime] = Field(None)
    current_period_end: Optional[datetime] = Field(None)
    created_at: datetime = Field(..., description="Created timestamp")
    updated_at: datetime = Field(..., description="Updated timestamp")

    class Config:
        from_attributes = True
