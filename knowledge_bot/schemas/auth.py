from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class TokenResponse(BaseModel):
    """Bearer access token."""
    token_type: str = Field("bearer", description="Token type, typically 'bearer'")
    access_token: str = Field(..., description="JWT access token")


class RegisterRequest(BaseModel):
    """Registration details; either an existing company id or a new company name is required."""
    email: EmailStr = Field(..., description="User email")
    password: str = Field(..., min_length=6, description="User password")
    username: Optional[str] = Field(None, description="Display username, defaults to the email")
    firstname: Optional[str] = Field(None, description="First name for the admin-panel account")
    lastname: Optional[str] = Field(None, description="Last name for the admin-panel account")
    company_id: Optional[UUID] = Field(None, description="Existing company to join")
    company_name: Optional[str] = Field(None, description="Name of a new company to create")


class AdminLoginRequest(BaseModel):
    """Admin-panel credentials."""
    email: EmailStr = Field(..., description="Admin email")
    password: str = Field(..., description="Admin password")


class UserRead(BaseModel):
    """User read model."""
    id: UUID = Field(..., description="User ID")
    email: str = Field(..., description="User email")
    username: Optional[str] = Field(None)
    role: str = Field(..., description="Role name")
    is_active: bool = Field(..., description="Active flag")
    company_id: Optional[UUID] = Field(None, description="Company ID")
    bot_id: Optional[UUID] = Field(None, description="Assigned bot ID")
    instructions: Optional[str] = Field(None, description="Widget embed instructions")
    created_at: datetime = Field(..., description="Created timestamp")

    class Config:
        from_attributes = True


class AssignBotRequest(BaseModel):
    """Attach the current user to one of the company's bots."""
    bot_id: UUID = Field(..., description="Bot ID")
