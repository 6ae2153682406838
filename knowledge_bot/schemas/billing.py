from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class BillingPreferencesUpdate(BaseModel):
    """Billing notification flags; omitted flags keep their value."""
    billingNotifications: Optional[bool] = None
    paymentFailureAlerts: Optional[bool] = None
    subscriptionChanges: Optional[bool] = None
    invoiceReminders: Optional[bool] = None
    usageLimitWarnings: Optional[bool] = None
    trialEndingAlerts: Optional[bool] = None


class CheckoutRequest(BaseModel):
    planLevel: str = Field(..., description="starter | professional | enterprise")
    companyId: Optional[UUID] = Field(None, description="Must match the acting user's company when given")


class CustomerPortalRequest(BaseModel):
    companyId: Optional[UUID] = Field(None)
    returnUrl: Optional[str] = Field(None, description="Where Stripe sends the customer back to")


class SubscriptionChangeRequest(BaseModel):
    companyId: Optional[UUID] = Field(None)


class GiftSubscriptionRequest(BaseModel):
    companyId: UUID = Field(..., description="Target company")
    planLevel: str = Field(..., description="starter | professional | enterprise")
    months: int = Field(..., description="Duration in months")
    reason: Optional[str] = Field(None)


class ExtendTrialRequest(BaseModel):
    companyId: UUID = Field(..., description="Target company")
    additionalDays: int = Field(..., description="Days to add, 1 to 90")
    reason: Optional[str] = Field(None)


class OverrideStorageRequest(BaseModel):
    companyId: UUID = Field(..., description="Target company")
    newLimitGB: int = Field(..., description="New limit in GiB, 1 to 1000")
    reason: Optional[str] = Field(None, description="Required justification")


class CancelSubscriptionRequest(BaseModel):
    companyId: UUID = Field(..., description="Target company")
    reason: Optional[str] = Field(None, description="Required justification")
    immediate: bool = Field(False, description="End the current period now")
