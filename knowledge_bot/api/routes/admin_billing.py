from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.core.deps import require_roles
from knowledge_bot.db.session import get_async_session
from knowledge_bot.schemas.billing import (
    CancelSubscriptionRequest,
    ExtendTrialRequest,
    GiftSubscriptionRequest,
    OverrideStorageRequest,
)
from knowledge_bot.services.admin_billing import AdminBillingService

router = APIRouter(prefix="/admin/billing", tags=["Admin Billing"])

require_billing_admin = require_roles("admin", "super_admin")


# PUBLIC_INTERFACE
@router.post(
    "/gift-subscription",
    response_model=Dict[str, Any],
    summary="Gift a subscription",
    description="Activate a plan for a company for a number of months.",
)
async def gift_subscription(
    payload: GiftSubscriptionRequest,
    admin=Depends(require_billing_admin),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    result = await AdminBillingService(session).gift_subscription(
        admin.id, payload.companyId, payload.planLevel, payload.months, payload.reason
    )
    return {"data": result}


# PUBLIC_INTERFACE
@router.post(
    "/extend-trial",
    response_model=Dict[str, Any],
    summary="Extend a trial",
    description="Push the current period end out by 1 to 90 days.",
)
async def extend_trial(
    payload: ExtendTrialRequest,
    admin=Depends(require_billing_admin),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    result = await AdminBillingService(session).extend_trial(
        admin.id, payload.companyId, payload.additionalDays, payload.reason
    )
    return {"data": result}


# PUBLIC_INTERFACE
@router.post(
    "/override-storage",
    response_model=Dict[str, Any],
    summary="Override storage limit",
    description="Set a storage limit between 1 and 1000 GB. A reason is required.",
)
async def override_storage(
    payload: OverrideStorageRequest,
    admin=Depends(require_billing_admin),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    result = await AdminBillingService(session).override_storage(
        admin.id, payload.companyId, payload.newLimitGB, payload.reason
    )
    return {"data": result}


# PUBLIC_INTERFACE
@router.post(
    "/cancel-subscription",
    response_model=Dict[str, Any],
    summary="Cancel a subscription",
    description="Mark a subscription canceled; immediate cancellation also ends the current period now.",
)
async def cancel_subscription(
    payload: CancelSubscriptionRequest,
    admin=Depends(require_billing_admin),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    result = await AdminBillingService(session).cancel_subscription(
        admin.id, payload.companyId, payload.reason, payload.immediate
    )
    return {"data": result}


# PUBLIC_INTERFACE
@router.get(
    "/subscriptions",
    response_model=Dict[str, Any],
    summary="List subscriptions",
    description="Companies with their subscription state, newest first, filterable by status and plan.",
    dependencies=[Depends(require_billing_admin)],
)
async def list_subscriptions(
    page: int = Query(1, ge=1),
    pageSize: int = Query(25, ge=1, le=100),
    status: Optional[str] = Query(None, description="Filter by subscription status"),
    planLevel: Optional[str] = Query(None, description="Filter by plan"),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    return await AdminBillingService(session).list_subscriptions(page, pageSize, status, planLevel)


# PUBLIC_INTERFACE
@router.get(
    "/logs",
    response_model=Dict[str, Any],
    summary="Admin action log",
    dependencies=[Depends(require_billing_admin)],
)
async def list_logs(
    page: int = Query(1, ge=1),
    pageSize: int = Query(50, ge=1, le=200),
    companyId: Optional[UUID] = Query(None, description="Filter by target company"),
    action: Optional[str] = Query(None, description="Filter by action"),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    return await AdminBillingService(session).list_logs(page, pageSize, companyId, action)
