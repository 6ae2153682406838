from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.core.deps import COMPANY_ASSIGNMENT_REQUIRED, get_current_user, require_company_user
from knowledge_bot.db.session import get_async_session
from knowledge_bot.schemas.billing import (
    BillingPreferencesUpdate,
    CheckoutRequest,
    CustomerPortalRequest,
    SubscriptionChangeRequest,
)
from knowledge_bot.services.billing import BillingService

router = APIRouter(prefix="/billing", tags=["Billing"])

get_billing_user = require_company_user(COMPANY_ASSIGNMENT_REQUIRED)


# PUBLIC_INTERFACE
@router.post(
    "/webhook",
    response_model=Dict[str, Any],
    summary="Stripe webhook",
    description=(
        "Receive Stripe events. The Stripe-Signature header is verified when a webhook secret is configured; "
        "events for other business units are acknowledged without changes."
    ),
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    payload = await request.body()
    return await BillingService(session).process_webhook(payload, stripe_signature)


# PUBLIC_INTERFACE
@router.get(
    "/overview",
    response_model=Dict[str, Any],
    summary="Billing overview",
    description="Subscription status, usage, plan features and remaining trial days of the acting user's company.",
)
async def billing_overview(
    user=Depends(get_billing_user),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    return {"data": await BillingService(session).overview(user.company_id)}


# PUBLIC_INTERFACE
@router.get(
    "/notification-preferences",
    response_model=Dict[str, Any],
    summary="Billing notification preferences",
)
async def get_billing_preferences(
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    return {"data": await BillingService(session).get_notification_preferences(user)}


# PUBLIC_INTERFACE
@router.put(
    "/notification-preferences",
    response_model=Dict[str, Any],
    summary="Update billing notification preferences",
)
async def update_billing_preferences(
    payload: BillingPreferencesUpdate,
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    preferences = await BillingService(session).update_notification_preferences(
        user, payload.model_dump(exclude_none=True)
    )
    return {
        "data": {
            "message": "Billing notification preferences updated successfully",
            "preferences": preferences,
        }
    }


# PUBLIC_INTERFACE
@router.post(
    "/checkout/create",
    response_model=Dict[str, Any],
    summary="Create a Stripe Checkout session",
    description="Start a subscription checkout for a plan; creates the company's Stripe customer on first use.",
)
async def create_checkout_session(
    payload: CheckoutRequest,
    user=Depends(get_billing_user),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    result = await BillingService(session).create_checkout_session(user, payload.planLevel, payload.companyId)
    return {"data": result}


# PUBLIC_INTERFACE
@router.get(
    "/checkout/status/{session_id}",
    response_model=Dict[str, Any],
    summary="Checkout session status",
)
async def checkout_status(
    session_id: str,
    user=Depends(get_billing_user),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    return {"data": await BillingService(session).checkout_status(user, session_id)}


# PUBLIC_INTERFACE
@router.post(
    "/customer-portal",
    response_model=Dict[str, Any],
    summary="Open the Stripe customer portal",
)
async def customer_portal(
    payload: CustomerPortalRequest,
    user=Depends(get_billing_user),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    result = await BillingService(session).create_customer_portal(user, payload.companyId, payload.returnUrl)
    return {"data": result}


# PUBLIC_INTERFACE
@router.get(
    "/invoice/{invoice_id}/download",
    summary="Download an invoice PDF",
    response_class=Response,
)
async def download_invoice(
    invoice_id: str,
    user=Depends(get_billing_user),
    session: AsyncSession = Depends(get_async_session),
) -> Response:
    pdf = await BillingService(session).download_invoice(user, invoice_id)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="invoice-{invoice_id}.pdf"'},
    )


# PUBLIC_INTERFACE
@router.post(
    "/cancel",
    response_model=Dict[str, Any],
    summary="Cancel the subscription at period end",
)
async def cancel_subscription(
    payload: Optional[SubscriptionChangeRequest] = None,
    user=Depends(get_billing_user),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    company_id = payload.companyId if payload else None
    return {"data": await BillingService(session).cancel_subscription(user, company_id)}


# PUBLIC_INTERFACE
@router.post(
    "/reactivate",
    response_model=Dict[str, Any],
    summary="Reactivate a canceled subscription",
)
async def reactivate_subscription(
    payload: Optional[SubscriptionChangeRequest] = None,
    user=Depends(get_billing_user),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    company_id = payload.companyId if payload else None
    return {"data": await BillingService(session).reactivate_subscription(user, company_id)}
