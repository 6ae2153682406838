from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.core.settings import get_app_settings
from knowledge_bot.db.models import Company, User
from knowledge_bot.db.models.company import DEFAULT_STORAGE_LIMIT_BYTES
from knowledge_bot.repositories.accounts import AccountRepository
from knowledge_bot.repositories.companies import CompanyRepository
from knowledge_bot.services.base import (
    BaseService,
    ForbiddenError,
    NotFoundError,
    PaymentProviderError,
    ValidationError,
)
from knowledge_bot.services.payments import (
    call_stripe,
    checkout_error_message,
    fetch_invoice_pdf,
    plan_price_ids,
    stripe_field,
)
from knowledge_bot.services.subscription import (
    PLAN_STORAGE_LIMITS,
    SubscriptionService,
    get_features,
    get_plan_limits,
    plan_storage_limit,
)

logger = logging.getLogger(__name__)

SIGNATURE_TOLERANCE_SECONDS = 300
TRIAL_DAYS = 15

# Billing preference keys exposed to clients mapped onto user columns
BILLING_PREFERENCE_FIELDS = {
    "billingNotifications": "billing_notifications",
    "paymentFailureAlerts": "billing_notifications",
    "invoiceReminders": "billing_notifications",
    "subscriptionChanges": "subscription_reminders",
    "usageLimitWarnings": "storage_limit_warnings",
    "trialEndingAlerts": "trial_ending_alerts",
}


# PUBLIC_INTERFACE
def verify_stripe_signature(
    payload: bytes,
    header: Optional[str],
    secret: str,
    tolerance: int = SIGNATURE_TOLERANCE_SECONDS,
) -> None:
    """
    Check a `Stripe-Signature` header against the raw payload with the Stripe SDK.

    Raises:
        ValidationError: the header is missing or does not verify, or the payload is not JSON.
    """
    if not header:
        raise ValidationError("Missing Stripe-Signature header")
    try:
        stripe.Webhook.construct_event(payload, header, secret, tolerance=tolerance)
    except ValueError as exc:
        raise ValidationError("Invalid webhook payload") from exc
    except stripe.SignatureVerificationError as exc:
        logger.warning("Webhook signature verification failed: %s", exc)
        raise ValidationError("Invalid webhook signature") from exc


def plan_from_price(price_id: Optional[str]) -> str:
    price_id = price_id or ""
    if "enterprise" in price_id:
        return "enterprise"
    if "professional" in price_id:
        return "professional"
    return "starter"


def _from_epoch(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _metadata_company_id(obj: Dict[str, Any]) -> Optional[UUID]:
    raw = (obj.get("metadata") or {}).get("companyId")
    if not raw:
        return None
    try:
        return UUID(str(raw))
    except ValueError:
        logger.warning("Ignoring malformed companyId metadata %r", raw)
        return None


def trial_days_remaining(company, now: Optional[datetime] = None) -> Optional[int]:
    """Whole days left in a trial, rounded up and never negative; None outside a trial."""
    if (company.subscription_status or "trial") != "trial" or company.current_period_end is None:
        return None
    now = now or datetime.now(tz=timezone.utc)
    seconds = (company.current_period_end - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def billing_preferences_view(user: User) -> Dict[str, Any]:
    return {
        "billingNotifications": bool(user.billing_notifications),
        "paymentFailureAlerts": bool(user.billing_notifications),
        "subscriptionChanges": bool(user.subscription_reminders),
        "invoiceReminders": bool(user.billing_notifications),
        "usageLimitWarnings": bool(user.storage_limit_warnings),
        "trialEndingAlerts": bool(user.trial_ending_alerts),
        "email": user.email,
    }


class BillingService(BaseService):
    """Stripe webhook processing, billing overview and billing notification settings."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.companies = CompanyRepository(session)
        self.accounts = AccountRepository(session)
        self.settings = get_app_settings()

    async def process_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify and apply a Stripe event.

        Events whose object does not carry this service's business unit in
        its metadata are acknowledged without changes.
        """
        if self.settings.STRIPE_WEBHOOK_SECRET:
            verify_stripe_signature(payload, signature, self.settings.STRIPE_WEBHOOK_SECRET)
        try:
            event = json.loads(payload or b"{}")
        except ValueError as exc:
            raise ValidationError("Invalid webhook payload") from exc

        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}
        metadata = obj.get("metadata") or {}
        if metadata.get("businessUnit") != self.settings.BILLING_BUSINESS_UNIT:
            logger.info("Skipping webhook %s for business unit %s", event_type, metadata.get("businessUnit"))
            return {"processed": False, "reason": "Not for business unit"}

        if event_type in ("customer.subscription.created", "customer.subscription.updated"):
            await self._subscription_changed(obj)
        elif event_type == "customer.subscription.deleted":
            await self._subscription_deleted(obj)
        elif event_type == "invoice.payment_succeeded":
            await self._payment_succeeded(obj)
        elif event_type == "invoice.payment_failed":
            await self._payment_failed(obj)
        else:
            logger.info("Unhandled webhook event type %s", event_type)

        return {"processed": True, "type": event_type}

    async def _subscription_changed(self, subscription: Dict[str, Any]) -> Optional[Company]:
        company_id = _metadata_company_id(subscription)
        if not company_id:
            logger.warning("Subscription %s has no companyId metadata", subscription.get("id"))
            return None
        items = (subscription.get("items") or {}).get("data") or []
        price_id = ((items[0].get("price") or {}).get("id")) if items else None
        plan = plan_from_price(price_id)
        company = await self.companies.update(
            company_id,
            subscription_status=subscription.get("status"),
            plan_level=plan,
            stripe_subscription_id=subscription.get("id"),
            stripe_customer_id=subscription.get("customer"),
            current_period_start=_from_epoch(subscription.get("current_period_start")),
            current_period_end=_from_epoch(subscription.get("current_period_end")),
            storage_limit_bytes=plan_storage_limit(plan),
        )
        logger.info("Subscription %s for company %s is now %s", subscription.get("id"), company_id, plan)
        return company

    async def _subscription_deleted(self, subscription: Dict[str, Any]) -> Optional[Company]:
        company_id = _metadata_company_id(subscription)
        if not company_id:
            company = await self.companies.find_by_stripe_subscription(subscription.get("id") or "")
            company_id = company.id if company else None
        if not company_id:
            logger.warning("No company found for canceled subscription %s", subscription.get("id"))
            return None
        logger.info("Subscription %s canceled for company %s", subscription.get("id"), company_id)
        return await self.companies.update(
            company_id,
            subscription_status="canceled",
            plan_level="starter",
            storage_limit_bytes=plan_storage_limit("starter"),
        )

    async def _payment_succeeded(self, invoice: Dict[str, Any]) -> None:
        company = await self.companies.find_by_stripe_customer(invoice.get("customer") or "")
        if company is not None:
            logger.info("Payment succeeded for company %s (invoice %s)", company.id, invoice.get("id"))

    async def _payment_failed(self, invoice: Dict[str, Any]) -> Optional[Company]:
        company = await self.companies.find_by_stripe_customer(invoice.get("customer") or "")
        if company is None:
            logger.warning("Payment failed for unknown customer %s", invoice.get("customer"))
            return None
        logger.warning("Payment failed for company %s; marking past_due", company.id)
        return await self.companies.update(company.id, subscription_status="past_due")

    async def overview(self, company_id) -> Dict[str, Any]:
        """Subscription, usage and plan summary for the billing page."""
        try:
            await SubscriptionService(self.session).calculate_storage_usage(company_id)
        except Exception:
            logger.warning("Storage calculation failed for billing overview", exc_info=True)

        company = await self.companies.get_by_id(company_id)
        if company is None:
            raise NotFoundError("Company not found")

        if company.subscription_status == "trial" and company.current_period_end is None:
            start = datetime.now(tz=timezone.utc)
            company = await self.companies.update(
                company.id,
                current_period_start=start,
                current_period_end=start + timedelta(days=TRIAL_DAYS),
            )

        plan = company.plan_level or "starter"
        used = company.storage_used_bytes or 0
        limit = company.storage_limit_bytes or DEFAULT_STORAGE_LIMIT_BYTES
        return {
            "company": {
                "id": str(company.id),
                "name": company.name,
                "createdAt": company.created_at.isoformat() if company.created_at else None,
            },
            "subscription": {
                "status": company.subscription_status or "trial",
                "planLevel": plan,
                "currentPeriodStart": company.current_period_start.isoformat()
                if company.current_period_start
                else None,
                "currentPeriodEnd": company.current_period_end.isoformat() if company.current_period_end else None,
                "trialDaysRemaining": trial_days_remaining(company),
                "stripeCustomerId": company.stripe_customer_id,
            },
            "usage": {
                "storageUsed": used,
                "storageLimit": limit,
                "storagePercentage": round(used / limit * 100, 2) if limit else 0,
            },
            "planLimits": get_plan_limits(plan),
            "features": get_features(plan),
        }

    async def _company_for(self, user: User, company_id: Optional[UUID] = None) -> Company:
        """The acting user's company; a different `company_id` is refused."""
        if user.company_id is None:
            raise ValidationError("User must be assigned to a company")
        if company_id is not None and company_id != user.company_id:
            raise ForbiddenError("Access denied")
        company = await self.companies.get_by_id(user.company_id)
        if company is None:
            raise NotFoundError("Company not found")
        return company

    async def create_checkout_session(
        self, user: User, plan_level: str, company_id: Optional[UUID] = None
    ) -> Dict[str, Any]:
        """
        Start a Stripe Checkout subscription for the user's company.

        A Stripe customer is created and stored on the company the first time.
        Subscription metadata carries the company and business unit so the
        resulting webhooks are routed back here.
        """
        if plan_level not in PLAN_STORAGE_LIMITS:
            raise ValidationError("Invalid plan level")
        company = await self._company_for(user, company_id)
        price_id = plan_price_ids(self.settings).get(plan_level)
        if not price_id:
            raise ValidationError(
                "Plan configuration not found. Please ensure Stripe Price IDs are configured in environment variables."
            )
        metadata = {
            "companyId": str(company.id),
            "planLevel": plan_level,
            "userId": str(user.id),
            "businessUnit": self.settings.BILLING_BUSINESS_UNIT,
        }
        base_url = self.settings.FRONTEND_URL.rstrip("/")
        try:
            customer_id = company.stripe_customer_id
            if not customer_id:
                customer = await call_stripe(
                    self.settings,
                    stripe.Customer.create,
                    email=user.email,
                    name=company.name,
                    metadata={
                        "companyId": str(company.id),
                        "userId": str(user.id),
                        "businessUnit": self.settings.BILLING_BUSINESS_UNIT,
                    },
                )
                customer_id = customer.id
                await self.companies.update(company.id, stripe_customer_id=customer_id)
                logger.info("Created Stripe customer %s for company %s", customer_id, company.id)

            checkout = await call_stripe(
                self.settings,
                stripe.checkout.Session.create,
                customer=customer_id,
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                mode="subscription",
                success_url=f"{base_url}/billing?success=true&session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{base_url}/billing?canceled=true",
                metadata=metadata,
                subscription_data={"metadata": metadata},
                allow_promotion_codes=True,
                billing_address_collection="required",
                customer_update={"address": "auto", "name": "auto"},
            )
        except stripe.StripeError as exc:
            logger.warning("Checkout session creation failed for company %s: %s", company.id, exc)
            raise ValidationError(checkout_error_message(exc)) from exc
        return {"checkoutUrl": checkout.url, "sessionId": checkout.id}

    async def checkout_status(self, user: User, session_id: str) -> Dict[str, Any]:
        company = await self._company_for(user)
        try:
            checkout = await call_stripe(self.settings, stripe.checkout.Session.retrieve, session_id)
        except stripe.StripeError as exc:
            logger.warning("Checkout session %s lookup failed: %s", session_id, exc)
            raise PaymentProviderError("Failed to get checkout status") from exc
        if stripe_field(checkout, "customer") != company.stripe_customer_id:
            raise ForbiddenError("Access denied")
        return {
            "status": stripe_field(checkout, "payment_status"),
            "customerEmail": stripe_field(stripe_field(checkout, "customer_details"), "email"),
            "amountTotal": stripe_field(checkout, "amount_total"),
            "currency": stripe_field(checkout, "currency"),
            "planLevel": stripe_field(stripe_field(checkout, "metadata"), "planLevel"),
        }

    async def create_customer_portal(
        self, user: User, company_id: Optional[UUID] = None, return_url: Optional[str] = None
    ) -> Dict[str, Any]:
        company = await self._company_for(user, company_id)
        if not company.stripe_customer_id:
            raise ValidationError("No Stripe customer found. Please upgrade to a paid plan first.")
        try:
            portal = await call_stripe(
                self.settings,
                stripe.billing_portal.Session.create,
                customer=company.stripe_customer_id,
                return_url=return_url or f"{self.settings.FRONTEND_URL.rstrip('/')}/billing",
            )
        except stripe.StripeError as exc:
            logger.warning("Customer portal creation failed for company %s: %s", company.id, exc)
            raise PaymentProviderError("Failed to create customer portal session") from exc
        return {"portalUrl": portal.url}

    async def download_invoice(self, user: User, invoice_id: str) -> bytes:
        """PDF bytes of an invoice that belongs to the user's company."""
        company = await self._company_for(user)
        if not company.stripe_customer_id:
            raise ValidationError("No billing account found")
        try:
            invoice = await call_stripe(self.settings, stripe.Invoice.retrieve, invoice_id)
        except stripe.StripeError as exc:
            logger.warning("Invoice %s lookup failed: %s", invoice_id, exc)
            raise PaymentProviderError("Failed to download invoice") from exc
        if stripe_field(invoice, "customer") != company.stripe_customer_id:
            raise ForbiddenError("Access denied")
        pdf_url = stripe_field(invoice, "invoice_pdf")
        if not pdf_url:
            raise NotFoundError("Invoice PDF is not available")
        return await fetch_invoice_pdf(pdf_url)

    async def _modify_subscription(self, company: Company, **params: Any):
        try:
            return await call_stripe(
                self.settings, stripe.Subscription.modify, company.stripe_subscription_id, **params
            )
        except stripe.StripeError as exc:
            logger.warning("Updating subscription %s failed: %s", company.stripe_subscription_id, exc)
            raise PaymentProviderError("Failed to update subscription") from exc

    async def cancel_subscription(self, user: User, company_id: Optional[UUID] = None) -> Dict[str, Any]:
        """Cancel at the end of the current period and mark the company canceled."""
        company = await self._company_for(user, company_id)
        if not company.stripe_subscription_id:
            raise ValidationError("No active subscription found")
        subscription = await self._modify_subscription(
            company,
            cancel_at_period_end=True,
            metadata={"canceled_by": str(user.id), "canceled_at": datetime.now(tz=timezone.utc).isoformat()},
        )
        await self.companies.update(company.id, subscription_status="canceled")
        logger.info("User %s canceled subscription of company %s", user.id, company.id)
        period_end = _from_epoch(stripe_field(subscription, "current_period_end"))
        return {
            "message": "Subscription will be canceled at the end of the current billing period",
            "cancelAtPeriodEnd": bool(stripe_field(subscription, "cancel_at_period_end", False)),
            "currentPeriodEnd": period_end.isoformat() if period_end else None,
        }

    async def reactivate_subscription(self, user: User, company_id: Optional[UUID] = None) -> Dict[str, Any]:
        company = await self._company_for(user, company_id)
        if not company.stripe_subscription_id:
            raise ValidationError("No subscription found")
        if company.subscription_status != "canceled":
            raise ValidationError("Subscription is not canceled")
        subscription = await self._modify_subscription(
            company,
            cancel_at_period_end=False,
            metadata={
                "reactivated_by": str(user.id),
                "reactivated_at": datetime.now(tz=timezone.utc).isoformat(),
            },
        )
        await self.companies.update(company.id, subscription_status="active")
        logger.info("User %s reactivated subscription of company %s", user.id, company.id)
        period_end = _from_epoch(stripe_field(subscription, "current_period_end"))
        return {
            "message": "Subscription has been reactivated successfully",
            "subscriptionStatus": "active",
            "currentPeriodEnd": period_end.isoformat() if period_end else None,
        }

    async def get_notification_preferences(self, user: User) -> Dict[str, Any]:
        return billing_preferences_view(user)

    async def update_notification_preferences(self, user: User, data: Dict[str, Any]) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for key, column in BILLING_PREFERENCE_FIELDS.items():
            if data.get(key) is not None:
                values[column] = bool(data[key])
        updated = await self.accounts.update_user(user.id, **values)
        return billing_preferences_view(updated or user)
