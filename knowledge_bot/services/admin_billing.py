from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.core.settings import get_app_settings
from knowledge_bot.db.models import Company
from knowledge_bot.db.models.company import DEFAULT_STORAGE_LIMIT_BYTES
from knowledge_bot.repositories.companies import CompanyRepository
from knowledge_bot.repositories.notifications import AdminActionLogRepository
from knowledge_bot.services.base import BaseService, NotFoundError, PaymentProviderError, ValidationError
from knowledge_bot.services.payments import call_stripe, stripe_configured
from knowledge_bot.services.subscription import GB, PLAN_STORAGE_LIMITS

logger = logging.getLogger(__name__)

MIN_TRIAL_EXTENSION_DAYS = 1
MAX_TRIAL_EXTENSION_DAYS = 90
MIN_STORAGE_OVERRIDE_GB = 1
MAX_STORAGE_OVERRIDE_GB = 1000
DEFAULT_TRIAL_DAYS = 15


def add_months(value: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the end of the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    next_month = datetime(year + month // 12, month % 12 + 1, 1, tzinfo=value.tzinfo)
    last_day = (next_month - timedelta(days=1)).day
    return value.replace(year=year, month=month, day=min(value.day, last_day))


def company_overview(company: Company) -> Dict[str, Any]:
    return {
        "id": str(company.id),
        "name": company.name,
        "subscriptionStatus": company.subscription_status or "trial",
        "planLevel": company.plan_level or "starter",
        "storageUsed": company.storage_used_bytes or 0,
        "storageLimit": company.storage_limit_bytes or DEFAULT_STORAGE_LIMIT_BYTES,
        "currentPeriodStart": company.current_period_start.isoformat() if company.current_period_start else None,
        "currentPeriodEnd": company.current_period_end.isoformat() if company.current_period_end else None,
        "stripeCustomerId": company.stripe_customer_id,
        "createdAt": company.created_at.isoformat() if company.created_at else None,
        "updatedAt": company.updated_at.isoformat() if company.updated_at else None,
    }


class AdminBillingService(BaseService):
    """
    Manual subscription management for platform administrators.

    Every mutation writes an AdminActionLog entry in the same transaction as
    the company change.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.companies = CompanyRepository(session)
        self.logs = AdminActionLogRepository(session)
        self.settings = get_app_settings()

    async def _company(self, company_id: UUID) -> Company:
        company = await self.companies.get_by_id(company_id)
        if company is None:
            raise NotFoundError("Company not found")
        return company

    async def _apply(self, admin_id: UUID, company: Company, action: str, details: Dict[str, Any], **values: Any):
        await self.logs.add_log(
            admin_user_id=admin_id, action=action, target_company_id=company.id, details=details
        )
        # update() commits, which also persists the log entry
        updated = await self.companies.update(company.id, **values)
        logger.info("Admin %s performed %s on company %s", admin_id, action, company.id)
        return updated

    async def _create_gift_customer(self, admin_id: UUID, company: Company, at: datetime) -> Optional[str]:
        """Stripe customer for a gifted company; None when Stripe is not configured."""
        if not stripe_configured(self.settings):
            logger.info("Stripe not configured; gifting to company %s without a customer", company.id)
            return None
        try:
            customer = await call_stripe(
                self.settings,
                stripe.Customer.create,
                name=company.name,
                metadata={
                    "companyId": str(company.id),
                    "giftedBy": str(admin_id),
                    "giftedAt": at.isoformat(),
                    "businessUnit": self.settings.BILLING_BUSINESS_UNIT,
                },
            )
        except stripe.StripeError as exc:
            logger.warning("Stripe customer creation failed for company %s: %s", company.id, exc)
            raise PaymentProviderError("Failed to create Stripe customer") from exc
        return customer.id

    async def _stop_stripe_subscription(self, company: Company, immediate: bool) -> None:
        if not company.stripe_subscription_id or not stripe_configured(self.settings):
            return
        try:
            if immediate:
                await call_stripe(self.settings, stripe.Subscription.cancel, company.stripe_subscription_id)
            else:
                await call_stripe(
                    self.settings,
                    stripe.Subscription.modify,
                    company.stripe_subscription_id,
                    cancel_at_period_end=True,
                )
        except stripe.StripeError as exc:
            # the local cancellation still applies
            logger.warning("Stripe cancellation of %s failed: %s", company.stripe_subscription_id, exc)

    async def gift_subscription(
        self,
        admin_id: UUID,
        company_id: UUID,
        plan_level: str,
        months: int,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not company_id or not plan_level or not months:
            raise ValidationError("Company ID, plan level, and duration are required")
        if plan_level not in PLAN_STORAGE_LIMITS:
            raise ValidationError("Invalid plan level")
        if months < 1:
            raise ValidationError("Duration must be at least one month")
        company = await self._company(company_id)

        start = datetime.now(tz=timezone.utc)
        end = add_months(start, months)
        customer_id = company.stripe_customer_id or await self._create_gift_customer(admin_id, company, start)
        updated = await self._apply(
            admin_id,
            company,
            "gift_subscription",
            {
                "planLevel": plan_level,
                "durationMonths": months,
                "reason": reason or "Admin gifted subscription",
                "previousStatus": company.subscription_status,
                "previousPlan": company.plan_level,
            },
            subscription_status="active",
            plan_level=plan_level,
            storage_limit_bytes=PLAN_STORAGE_LIMITS[plan_level],
            stripe_customer_id=customer_id,
            current_period_start=start,
            current_period_end=end,
        )
        return {
            "message": "Subscription gifted successfully",
            "company": company_overview(updated),
            "giftDetails": {
                "planLevel": plan_level,
                "durationMonths": months,
                "periodStart": start.isoformat(),
                "periodEnd": end.isoformat(),
            },
        }

    async def extend_trial(
        self, admin_id: UUID, company_id: UUID, additional_days: int, reason: Optional[str] = None
    ) -> Dict[str, Any]:
        if not company_id or not additional_days:
            raise ValidationError("Company ID and additional days are required")
        if not MIN_TRIAL_EXTENSION_DAYS <= additional_days <= MAX_TRIAL_EXTENSION_DAYS:
            raise ValidationError("Additional days must be between 1 and 90")
        company = await self._company(company_id)

        base = company.current_period_end or datetime.now(tz=timezone.utc) + timedelta(days=DEFAULT_TRIAL_DAYS)
        new_end = base + timedelta(days=additional_days)
        updated = await self._apply(
            admin_id,
            company,
            "extend_trial",
            {
                "additionalDays": additional_days,
                "reason": reason or "Admin extended trial",
                "previousTrialEnd": base.isoformat(),
                "newTrialEnd": new_end.isoformat(),
            },
            current_period_end=new_end,
        )
        return {
            "message": "Trial extended successfully",
            "company": company_overview(updated),
            "extensionDetails": {"additionalDays": additional_days, "newTrialEnd": new_end.isoformat()},
        }

    async def override_storage(
        self, admin_id: UUID, company_id: UUID, new_limit_gb: int, reason: Optional[str]
    ) -> Dict[str, Any]:
        if not company_id or not new_limit_gb or not (reason or "").strip():
            raise ValidationError("Company ID, new limit, and reason are required")
        if not MIN_STORAGE_OVERRIDE_GB <= new_limit_gb <= MAX_STORAGE_OVERRIDE_GB:
            raise ValidationError("Storage limit must be between 1GB and 1000GB")
        company = await self._company(company_id)

        new_limit = int(new_limit_gb * GB)
        previous_limit = company.storage_limit_bytes or 0
        updated = await self._apply(
            admin_id,
            company,
            "override_storage_limit",
            {
                "newLimitGB": new_limit_gb,
                "previousLimitGB": round(previous_limit / GB),
                "reason": reason,
                "newLimitBytes": new_limit,
                "previousLimitBytes": previous_limit,
            },
            storage_limit_bytes=new_limit,
        )
        return {
            "message": "Storage limit overridden successfully",
            "company": company_overview(updated),
            "overrideDetails": {
                "newLimitGB": new_limit_gb,
                "previousLimitGB": round(previous_limit / GB),
                "reason": reason,
            },
        }

    async def cancel_subscription(
        self, admin_id: UUID, company_id: UUID, reason: Optional[str], immediate: bool = False
    ) -> Dict[str, Any]:
        if not company_id or not (reason or "").strip():
            raise ValidationError("Company ID and reason are required")
        company = await self._company(company_id)
        await self._stop_stripe_subscription(company, immediate)

        values: Dict[str, Any] = {"subscription_status": "canceled"}
        if immediate:
            values["current_period_end"] = datetime.now(tz=timezone.utc)
        updated = await self._apply(
            admin_id,
            company,
            "cancel_subscription",
            {
                "reason": reason,
                "immediate": immediate,
                "previousStatus": company.subscription_status,
                "previousPlan": company.plan_level,
            },
            **values,
        )
        return {"message": "Subscription canceled successfully", "company": company_overview(updated)}

    async def list_subscriptions(
        self,
        page: int = 1,
        page_size: int = 25,
        status: Optional[str] = None,
        plan_level: Optional[str] = None,
    ) -> Dict[str, Any]:
        page, page_size = max(page, 1), max(page_size, 1)
        companies, total = await self.companies.list_filtered(
            status=status, plan_level=plan_level, limit=page_size, offset=(page - 1) * page_size
        )
        return {
            "data": [company_overview(c) for c in companies],
            "meta": {
                "pagination": {
                    "page": page,
                    "pageSize": page_size,
                    "pageCount": -(-total // page_size),
                    "total": total,
                }
            },
        }

    async def list_logs(
        self,
        page: int = 1,
        page_size: int = 50,
        company_id: Optional[UUID] = None,
        action: Optional[str] = None,
    ) -> Dict[str, Any]:
        page, page_size = max(page, 1), max(page_size, 1)
        entries, total = await self.logs.list_logs(
            company_id=company_id, action=action, limit=page_size, offset=(page - 1) * page_size
        )
        return {
            "data": [
                {
                    "id": str(e.id),
                    "adminUserId": str(e.admin_user_id) if e.admin_user_id else None,
                    "action": e.action,
                    "targetCompanyId": str(e.target_company_id) if e.target_company_id else None,
                    "details": e.details,
                    "timestamp": e.created_at.isoformat() if e.created_at else None,
                }
                for e in entries
            ],
            "meta": {
                "pagination": {
                    "page": page,
                    "pageSize": page_size,
                    "pageCount": -(-total // page_size),
                    "total": total,
                }
            },
        }
