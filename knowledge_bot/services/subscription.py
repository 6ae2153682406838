from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.core.cache import TTLCache
from knowledge_bot.db.models.company import DEFAULT_STORAGE_LIMIT_BYTES
from knowledge_bot.repositories.accounts import AccountRepository
from knowledge_bot.repositories.companies import CompanyRepository
from knowledge_bot.repositories.files import FileRepository
from knowledge_bot.services.base import BaseService, NotFoundError

logger = logging.getLogger(__name__)

GB = 1024 * 1024 * 1024

INACTIVE_STATUSES = ("canceled", "past_due")

PLAN_STORAGE_LIMITS: Dict[str, int] = {
    "starter": 2 * GB,
    "professional": 20 * GB,
    "enterprise": 100 * GB,
}

PLAN_FEATURES: Dict[str, Dict[str, Any]] = {
    "starter": {
        "aiChat": True,
        "fileUpload": True,
        "userManagement": True,
        "maxUsers": 5,
        "storageLimit": PLAN_STORAGE_LIMITS["starter"],
        "customDomains": False,
        "advancedAnalytics": False,
        "prioritySupport": False,
    },
    "professional": {
        "aiChat": True,
        "fileUpload": True,
        "userManagement": True,
        "maxUsers": 25,
        "storageLimit": PLAN_STORAGE_LIMITS["professional"],
        "customDomains": True,
        "advancedAnalytics": True,
        "prioritySupport": False,
    },
    "enterprise": {
        "aiChat": True,
        "fileUpload": True,
        "userManagement": True,
        "maxUsers": -1,
        "storageLimit": PLAN_STORAGE_LIMITS["enterprise"],
        "customDomains": True,
        "advancedAnalytics": True,
        "prioritySupport": True,
    },
}

PLAN_DISPLAY_FEATURES: Dict[str, List[str]] = {
    "starter": ["Basic Support", "File Upload", "AI Chat"],
    "professional": ["Priority Support", "Advanced Analytics", "Custom Domains", "File Upload", "AI Chat"],
    "enterprise": ["24/7 Support", "Advanced Analytics", "Custom Domains", "API Access", "File Upload", "AI Chat"],
}

UPGRADE_URLS: Dict[str, Optional[str]] = {
    "starter": "/billing/checkout?plan=professional",
    "professional": "/billing/checkout?plan=enterprise",
    "enterprise": None,
}

ANALYTICS_PERIODS = {"7d": 7, "30d": 30, "90d": 90}

VALIDATION_CACHE_TTL_SECONDS = 24 * 60 * 60

# Shared across requests; one process-local cache per worker
validation_cache: TTLCache[str, Dict[str, Any]] = TTLCache(ttl_seconds=VALIDATION_CACHE_TTL_SECONDS)


def plan_storage_limit(plan_level: Optional[str]) -> int:
    return PLAN_STORAGE_LIMITS.get(plan_level or "starter", PLAN_STORAGE_LIMITS["starter"])


def get_features(plan_level: Optional[str]) -> Dict[str, Any]:
    """Feature flags for a plan; unknown plans get the starter set."""
    return dict(PLAN_FEATURES.get(plan_level or "starter", PLAN_FEATURES["starter"]))


def get_plan_limits(plan_level: Optional[str]) -> Dict[str, Any]:
    plan = plan_level if plan_level in PLAN_STORAGE_LIMITS else "starter"
    return {"storageLimit": PLAN_STORAGE_LIMITS[plan], "features": list(PLAN_DISPLAY_FEATURES[plan])}


def get_upgrade_url(plan_level: Optional[str]) -> Optional[str]:
    """Next checkout URL up the plan ladder, or None on the top plan."""
    if plan_level not in UPGRADE_URLS:
        return UPGRADE_URLS["starter"]
    return UPGRADE_URLS[plan_level]


def subscription_snapshot(company) -> Dict[str, Any]:
    """The subscription summary attached to requests and returned by validations."""
    return {
        "status": company.subscription_status or "trial",
        "planLevel": company.plan_level or "starter",
        "storageUsed": company.storage_used_bytes or 0,
        "storageLimit": company.storage_limit_bytes or DEFAULT_STORAGE_LIMIT_BYTES,
        "companyId": str(company.id),
    }


def is_inactive(company) -> bool:
    return (company.subscription_status or "trial") in INACTIVE_STATUSES


def analyze_file_types(files: Iterable[Any]) -> List[Dict[str, Any]]:
    """Group files by extension; most common extension first."""
    counts: Dict[str, int] = {}
    sizes: Dict[str, int] = {}
    for f in files:
        ext = getattr(f, "ext", None) or "unknown"
        counts[ext] = counts.get(ext, 0) + 1
        sizes[ext] = sizes.get(ext, 0) + (getattr(f, "size", 0) or 0)
    result = [
        {"extension": ext, "count": counts[ext], "totalSize": sizes[ext], "avgSize": sizes[ext] / counts[ext]}
        for ext in counts
    ]
    return sorted(result, key=lambda r: r["count"], reverse=True)


class SubscriptionService(BaseService):
    """Subscription validation, storage accounting and usage analytics for companies."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.companies = CompanyRepository(session)
        self.accounts = AccountRepository(session)
        self.files = FileRepository(session)

    async def validate_access(self, user_id: UUID, company_id: UUID, bot_id: UUID) -> Dict[str, Any]:
        """Check that a user may use a bot of a company under the current subscription."""
        user = await self.accounts.get_user_by_id(user_id)
        if user is None:
            return {"isValid": False, "reason": "User not found"}
        if user.company_id != company_id:
            return {"isValid": False, "reason": "User does not belong to company"}
        if user.bot_id != bot_id:
            return {"isValid": False, "reason": "User does not have access to bot"}

        company = await self.companies.get_by_id(company_id)
        if company is None:
            return {"isValid": False, "reason": "Company not found"}

        subscription = subscription_snapshot(company)
        if is_inactive(company):
            return {"isValid": False, "reason": "Subscription inactive", "subscription": subscription}
        if subscription["storageUsed"] >= subscription["storageLimit"]:
            return {"isValid": False, "reason": "Storage limit exceeded", "subscription": subscription}

        return {
            "isValid": True,
            "subscription": subscription,
            "user": {"id": str(user.id), "companyId": str(company.id), "botId": str(bot_id)},
        }

    async def check_storage_limit(self, company_id: UUID, file_size: int) -> Dict[str, Any]:
        """Project usage after adding ``file_size`` bytes and compare with the company limit."""
        company = await self.companies.get_by_id(company_id)
        if company is None:
            return {"allowed": False, "reason": "Company not found"}
        return evaluate_storage(company, file_size)

    async def calculate_storage_usage(self, company_id: UUID) -> Dict[str, int]:
        """Recompute stored bytes from non-deleted files and persist the total on the company."""
        total_bytes, file_count = await self.files.usage_for_company(company_id)
        await self.companies.update(
            company_id,
            storage_used_bytes=total_bytes,
            storage_updated_at=datetime.now(tz=timezone.utc),
        )
        logger.debug("Calculated storage usage for company %s: %s bytes", company_id, total_bytes)
        return {"totalBytes": total_bytes, "fileCount": file_count}

    async def get_analytics(self, company_id: UUID, period: str = "30d") -> Dict[str, Any]:
        company = await self.companies.get_by_id(company_id)
        if company is None:
            raise NotFoundError("Company not found")

        days = ANALYTICS_PERIODS.get(period, 30)
        end = datetime.now(tz=timezone.utc)
        start = end - timedelta(days=days)
        recent = await self.files.list_created_since(company_id, start)
        uploaded = sum(f.size or 0 for f in recent)

        return {
            "period": period if period in ANALYTICS_PERIODS else "30d",
            "startDate": start.isoformat(),
            "endDate": end.isoformat(),
            "subscription": subscription_snapshot(company),
            "usage": {
                "filesUploaded": len(recent),
                "bytesUploaded": uploaded,
                "avgFileSize": uploaded / len(recent) if recent else 0,
            },
            "fileTypes": analyze_file_types(recent),
        }

    async def validate_daily(self, company_id: UUID, bot_id: UUID) -> Dict[str, Any]:
        """Cached subscription validation for a (company, bot) pair, valid for 24 hours."""
        cache_key = f"{company_id}-{bot_id}"
        hit = validation_cache.get_with_age(cache_key)
        if hit is not None:
            data, age = hit
            logger.debug("Subscription cache HIT for %s", cache_key)
            return {**data, "cached": True, "cacheAge": int(age * 1000)}

        logger.debug("Subscription cache MISS for %s", cache_key)
        company = await self.companies.get_by_id(company_id)
        if company is None:
            raise NotFoundError("Company not found")

        snapshot = subscription_snapshot(company)
        validation: Dict[str, Any] = {
            "companyId": str(company_id),
            "botId": str(bot_id),
            "isValid": True,
            "subscriptionStatus": snapshot["status"],
            "planLevel": snapshot["planLevel"],
            "storageUsed": snapshot["storageUsed"],
            "storageLimit": snapshot["storageLimit"],
            "features": {
                "aiChat": True,
                "fileUpload": True,
                "userManagement": True,
                "customDomains": snapshot["planLevel"] != "starter",
            },
            "timestamp": datetime.now(tz=timezone.utc).isoformat(),
        }
        if snapshot["storageUsed"] >= snapshot["storageLimit"]:
            validation.update(isValid=False, reason="Storage limit exceeded")
        if is_inactive(company):
            validation.update(isValid=False, reason="Subscription inactive")

        validation_cache.set(cache_key, validation)
        return {**validation, "cached": False}

    async def dashboard_usage(self, company_id: UUID) -> Dict[str, Any]:
        """Usage summary for the dashboard widget, recalculating storage first when possible."""
        try:
            await self.calculate_storage_usage(company_id)
        except Exception:
            logger.warning("Storage calculation failed, using stored value", exc_info=True)

        company = await self.companies.get_by_id(company_id)
        if company is None:
            raise NotFoundError("Company not found")

        limits = get_plan_limits(company.plan_level)
        storage_limit = company.storage_limit_bytes or limits["storageLimit"]
        used = company.storage_used_bytes or 0
        return {
            "companyId": str(company.id),
            "companyName": company.name,
            "subscriptionStatus": company.subscription_status or "trial",
            "planLevel": company.plan_level or "starter",
            "storageUsed": used,
            "storageLimit": storage_limit,
            "planLimits": limits,
            "nextBillingDate": company.current_period_end.isoformat() if company.current_period_end else None,
            "lastUpdated": datetime.now(tz=timezone.utc).isoformat(),
            "usagePercentages": {"storage": (used / storage_limit) * 100 if storage_limit else 0},
            "upgradeUrl": get_upgrade_url(company.plan_level),
        }


def evaluate_storage(company, incoming_bytes: int) -> Dict[str, Any]:
    """Pure quota arithmetic shared by the service and the upload guard."""
    current = company.storage_used_bytes or 0
    limit = company.storage_limit_bytes or DEFAULT_STORAGE_LIMIT_BYTES
    new_usage = current + incoming_bytes
    if new_usage > limit:
        return {
            "allowed": False,
            "reason": "Storage limit exceeded",
            "currentUsage": current,
            "limit": limit,
            "fileSize": incoming_bytes,
            "wouldExceedBy": new_usage - limit,
        }
    return {
        "allowed": True,
        "currentUsage": current,
        "limit": limit,
        "fileSize": incoming_bytes,
        "newUsage": new_usage,
        "remainingSpace": limit - new_usage,
    }
