from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, Mock
from uuid import uuid4

import pytest
import stripe

from knowledge_bot.core.settings import AppSettings
from knowledge_bot.services.admin_billing import AdminBillingService, add_months
from knowledge_bot.services.base import NotFoundError, PaymentProviderError, ValidationError
from knowledge_bot.services.subscription import GB, PLAN_STORAGE_LIMITS

from .conftest import make_company


@pytest.fixture
def service() -> AdminBillingService:
    svc = AdminBillingService(Mock())
    svc.companies = AsyncMock()
    svc.logs = AsyncMock()
    return svc


def test_add_months_clamps_day() -> None:
    start = datetime(2024, 1, 31, 12, 0, tzinfo=timezone.utc)
    assert add_months(start, 1) == datetime(2024, 2, 29, 12, 0, tzinfo=timezone.utc)
    assert add_months(start, 12) == datetime(2025, 1, 31, 12, 0, tzinfo=timezone.utc)
    assert add_months(datetime(2024, 11, 15), 3) == datetime(2025, 2, 15)


@pytest.mark.parametrize(
    "plan,months,message",
    [
        ("", 1, "Company ID, plan level, and duration are required"),
        ("gold", 1, "Invalid plan level"),
        ("professional", -2, "Duration must be at least one month"),
    ],
)
@pytest.mark.asyncio
async def test_gift_validation(service: AdminBillingService, plan, months, message) -> None:
    with pytest.raises(ValidationError) as exc:
        await service.gift_subscription(uuid4(), uuid4(), plan, months)
    assert exc.value.message == message
    service.logs.add_log.assert_not_awaited()


@pytest.mark.asyncio
async def test_gift_unknown_company(service: AdminBillingService) -> None:
    service.companies.get_by_id.return_value = None
    with pytest.raises(NotFoundError):
        await service.gift_subscription(uuid4(), uuid4(), "professional", 3)


@pytest.mark.asyncio
async def test_gift_activates_plan_and_logs(service: AdminBillingService) -> None:
    admin_id = uuid4()
    company = make_company()
    service.companies.get_by_id.return_value = company
    service.companies.update.return_value = make_company(
        id=company.id, subscription_status="active", plan_level="enterprise"
    )

    result = await service.gift_subscription(admin_id, company.id, "enterprise", 2, "Partner")

    log_kwargs = service.logs.add_log.await_args.kwargs
    assert log_kwargs["action"] == "gift_subscription"
    assert log_kwargs["admin_user_id"] == admin_id
    assert log_kwargs["details"]["reason"] == "Partner"
    assert log_kwargs["details"]["previousStatus"] == "trial"

    update_kwargs = service.companies.update.await_args.kwargs
    assert update_kwargs["subscription_status"] == "active"
    assert update_kwargs["storage_limit_bytes"] == PLAN_STORAGE_LIMITS["enterprise"]
    assert result["company"]["planLevel"] == "enterprise"
    assert result["giftDetails"]["durationMonths"] == 2


@pytest.mark.parametrize("days", [0, 91])
@pytest.mark.asyncio
async def test_extend_trial_bounds(service: AdminBillingService, days: int) -> None:
    with pytest.raises(ValidationError):
        await service.extend_trial(uuid4(), uuid4(), days)


@pytest.mark.asyncio
async def test_extend_trial_from_current_end(service: AdminBillingService) -> None:
    end = datetime(2024, 6, 1, tzinfo=timezone.utc)
    company = make_company(current_period_end=end)
    service.companies.get_by_id.return_value = company
    service.companies.update.return_value = company

    result = await service.extend_trial(uuid4(), company.id, 10)

    assert service.companies.update.await_args.kwargs["current_period_end"] == end + timedelta(days=10)
    assert result["extensionDetails"]["additionalDays"] == 10


@pytest.mark.parametrize("gb", [0.5, 1001])
@pytest.mark.asyncio
async def test_override_storage_bounds(service: AdminBillingService, gb) -> None:
    with pytest.raises(ValidationError) as exc:
        await service.override_storage(uuid4(), uuid4(), gb, "Needs more room")
    assert exc.value.message == "Storage limit must be between 1GB and 1000GB"


@pytest.mark.asyncio
async def test_override_storage_requires_reason(service: AdminBillingService) -> None:
    with pytest.raises(ValidationError) as exc:
        await service.override_storage(uuid4(), uuid4(), 50, "  ")
    assert exc.value.message == "Company ID, new limit, and reason are required"


@pytest.mark.asyncio
async def test_override_storage_sets_bytes(service: AdminBillingService) -> None:
    company = make_company()
    service.companies.get_by_id.return_value = company
    service.companies.update.return_value = company

    await service.override_storage(uuid4(), company.id, 50, "Large archive")

    assert service.companies.update.await_args.kwargs == {"storage_limit_bytes": 50 * GB}
    assert service.logs.add_log.await_args.kwargs["action"] == "override_storage_limit"


@pytest.mark.asyncio
async def test_cancel_immediately_ends_period(service: AdminBillingService) -> None:
    company = make_company(subscription_status="active")
    service.companies.get_by_id.return_value = company
    service.companies.update.return_value = company

    await service.cancel_subscription(uuid4(), company.id, "Requested", immediate=True)

    kwargs = service.companies.update.await_args.kwargs
    assert kwargs["subscription_status"] == "canceled"
    assert kwargs["current_period_end"] <= datetime.now(tz=timezone.utc)


@pytest.mark.asyncio
async def test_list_subscriptions_pagination(service: AdminBillingService) -> None:
    service.companies.list_filtered.return_value = ([make_company(), make_company()], 52)
    result = await service.list_subscriptions(page=2, page_size=25, status="active")
    assert result["meta"]["pagination"] == {"page": 2, "pageSize": 25, "pageCount": 3, "total": 52}
    service.companies.list_filtered.assert_awaited_once_with(status="active", plan_level=None, limit=25, offset=25)


@pytest.fixture
def stripe_enabled(service: AdminBillingService) -> AdminBillingService:
    service.settings = AppSettings(STRIPE_SECRET_KEY="sk_test_123", BILLING_BUSINESS_UNIT="knowledge-bot")
    return service


@pytest.mark.asyncio
async def test_gift_without_stripe_keeps_customer_empty(service: AdminBillingService) -> None:
    company = make_company()
    service.companies.get_by_id.return_value = company
    service.companies.update.return_value = company

    await service.gift_subscription(uuid4(), company.id, "starter", 1)

    assert service.companies.update.await_args.kwargs["stripe_customer_id"] is None


@pytest.mark.asyncio
async def test_gift_creates_stripe_customer(
    stripe_enabled: AdminBillingService, monkeypatch: pytest.MonkeyPatch
) -> None:
    create = MagicMock(return_value=SimpleNamespace(id="cus_gift"))
    monkeypatch.setattr(stripe.Customer, "create", create)
    admin_id = uuid4()
    company = make_company(name="Initech")
    stripe_enabled.companies.get_by_id.return_value = company
    stripe_enabled.companies.update.return_value = company

    await stripe_enabled.gift_subscription(admin_id, company.id, "professional", 6)

    kwargs = create.call_args.kwargs
    assert kwargs["name"] == "Initech"
    assert kwargs["metadata"]["companyId"] == str(company.id)
    assert kwargs["metadata"]["giftedBy"] == str(admin_id)
    assert stripe_enabled.companies.update.await_args.kwargs["stripe_customer_id"] == "cus_gift"


@pytest.mark.asyncio
async def test_gift_reuses_existing_customer(
    stripe_enabled: AdminBillingService, monkeypatch: pytest.MonkeyPatch
) -> None:
    create = MagicMock()
    monkeypatch.setattr(stripe.Customer, "create", create)
    company = make_company(stripe_customer_id="cus_existing")
    stripe_enabled.companies.get_by_id.return_value = company
    stripe_enabled.companies.update.return_value = company

    await stripe_enabled.gift_subscription(uuid4(), company.id, "starter", 1)

    create.assert_not_called()
    assert stripe_enabled.companies.update.await_args.kwargs["stripe_customer_id"] == "cus_existing"


@pytest.mark.asyncio
async def test_gift_stops_when_customer_creation_fails(
    stripe_enabled: AdminBillingService, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(stripe.Customer, "create", MagicMock(side_effect=stripe.APIConnectionError("down")))
    company = make_company()
    stripe_enabled.companies.get_by_id.return_value = company

    with pytest.raises(PaymentProviderError):
        await stripe_enabled.gift_subscription(uuid4(), company.id, "starter", 1)

    stripe_enabled.logs.add_log.assert_not_awaited()
    stripe_enabled.companies.update.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancel_at_period_end_updates_stripe(
    stripe_enabled: AdminBillingService, monkeypatch: pytest.MonkeyPatch
) -> None:
    modify = MagicMock()
    monkeypatch.setattr(stripe.Subscription, "modify", modify)
    company = make_company(subscription_status="active", stripe_subscription_id="sub_1")
    stripe_enabled.companies.get_by_id.return_value = company
    stripe_enabled.companies.update.return_value = company

    await stripe_enabled.cancel_subscription(uuid4(), company.id, "Requested")

    modify.assert_called_once_with("sub_1", cancel_at_period_end=True)


@pytest.mark.asyncio
async def test_cancel_survives_stripe_failure(
    stripe_enabled: AdminBillingService, monkeypatch: pytest.MonkeyPatch
) -> None:
    cancel = MagicMock(side_effect=stripe.InvalidRequestError("No such subscription", "id"))
    monkeypatch.setattr(stripe.Subscription, "cancel", cancel)
    company = make_company(subscription_status="active", stripe_subscription_id="sub_gone")
    stripe_enabled.companies.get_by_id.return_value = company
    stripe_enabled.companies.update.return_value = company

    await stripe_enabled.cancel_subscription(uuid4(), company.id, "Fraud", immediate=True)

    cancel.assert_called_once_with("sub_gone")
    assert stripe_enabled.companies.update.await_args.kwargs["subscription_status"] == "canceled"
