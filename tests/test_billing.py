from __future__ import annotations

import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, Mock
from uuid import uuid4

import httpx
import pytest
import stripe

from knowledge_bot.core.settings import AppSettings
from knowledge_bot.services import billing as billing_module
from knowledge_bot.services.base import ForbiddenError, PaymentProviderError, ValidationError
from knowledge_bot.services.billing import (
    BillingService,
    plan_from_price,
    trial_days_remaining,
    verify_stripe_signature,
)
from knowledge_bot.services.payments import STRIPE_NOT_CONFIGURED, fetch_invoice_pdf
from knowledge_bot.services.subscription import PLAN_STORAGE_LIMITS

from .conftest import make_company, make_user

SECRET = "whsec_test"


def _sign(payload: bytes, timestamp: int, secret: str = SECRET) -> str:
    digest = hmac.new(secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _event(event_type: str, obj: dict) -> bytes:
    return json.dumps({"id": "evt_1", "type": event_type, "data": {"object": obj}}).encode()


@pytest.fixture
def service() -> BillingService:
    svc = BillingService(Mock())
    svc.companies = AsyncMock()
    svc.accounts = AsyncMock()
    svc.settings = AppSettings(STRIPE_WEBHOOK_SECRET=None, BILLING_BUSINESS_UNIT="knowledge-bot")
    return svc


def test_signature_accepts_valid_header() -> None:
    payload = b'{"id":"evt_1"}'
    verify_stripe_signature(payload, _sign(payload, int(time.time())), SECRET)


def test_signature_requires_header() -> None:
    with pytest.raises(ValidationError) as exc:
        verify_stripe_signature(b"{}", None, SECRET)
    assert exc.value.message == "Missing Stripe-Signature header"


@pytest.mark.parametrize("header", ["v1=abc", "t=123", "garbage"])
def test_signature_rejects_malformed_header(header) -> None:
    with pytest.raises(ValidationError) as exc:
        verify_stripe_signature(b"{}", header, SECRET)
    assert exc.value.message == "Invalid webhook signature"


def test_signature_rejects_tampered_payload() -> None:
    header = _sign(b'{"amount":1}', int(time.time()))
    with pytest.raises(ValidationError) as exc:
        verify_stripe_signature(b'{"amount":1000}', header, SECRET)
    assert exc.value.message == "Invalid webhook signature"


def test_signature_rejects_other_secret() -> None:
    payload = b"{}"
    with pytest.raises(ValidationError):
        verify_stripe_signature(payload, _sign(payload, int(time.time()), secret="whsec_other"), SECRET)


def test_signature_rejects_stale_timestamp() -> None:
    payload = b"{}"
    signed_at = int(time.time()) - 301
    with pytest.raises(ValidationError) as exc:
        verify_stripe_signature(payload, _sign(payload, signed_at), SECRET)
    assert exc.value.message == "Invalid webhook signature"


def test_signature_valid_but_payload_not_json() -> None:
    payload = b"not json"
    with pytest.raises(ValidationError) as exc:
        verify_stripe_signature(payload, _sign(payload, int(time.time())), SECRET)
    assert exc.value.message == "Invalid webhook payload"


@pytest.mark.parametrize(
    "price,plan",
    [
        ("price_enterprise_monthly", "enterprise"),
        ("price_professional_yearly", "professional"),
        ("price_basic", "starter"),
        (None, "starter"),
    ],
)
def test_plan_from_price(price, plan) -> None:
    assert plan_from_price(price) == plan


def test_trial_days_remaining_rounds_up() -> None:
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    company = make_company(current_period_end=now + timedelta(days=2, hours=3))
    assert trial_days_remaining(company, now=now) == 3


def test_trial_days_remaining_never_negative() -> None:
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    company = make_company(current_period_end=now - timedelta(days=4))
    assert trial_days_remaining(company, now=now) == 0


def test_trial_days_remaining_outside_trial() -> None:
    company = make_company(subscription_status="active", current_period_end=datetime.now(tz=timezone.utc))
    assert trial_days_remaining(company) is None


@pytest.mark.asyncio
async def test_webhook_for_other_business_unit_is_skipped(service: BillingService) -> None:
    payload = _event("customer.subscription.updated", {"id": "sub_1", "metadata": {"businessUnit": "other"}})
    result = await service.process_webhook(payload, None)
    assert result == {"processed": False, "reason": "Not for business unit"}
    service.companies.update.assert_not_awaited()


@pytest.mark.asyncio
async def test_webhook_signature_enforced_when_secret_configured(service: BillingService) -> None:
    service.settings = AppSettings(STRIPE_WEBHOOK_SECRET=SECRET, BILLING_BUSINESS_UNIT="knowledge-bot")
    with pytest.raises(ValidationError):
        await service.process_webhook(_event("invoice.payment_failed", {}), "t=1,v1=deadbeef")


@pytest.mark.asyncio
async def test_webhook_with_valid_signature_is_processed(service: BillingService) -> None:
    service.settings = AppSettings(STRIPE_WEBHOOK_SECRET=SECRET, BILLING_BUSINESS_UNIT="knowledge-bot")
    payload = _event("invoice.payment_succeeded", {"customer": "cus_1", "metadata": {"businessUnit": "knowledge-bot"}})
    result = await service.process_webhook(payload, _sign(payload, int(time.time())))
    assert result == {"processed": True, "type": "invoice.payment_succeeded"}


@pytest.mark.asyncio
async def test_subscription_updated_applies_plan(service: BillingService) -> None:
    company_id = uuid4()
    payload = _event(
        "customer.subscription.updated",
        {
            "id": "sub_1",
            "customer": "cus_1",
            "status": "active",
            "current_period_start": 1_700_000_000,
            "current_period_end": 1_702_592_000,
            "items": {"data": [{"price": {"id": "price_professional_monthly"}}]},
            "metadata": {"businessUnit": "knowledge-bot", "companyId": str(company_id)},
        },
    )

    result = await service.process_webhook(payload, None)

    assert result["processed"] is True
    args, kwargs = service.companies.update.await_args
    assert args == (company_id,)
    assert kwargs["subscription_status"] == "active"
    assert kwargs["plan_level"] == "professional"
    assert kwargs["storage_limit_bytes"] == PLAN_STORAGE_LIMITS["professional"]
    assert kwargs["stripe_customer_id"] == "cus_1"
    assert kwargs["current_period_start"] == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)


@pytest.mark.asyncio
async def test_subscription_deleted_falls_back_to_subscription_id(service: BillingService) -> None:
    company = make_company(subscription_status="active", plan_level="enterprise")
    service.companies.find_by_stripe_subscription.return_value = company
    payload = _event("customer.subscription.deleted", {"id": "sub_9", "metadata": {"businessUnit": "knowledge-bot"}})

    await service.process_webhook(payload, None)

    service.companies.find_by_stripe_subscription.assert_awaited_once_with("sub_9")
    kwargs = service.companies.update.await_args.kwargs
    assert kwargs["subscription_status"] == "canceled"
    assert kwargs["plan_level"] == "starter"
    assert kwargs["storage_limit_bytes"] == PLAN_STORAGE_LIMITS["starter"]


@pytest.mark.asyncio
async def test_payment_failed_marks_past_due(service: BillingService) -> None:
    company = make_company(subscription_status="active")
    service.companies.find_by_stripe_customer.return_value = company
    payload = _event("invoice.payment_failed", {"customer": "cus_1", "metadata": {"businessUnit": "knowledge-bot"}})

    await service.process_webhook(payload, None)

    service.companies.update.assert_awaited_once_with(company.id, subscription_status="past_due")


@pytest.mark.asyncio
async def test_invalid_json_payload(service: BillingService) -> None:
    with pytest.raises(ValidationError):
        await service.process_webhook(b"not json", None)


@pytest.mark.asyncio
async def test_update_notification_preferences_maps_keys(service: BillingService) -> None:
    user = make_user(None)
    service.accounts.update_user.return_value = make_user(None, trial_ending_alerts=False, storage_limit_warnings=True)

    view = await service.update_notification_preferences(
        user, {"trialEndingAlerts": False, "usageLimitWarnings": True, "unknown": True}
    )

    service.accounts.update_user.assert_awaited_once_with(
        user.id, trial_ending_alerts=False, storage_limit_warnings=True
    )
    assert view["trialEndingAlerts"] is False
    assert view["usageLimitWarnings"] is True


@pytest.fixture
def paid(service: BillingService, monkeypatch: pytest.MonkeyPatch) -> BillingService:
    monkeypatch.setattr(stripe, "api_key", None)
    service.settings = AppSettings(
        STRIPE_SECRET_KEY="sk_test_123",
        STRIPE_STARTER_PRICE_ID="price_starter",
        STRIPE_PROFESSIONAL_PRICE_ID="price_professional",
        STRIPE_ENTERPRISE_PRICE_ID="price_enterprise",
        BILLING_BUSINESS_UNIT="knowledge-bot",
        FRONTEND_URL="https://app.test/",
    )
    return service


@pytest.mark.asyncio
async def test_checkout_rejects_unknown_plan(paid: BillingService, user) -> None:
    with pytest.raises(ValidationError) as exc:
        await paid.create_checkout_session(user, "platinum")
    assert exc.value.message == "Invalid plan level"


@pytest.mark.asyncio
async def test_checkout_requires_price_configuration(service: BillingService, user, company) -> None:
    service.companies.get_by_id.return_value = company
    with pytest.raises(ValidationError) as exc:
        await service.create_checkout_session(user, "starter")
    assert exc.value.message.startswith("Plan configuration not found")


@pytest.mark.asyncio
async def test_checkout_requires_stripe_key(service: BillingService, user, company) -> None:
    service.settings = AppSettings(STRIPE_STARTER_PRICE_ID="price_starter")
    service.companies.get_by_id.return_value = company
    with pytest.raises(ValidationError) as exc:
        await service.create_checkout_session(user, "starter")
    assert exc.value.message == STRIPE_NOT_CONFIGURED


@pytest.mark.asyncio
async def test_checkout_for_other_company_is_forbidden(paid: BillingService, user) -> None:
    with pytest.raises(ForbiddenError):
        await paid.create_checkout_session(user, "starter", company_id=uuid4())
    paid.companies.get_by_id.assert_not_awaited()


@pytest.mark.asyncio
async def test_checkout_creates_customer_and_session(
    paid: BillingService, user, company, monkeypatch: pytest.MonkeyPatch
) -> None:
    create_customer = MagicMock(return_value=SimpleNamespace(id="cus_new"))
    create_session = MagicMock(return_value=SimpleNamespace(id="cs_1", url="https://checkout.test/cs_1"))
    monkeypatch.setattr(stripe.Customer, "create", create_customer)
    monkeypatch.setattr(stripe.checkout.Session, "create", create_session)
    paid.companies.get_by_id.return_value = company

    result = await paid.create_checkout_session(user, "professional", company_id=company.id)

    assert result == {"checkoutUrl": "https://checkout.test/cs_1", "sessionId": "cs_1"}
    assert stripe.api_key == "sk_test_123"
    assert create_customer.call_args.kwargs["email"] == user.email
    paid.companies.update.assert_awaited_once_with(company.id, stripe_customer_id="cus_new")

    kwargs = create_session.call_args.kwargs
    assert kwargs["customer"] == "cus_new"
    assert kwargs["mode"] == "subscription"
    assert kwargs["line_items"] == [{"price": "price_professional", "quantity": 1}]
    assert kwargs["success_url"].startswith("https://app.test/billing?success=true")
    assert kwargs["subscription_data"]["metadata"]["businessUnit"] == "knowledge-bot"
    assert kwargs["subscription_data"]["metadata"]["companyId"] == str(company.id)


@pytest.mark.asyncio
async def test_checkout_reuses_customer(paid: BillingService, user, monkeypatch: pytest.MonkeyPatch) -> None:
    create_customer = MagicMock()
    create_session = MagicMock(return_value=SimpleNamespace(id="cs_2", url="https://checkout.test/cs_2"))
    monkeypatch.setattr(stripe.Customer, "create", create_customer)
    monkeypatch.setattr(stripe.checkout.Session, "create", create_session)
    paid.companies.get_by_id.return_value = make_company(id=user.company_id, stripe_customer_id="cus_1")

    await paid.create_checkout_session(user, "starter")

    create_customer.assert_not_called()
    paid.companies.update.assert_not_awaited()
    assert create_session.call_args.kwargs["customer"] == "cus_1"


@pytest.mark.asyncio
async def test_checkout_maps_stripe_errors(paid: BillingService, user, monkeypatch: pytest.MonkeyPatch) -> None:
    error = stripe.InvalidRequestError("No such price: 'price_starter'", "line_items[0][price]")
    monkeypatch.setattr(stripe.checkout.Session, "create", MagicMock(side_effect=error))
    paid.companies.get_by_id.return_value = make_company(id=user.company_id, stripe_customer_id="cus_1")

    with pytest.raises(ValidationError) as exc:
        await paid.create_checkout_session(user, "starter")
    assert exc.value.message.startswith("Payment plan configuration error")


@pytest.mark.asyncio
async def test_checkout_status_hides_other_customers(
    paid: BillingService, user, monkeypatch: pytest.MonkeyPatch
) -> None:
    checkout = SimpleNamespace(customer="cus_other", payment_status="paid")
    monkeypatch.setattr(stripe.checkout.Session, "retrieve", MagicMock(return_value=checkout))
    paid.companies.get_by_id.return_value = make_company(id=user.company_id, stripe_customer_id="cus_1")

    with pytest.raises(ForbiddenError):
        await paid.checkout_status(user, "cs_1")


@pytest.mark.asyncio
async def test_checkout_status_summary(paid: BillingService, user, monkeypatch: pytest.MonkeyPatch) -> None:
    checkout = SimpleNamespace(
        customer="cus_1",
        payment_status="paid",
        customer_details=SimpleNamespace(email="billing@acme.test"),
        amount_total=14900,
        currency="usd",
        metadata=SimpleNamespace(planLevel="professional"),
    )
    retrieve = MagicMock(return_value=checkout)
    monkeypatch.setattr(stripe.checkout.Session, "retrieve", retrieve)
    paid.companies.get_by_id.return_value = make_company(id=user.company_id, stripe_customer_id="cus_1")

    result = await paid.checkout_status(user, "cs_1")

    retrieve.assert_called_once_with("cs_1")
    assert result == {
        "status": "paid",
        "customerEmail": "billing@acme.test",
        "amountTotal": 14900,
        "currency": "usd",
        "planLevel": "professional",
    }


@pytest.mark.asyncio
async def test_customer_portal_needs_customer(paid: BillingService, user, company) -> None:
    paid.companies.get_by_id.return_value = company
    with pytest.raises(ValidationError) as exc:
        await paid.create_customer_portal(user)
    assert exc.value.message == "No Stripe customer found. Please upgrade to a paid plan first."


@pytest.mark.asyncio
async def test_customer_portal_default_return_url(
    paid: BillingService, user, monkeypatch: pytest.MonkeyPatch
) -> None:
    create = MagicMock(return_value=SimpleNamespace(url="https://portal.test/p"))
    monkeypatch.setattr(stripe.billing_portal.Session, "create", create)
    paid.companies.get_by_id.return_value = make_company(id=user.company_id, stripe_customer_id="cus_1")

    assert await paid.create_customer_portal(user) == {"portalUrl": "https://portal.test/p"}
    create.assert_called_once_with(customer="cus_1", return_url="https://app.test/billing")


@pytest.mark.asyncio
async def test_customer_portal_provider_failure(
    paid: BillingService, user, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(
        stripe.billing_portal.Session, "create", MagicMock(side_effect=stripe.APIConnectionError("timeout"))
    )
    paid.companies.get_by_id.return_value = make_company(id=user.company_id, stripe_customer_id="cus_1")
    with pytest.raises(PaymentProviderError):
        await paid.create_customer_portal(user)


@pytest.mark.asyncio
async def test_download_invoice_checks_owner(paid: BillingService, user, monkeypatch: pytest.MonkeyPatch) -> None:
    invoice = SimpleNamespace(customer="cus_other", invoice_pdf="https://pay.test/in_1.pdf")
    monkeypatch.setattr(stripe.Invoice, "retrieve", MagicMock(return_value=invoice))
    fetch = AsyncMock()
    monkeypatch.setattr(billing_module, "fetch_invoice_pdf", fetch)
    paid.companies.get_by_id.return_value = make_company(id=user.company_id, stripe_customer_id="cus_1")

    with pytest.raises(ForbiddenError):
        await paid.download_invoice(user, "in_1")
    fetch.assert_not_awaited()


@pytest.mark.asyncio
async def test_download_invoice_returns_pdf(paid: BillingService, user, monkeypatch: pytest.MonkeyPatch) -> None:
    invoice = SimpleNamespace(customer="cus_1", invoice_pdf="https://pay.test/in_1.pdf")
    monkeypatch.setattr(stripe.Invoice, "retrieve", MagicMock(return_value=invoice))
    fetch = AsyncMock(return_value=b"%PDF-1.4")
    monkeypatch.setattr(billing_module, "fetch_invoice_pdf", fetch)
    paid.companies.get_by_id.return_value = make_company(id=user.company_id, stripe_customer_id="cus_1")

    assert await paid.download_invoice(user, "in_1") == b"%PDF-1.4"
    fetch.assert_awaited_once_with("https://pay.test/in_1.pdf")


@pytest.mark.asyncio
async def test_download_invoice_without_billing_account(paid: BillingService, user, company) -> None:
    paid.companies.get_by_id.return_value = company
    with pytest.raises(ValidationError) as exc:
        await paid.download_invoice(user, "in_1")
    assert exc.value.message == "No billing account found"


@pytest.mark.asyncio
async def test_fetch_invoice_pdf() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"%PDF-1.7"))
    assert await fetch_invoice_pdf("https://pay.test/in_1.pdf", transport=transport) == b"%PDF-1.7"


@pytest.mark.asyncio
async def test_fetch_invoice_pdf_failure() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(404))
    with pytest.raises(PaymentProviderError) as exc:
        await fetch_invoice_pdf("https://pay.test/missing.pdf", transport=transport)
    assert exc.value.message == "Failed to download invoice"


@pytest.mark.asyncio
async def test_cancel_requires_subscription(paid: BillingService, user, company) -> None:
    paid.companies.get_by_id.return_value = company
    with pytest.raises(ValidationError) as exc:
        await paid.cancel_subscription(user)
    assert exc.value.message == "No active subscription found"


@pytest.mark.asyncio
async def test_cancel_at_period_end(paid: BillingService, user, monkeypatch: pytest.MonkeyPatch) -> None:
    modify = MagicMock(return_value=SimpleNamespace(cancel_at_period_end=True, current_period_end=1_702_592_000))
    monkeypatch.setattr(stripe.Subscription, "modify", modify)
    company = make_company(id=user.company_id, subscription_status="active", stripe_subscription_id="sub_1")
    paid.companies.get_by_id.return_value = company

    result = await paid.cancel_subscription(user, company.id)

    args, kwargs = modify.call_args
    assert args == ("sub_1",)
    assert kwargs["cancel_at_period_end"] is True
    assert kwargs["metadata"]["canceled_by"] == str(user.id)
    paid.companies.update.assert_awaited_once_with(company.id, subscription_status="canceled")
    assert result["cancelAtPeriodEnd"] is True
    assert result["currentPeriodEnd"] == datetime.fromtimestamp(1_702_592_000, tz=timezone.utc).isoformat()


@pytest.mark.asyncio
async def test_reactivate_requires_canceled(paid: BillingService, user) -> None:
    paid.companies.get_by_id.return_value = make_company(
        id=user.company_id, subscription_status="active", stripe_subscription_id="sub_1"
    )
    with pytest.raises(ValidationError) as exc:
        await paid.reactivate_subscription(user)
    assert exc.value.message == "Subscription is not canceled"


@pytest.mark.asyncio
async def test_reactivate_canceled_subscription(paid: BillingService, user, monkeypatch: pytest.MonkeyPatch) -> None:
    modify = MagicMock(return_value=SimpleNamespace(cancel_at_period_end=False))
    monkeypatch.setattr(stripe.Subscription, "modify", modify)
    company = make_company(id=user.company_id, subscription_status="canceled", stripe_subscription_id="sub_1")
    paid.companies.get_by_id.return_value = company

    result = await paid.reactivate_subscription(user)

    assert modify.call_args.kwargs["cancel_at_period_end"] is False
    paid.companies.update.assert_awaited_once_with(company.id, subscription_status="active")
    assert result["subscriptionStatus"] == "active"
    assert result["currentPeriodEnd"] is None
