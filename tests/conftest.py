from __future__ import annotations

import os
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any
from uuid import uuid4

import pytest

# Settings are read from the environment on every call; pin them before the app is imported.
os.environ["RUN_MIGRATIONS_ON_STARTUP"] = "false"
os.environ["AUTO_SEED"] = "false"
os.environ["ENABLE_DEBUG_ROUTES"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-app-secret"
os.environ["ADMIN_JWT_SECRET"] = "test-admin-secret"
os.environ["WIDGET_JWT_SECRET"] = "test-widget-secret"
os.environ["BILLING_BUSINESS_UNIT"] = "knowledge-bot"
os.environ.pop("STRIPE_WEBHOOK_SECRET", None)
os.environ.pop("STRIPE_SECRET_KEY", None)

from knowledge_bot.services.subscription import validation_cache  # noqa: E402

GB = 1024 * 1024 * 1024


def make_company(**overrides: Any) -> SimpleNamespace:
    now = datetime.now(tz=timezone.utc)
    values = dict(
        id=uuid4(),
        name="Acme",
        subscription_status="trial",
        plan_level="starter",
        storage_used_bytes=0,
        storage_limit_bytes=2 * GB,
        current_period_start=None,
        current_period_end=None,
        stripe_customer_id=None,
        stripe_subscription_id=None,
        default_notifications_enabled=True,
        created_at=now,
        updated_at=now,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def make_user(company: Any = None, **overrides: Any) -> SimpleNamespace:
    values = dict(
        id=uuid4(),
        email="jane@acme.test",
        role="authenticated",
        is_active=True,
        company=company,
        company_id=company.id if company is not None else None,
        bot_id=None,
        billing_notifications=True,
        subscription_reminders=True,
        storage_limit_warnings=False,
        trial_ending_alerts=True,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def make_bot(company_id: Any = None, **overrides: Any) -> SimpleNamespace:
    bot_uuid = overrides.pop("id", uuid4())
    values = dict(
        id=bot_uuid,
        name="Support Bot",
        company_id=company_id or uuid4(),
        processing_enabled=True,
        folder_path=f"/bot-{bot_uuid}",
        jwt_token=None,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def company() -> SimpleNamespace:
    return make_company()


@pytest.fixture
def user(company: SimpleNamespace) -> SimpleNamespace:
    return make_user(company)


@pytest.fixture(autouse=True)
def _clear_validation_cache():
    validation_cache.clear()
    yield
    validation_cache.clear()
