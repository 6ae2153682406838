from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import Mock, create_autospec
from uuid import uuid4

import pytest

from knowledge_bot.repositories.accounts import AccountRepository
from knowledge_bot.repositories.bots import BotRepository
from knowledge_bot.repositories.companies import CompanyRepository
from knowledge_bot.services import accounts as accounts_module
from knowledge_bot.services.accounts import AccountService
from knowledge_bot.services.base import ForbiddenError, ValidationError

from .conftest import make_bot, make_company, make_user


@pytest.fixture
def service(monkeypatch: pytest.MonkeyPatch) -> AccountService:
    monkeypatch.setattr(accounts_module, "get_password_hash", lambda password: f"hashed:{password}")
    svc = AccountService(Mock())
    svc.accounts = create_autospec(AccountRepository, instance=True)
    svc.bots = create_autospec(BotRepository, instance=True)
    svc.company_service.companies = create_autospec(CompanyRepository, instance=True)
    return svc


@pytest.mark.asyncio
async def test_register_commits_company_and_accounts_together(service: AccountService) -> None:
    company = make_company(name="Globex")
    user = make_user(company, email="ann@globex.test")
    service.accounts.get_user_by_email.return_value = None
    service.accounts.get_admin_by_email.return_value = None
    service.company_service.companies.find_by_name_ci.return_value = None
    service.company_service.companies.create.return_value = company
    service.accounts.create_user.return_value = user
    service.accounts.get_user_by_id.return_value = user

    result = await service.register(email="ann@globex.test", password="pw", company_name=" Globex ")

    assert result is user
    service.company_service.companies.create.assert_awaited_once_with(name="Globex", commit=False)
    assert service.accounts.create_user.await_args.kwargs["commit"] is False
    assert service.accounts.create_user.await_args.kwargs["company_id"] == company.id
    assert service.accounts.create_admin.await_args.kwargs["commit"] is False
    service.accounts.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_register_failure_leaves_company_uncommitted(service: AccountService) -> None:
    service.accounts.get_user_by_email.return_value = None
    service.company_service.companies.find_by_name_ci.return_value = None
    service.company_service.companies.create.return_value = make_company(name="Globex")
    service.accounts.create_user.side_effect = RuntimeError("duplicate key value")

    with pytest.raises(RuntimeError):
        await service.register(email="ann@globex.test", password="pw", company_name="Globex")

    service.accounts.commit.assert_not_awaited()
    service.company_service.companies.save.assert_not_awaited()


@pytest.mark.asyncio
async def test_register_rejects_existing_email(service: AccountService) -> None:
    service.accounts.get_user_by_email.return_value = make_user()
    with pytest.raises(ValidationError) as exc:
        await service.register(email="jane@acme.test", password="pw", company_name="Acme")
    assert exc.value.message == "User with this email already exists"
    service.company_service.companies.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_register_requires_company_information(service: AccountService) -> None:
    service.accounts.get_user_by_email.return_value = None
    with pytest.raises(ValidationError):
        await service.register(email="ann@globex.test", password="pw")


@pytest.mark.asyncio
async def test_assign_bot_rejects_foreign_bot(service: AccountService) -> None:
    user = make_user(make_company())
    service.bots.get_by_id.return_value = make_bot()
    with pytest.raises(ForbiddenError):
        await service.assign_bot(user, uuid4())
    service.accounts.update_user.assert_not_awaited()


@pytest.mark.asyncio
async def test_assign_bot_writes_widget_instructions(service: AccountService) -> None:
    company = make_company()
    user = make_user(company)
    bot = make_bot(company.id)
    service.bots.get_by_id.return_value = bot
    service.accounts.update_user.return_value = SimpleNamespace(id=user.id, bot_id=bot.id)

    await service.assign_bot(user, bot.id)

    args, kwargs = service.accounts.update_user.await_args
    assert args == (user.id,)
    assert kwargs["bot_id"] == bot.id
    assert "<script" in kwargs["instructions"]
