from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest

from knowledge_bot.core.security import create_access_token, create_admin_token
from knowledge_bot.services.identity import IdentityService


@pytest.fixture
def service() -> IdentityService:
    svc = IdentityService(Mock())
    svc.accounts = AsyncMock()
    return svc


@pytest.mark.asyncio
async def test_no_token_resolves_nobody(service: IdentityService) -> None:
    assert await service.resolve_acting_user(None) is None
    service.accounts.get_user_by_id.assert_not_awaited()


@pytest.mark.asyncio
async def test_access_token_resolves_user(service: IdentityService) -> None:
    user = SimpleNamespace(id=uuid4(), is_active=True)
    service.accounts.get_user_by_id.return_value = user
    token = create_access_token(str(user.id), None)
    assert await service.resolve_acting_user(token) is user


@pytest.mark.asyncio
async def test_inactive_user_is_rejected(service: IdentityService) -> None:
    user = SimpleNamespace(id=uuid4(), is_active=False)
    service.accounts.get_user_by_id.return_value = user
    service.accounts.get_admin_by_id.return_value = None
    token = create_access_token(str(user.id), None)
    assert await service.resolve_acting_user(token) is None


@pytest.mark.asyncio
async def test_admin_token_maps_to_user_by_email(service: IdentityService) -> None:
    admin = SimpleNamespace(id=uuid4(), email="ops@acme.test", is_active=True)
    user = SimpleNamespace(id=uuid4(), email="ops@acme.test", is_active=True)
    service.accounts.get_admin_by_id.return_value = admin
    service.accounts.get_user_by_email.return_value = user

    resolved = await service.resolve_acting_user(create_admin_token(str(admin.id)))

    assert resolved is user
    service.accounts.get_user_by_email.assert_awaited_once_with("ops@acme.test")


@pytest.mark.asyncio
async def test_admin_without_matching_user(service: IdentityService) -> None:
    service.accounts.get_admin_by_id.return_value = SimpleNamespace(id=uuid4(), email="x@y.z", is_active=True)
    service.accounts.get_user_by_email.return_value = None
    assert await service.resolve_acting_user(create_admin_token(str(uuid4()))) is None


@pytest.mark.asyncio
async def test_garbage_token(service: IdentityService) -> None:
    assert await service.resolve_acting_user("not-a-jwt") is None
