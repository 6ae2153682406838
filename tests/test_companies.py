from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest

from knowledge_bot.services.base import ValidationError
from knowledge_bot.services.companies import NAME_AVAILABLE, NAME_TAKEN, CompanyService


@pytest.fixture
def service() -> CompanyService:
    svc = CompanyService(Mock())
    svc.companies = AsyncMock()
    return svc


@pytest.mark.parametrize("name", [None, "", "   "])
@pytest.mark.asyncio
async def test_validate_unique_requires_name(service: CompanyService, name) -> None:
    with pytest.raises(ValidationError) as exc:
        await service.validate_unique(name)
    assert exc.value.message == "Company name is required"


@pytest.mark.asyncio
async def test_validate_unique_trims_before_lookup(service: CompanyService) -> None:
    service.companies.find_by_name_ci.return_value = None
    assert await service.validate_unique("  Acme  ") == {"isUnique": True, "message": NAME_AVAILABLE}
    service.companies.find_by_name_ci.assert_awaited_once_with("Acme")


@pytest.mark.asyncio
async def test_validate_unique_reports_taken(service: CompanyService) -> None:
    service.companies.find_by_name_ci.return_value = SimpleNamespace(id=uuid4(), name="acme")
    assert await service.validate_unique("ACME") == {"isUnique": False, "message": NAME_TAKEN}


@pytest.mark.asyncio
async def test_create_unique_rejects_existing_name(service: CompanyService) -> None:
    service.companies.find_by_name_ci.return_value = SimpleNamespace(id=uuid4(), name="Acme")
    with pytest.raises(ValidationError) as exc:
        await service.create_unique("acme ")
    assert exc.value.message == NAME_TAKEN
    service.companies.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_get_or_create_joins_existing(service: CompanyService) -> None:
    existing = SimpleNamespace(id=uuid4(), name="Acme")
    service.companies.find_by_name_ci.return_value = existing
    assert await service.get_or_create("acme") is existing


@pytest.mark.asyncio
async def test_search_needs_two_characters(service: CompanyService) -> None:
    assert await service.search("a") == []
    service.companies.search.assert_not_awaited()
