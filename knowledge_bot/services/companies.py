from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.db.models import Company
from knowledge_bot.repositories.companies import CompanyRepository
from knowledge_bot.services.base import BaseService, ValidationError

logger = logging.getLogger(__name__)

NAME_AVAILABLE = "Company name is available"
NAME_TAKEN = "A company with this name already exists"


class CompanyService(BaseService):
    """Company name validation, registration lookups and company provisioning."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.companies = CompanyRepository(session)

    async def validate_unique(self, name: Optional[str]) -> Dict[str, Any]:
        """Case-insensitive, trimmed uniqueness check used by the registration form."""
        trimmed = (name or "").strip()
        if not trimmed:
            raise ValidationError("Company name is required")
        existing = await self.companies.find_by_name_ci(trimmed)
        is_unique = existing is None
        logger.info("Company name %r unique=%s", trimmed, is_unique)
        return {"isUnique": is_unique, "message": NAME_AVAILABLE if is_unique else NAME_TAKEN}

    async def search(self, query: Optional[str], limit: int = 10) -> List[Company]:
        q = (query or "").strip()
        if len(q) < 2:
            return []
        return await self.companies.search(q, limit=limit)

    async def get_or_create(self, name: str) -> Company:
        """Join an existing company with the same name or create a trial company."""
        trimmed = name.strip()
        if not trimmed:
            raise ValidationError("Company name is required")
        existing = await self.companies.find_by_name_ci(trimmed)
        if existing is not None:
            return existing
        company = await self.companies.create(name=trimmed)
        logger.info("Created company %s (%s)", company.id, company.name)
        return company

    async def create_unique(self, name: str, commit: bool = True) -> Company:
        """Create a trial company; the trimmed name must not match an existing one case-insensitively."""
        trimmed = (name or "").strip()
        if not trimmed:
            raise ValidationError("Company name is required")
        if await self.companies.find_by_name_ci(trimmed) is not None:
            raise ValidationError(NAME_TAKEN)
        company = await self.companies.create(name=trimmed, commit=commit)
        logger.info("Created company %s (%s)", company.id, company.name)
        return company
