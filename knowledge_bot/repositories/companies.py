from __future__ import annotations

from typing import Any, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select, update

from knowledge_bot.db.models import Company
from .base import BaseRepository


class CompanyRepository(BaseRepository):
    """Repository for companies and their subscription counters."""

    async def get_by_id(self, company_id: UUID) -> Optional[Company]:
        stmt = select(Company).where(Company.id == company_id)
        return await self.scalar_one_or_none(stmt)

    async def find_by_name_ci(self, name: str) -> Optional[Company]:
        """Case-insensitive, whitespace-trimmed name lookup."""
        normalized = name.strip().lower()
        stmt = select(Company).where(func.lower(func.trim(Company.name)) == normalized).limit(1)
        return await self.scalar_one_or_none(stmt)

    async def search(self, query: str, limit: int = 10) -> List[Company]:
        stmt = (
            select(Company)
            .where(Company.name.ilike(f"%{query.strip()}%"))
            .order_by(Company.name)
            .limit(limit)
        )
        return list(await self.scalars(stmt))

    async def find_by_stripe_customer(self, customer_id: str) -> Optional[Company]:
        stmt = select(Company).where(Company.stripe_customer_id == customer_id).limit(1)
        return await self.scalar_one_or_none(stmt)

    async def find_by_stripe_subscription(self, subscription_id: str) -> Optional[Company]:
        stmt = select(Company).where(Company.stripe_subscription_id == subscription_id).limit(1)
        return await self.scalar_one_or_none(stmt)

    async def list_filtered(
        self,
        *,
        status: Optional[str] = None,
        plan_level: Optional[str] = None,
        limit: int = 25,
        offset: int = 0,
    ) -> Tuple[List[Company], int]:
        """Return one page of companies and the total count for the same filters."""
        conditions = []
        if status:
            conditions.append(Company.subscription_status == status)
        if plan_level:
            conditions.append(Company.plan_level == plan_level)

        stmt = select(Company).where(*conditions).order_by(Company.created_at.desc()).offset(offset).limit(limit)
        count_stmt = select(func.count(Company.id)).where(*conditions)
        items = list(await self.scalars(stmt))
        total = int(await self.scalar(count_stmt))
        return items, total

    async def create(self, *, name: str, commit: bool = True, **values: Any) -> Company:
        """Insert a company; with `commit=False` it is only flushed into the caller's transaction."""
        company = Company(name=name.strip(), **values)
        if commit:
            return await self.save(company)
        await self.add(company)
        await self.flush()
        return company

    async def update(self, company_id: UUID, **values: Any) -> Optional[Company]:
        """Apply column updates; None values are skipped."""
        values = {k: v for k, v in values.items() if v is not None}
        if not values:
            return await self.get_by_id(company_id)
        stmt = (
            update(Company)
            .where(Company.id == company_id)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        await self.execute(stmt)
        await self.commit()
        return await self.get_by_id(company_id)
