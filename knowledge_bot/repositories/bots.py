from __future__ import annotations

from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import delete, select, update

from knowledge_bot.db.models import Bot
from .base import BaseRepository


class BotRepository(BaseRepository):
    """Repository for bots."""

    async def get_by_id(self, bot_id: UUID) -> Optional[Bot]:
        stmt = select(Bot).where(Bot.id == bot_id)
        return await self.scalar_one_or_none(stmt)

    async def list_for_company(self, company_id: UUID, limit: int = 100, offset: int = 0) -> List[Bot]:
        stmt = (
            select(Bot)
            .where(Bot.company_id == company_id)
            .order_by(Bot.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(await self.scalars(stmt))

    async def list_published(self, company_id: Optional[UUID] = None) -> List[Bot]:
        """Published bots ordered by name, optionally limited to one company."""
        stmt = select(Bot).where(Bot.published_at.is_not(None))
        if company_id is not None:
            stmt = stmt.where(Bot.company_id == company_id)
        return list(await self.scalars(stmt.order_by(Bot.name.asc())))

    async def create(self, **values: Any) -> Bot:
        bot = Bot(**values)
        await self.add(bot)
        await self.flush()
        return bot

    async def update(self, pk: UUID, **values: Any) -> Optional[Bot]:
        """Apply column updates to one bot; `pk` is the row id, distinct from the `bot_id` column."""
        if not values:
            return await self.get_by_id(pk)
        stmt = (
            update(Bot)
            .where(Bot.id == pk)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        await self.execute(stmt)
        await self.commit()
        return await self.get_by_id(pk)

    async def delete(self, bot_id: UUID) -> None:
        await self.execute(delete(Bot).where(Bot.id == bot_id))
        await self.commit()
