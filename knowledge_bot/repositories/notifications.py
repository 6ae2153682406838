from __future__ import annotations

from typing import Any, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import delete, func, select, update

from knowledge_bot.db.models import AdminActionLog, NotificationPreference
from .base import BaseRepository


class NotificationPreferenceRepository(BaseRepository):
    """Repository for per (company, bot, user) notification preferences."""

    async def get_by_id(self, preference_id: UUID) -> Optional[NotificationPreference]:
        stmt = select(NotificationPreference).where(NotificationPreference.id == preference_id)
        return await self.scalar_one_or_none(stmt)

    async def find_scope(self, company_id: UUID, bot_id: UUID, user_id: UUID) -> Optional[NotificationPreference]:
        stmt = select(NotificationPreference).where(
            NotificationPreference.company_id == company_id,
            NotificationPreference.bot_id == bot_id,
            NotificationPreference.user_id == user_id,
        )
        return await self.scalar_one_or_none(stmt)

    async def list_for_company(self, company_id: UUID, limit: int = 100, offset: int = 0) -> List[NotificationPreference]:
        stmt = (
            select(NotificationPreference)
            .where(NotificationPreference.company_id == company_id)
            .order_by(NotificationPreference.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(await self.scalars(stmt))

    async def create(self, **values: Any) -> NotificationPreference:
        return await self.save(NotificationPreference(**values))

    async def update(self, preference_id: UUID, **values: Any) -> Optional[NotificationPreference]:
        if values:
            stmt = (
                update(NotificationPreference)
                .where(NotificationPreference.id == preference_id)
                .values(**values)
                .execution_options(synchronize_session="fetch")
            )
            await self.execute(stmt)
            await self.commit()
        return await self.get_by_id(preference_id)

    async def delete(self, preference_id: UUID) -> None:
        await self.execute(delete(NotificationPreference).where(NotificationPreference.id == preference_id))
        await self.commit()


class AdminActionLogRepository(BaseRepository):
    """Append-only audit trail of admin billing actions."""

    async def add_log(
        self,
        *,
        admin_user_id: Optional[UUID],
        action: str,
        target_company_id: Optional[UUID],
        details: dict,
    ) -> AdminActionLog:
        entry = AdminActionLog(
            admin_user_id=admin_user_id,
            action=action,
            target_company_id=target_company_id,
            details=details,
        )
        await self.add(entry)
        return entry

    async def list_logs(
        self,
        *,
        company_id: Optional[UUID] = None,
        action: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[AdminActionLog], int]:
        """Return one page of log entries, newest first, and the total for the same filters."""
        conditions = []
        if company_id is not None:
            conditions.append(AdminActionLog.target_company_id == company_id)
        if action:
            conditions.append(AdminActionLog.action == action)
        stmt = (
            select(AdminActionLog)
            .where(*conditions)
            .order_by(AdminActionLog.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        items = list(await self.scalars(stmt))
        total = int(await self.scalar(select(func.count(AdminActionLog.id)).where(*conditions)))
        return items, total
