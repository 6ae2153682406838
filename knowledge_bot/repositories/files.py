from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select, update

from knowledge_bot.db.models import File, FileEvent
from .base import BaseRepository


class FileRepository(BaseRepository):
    """Repository for uploaded files and their processing events."""

    # Files
    async def get_by_id(self, file_id: UUID, include_deleted: bool = False) -> Optional[File]:
        stmt = select(File).where(File.id == file_id)
        if not include_deleted:
            stmt = stmt.where(File.deleted.is_(False))
        return await self.scalar_one_or_none(stmt)

    async def list_for_company(
        self,
        company_id: UUID,
        *,
        bot_id: Optional[UUID] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[File]:
        stmt = select(File).where(File.company_id == company_id, File.deleted.is_(False))
        if bot_id is not None:
            stmt = stmt.where(File.bot_id == bot_id)
        stmt = stmt.order_by(File.created_at.desc()).offset(offset).limit(limit)
        return list(await self.scalars(stmt))

    async def list_active_for_bot(self, bot_id: UUID, folder_path: Optional[str] = None) -> List[File]:
        """Non-deleted files linked to the bot directly or stored in its folder."""
        condition = File.bot_id == bot_id
        if folder_path:
            condition = condition | (File.folder_path == folder_path)
        stmt = select(File).where(condition, File.deleted.is_(False)).order_by(File.name)
        return list(await self.scalars(stmt))

    async def stats_for_bot(self, bot_id: UUID) -> Tuple[int, int]:
        """Return (file_count, total_size_bytes) of non-deleted files for a bot."""
        stmt = select(func.count(File.id), func.coalesce(func.sum(File.size), 0)).where(
            File.bot_id == bot_id, File.deleted.is_(False)
        )
        row = (await self.execute(stmt)).one()
        return int(row[0]), int(row[1])

    async def usage_for_company(self, company_id: UUID) -> Tuple[int, int]:
        """Return (total_size_bytes, file_count) of non-deleted files for a company."""
        stmt = select(func.coalesce(func.sum(File.size), 0), func.count(File.id)).where(
            File.company_id == company_id, File.deleted.is_(False)
        )
        row = (await self.execute(stmt)).one()
        return int(row[0]), int(row[1])

    async def list_created_since(self, company_id: UUID, since: datetime) -> List[File]:
        stmt = select(File).where(
            File.company_id == company_id,
            File.deleted.is_(False),
            File.created_at >= since,
        )
        return list(await self.scalars(stmt))

    async def create(self, **values: Any) -> File:
        record = File(**values)
        await self.add(record)
        await self.flush()
        return record

    async def update(self, file_id: UUID, **values: Any) -> Optional[File]:
        stmt = (
            update(File)
            .where(File.id == file_id)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        await self.execute(stmt)
        await self.flush()
        return await self.get_by_id(file_id, include_deleted=True)

    async def soft_delete(self, file_id: UUID, at: datetime) -> None:
        stmt = (
            update(File)
            .where(File.id == file_id)
            .values(deleted=True, deleted_at=at)
            .execution_options(synchronize_session="fetch")
        )
        await self.execute(stmt)

    # Events
    async def add_event(self, **values: Any) -> FileEvent:
        event = FileEvent(**values)
        await self.add(event)
        await self.flush()
        return event

    async def latest_event(self, file_id: UUID) -> Optional[FileEvent]:
        stmt = (
            select(FileEvent)
            .where(FileEvent.file_document_id == file_id)
            .order_by(FileEvent.created_at.desc())
            .limit(1)
        )
        return await self.scalar_one_or_none(stmt)

    async def events_for_batch(self, batch_id: str) -> List[FileEvent]:
        stmt = select(FileEvent).where(FileEvent.batch_id == batch_id).order_by(FileEvent.created_at)
        return list(await self.scalars(stmt))

    async def events_since(
        self,
        since: datetime,
        *,
        company_id: Optional[UUID] = None,
        bot_id: Optional[UUID] = None,
    ) -> List[FileEvent]:
        stmt = select(FileEvent).where(FileEvent.created_at >= since)
        if company_id is not None:
            stmt = stmt.where(FileEvent.company_id == company_id)
        if bot_id is not None:
            stmt = stmt.where(FileEvent.bot_id == bot_id)
        return list(await self.scalars(stmt.order_by(FileEvent.created_at)))
