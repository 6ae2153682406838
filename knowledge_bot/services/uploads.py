from __future__ import annotations

import logging
import mimetypes
import os
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.db.models import Bot, File, User
from knowledge_bot.repositories.bots import BotRepository
from knowledge_bot.repositories.files import FileRepository
from knowledge_bot.services.base import BaseService, ForbiddenError, NotFoundError, ValidationError
from knowledge_bot.services.ingestion import generate_batch_id, should_process_file
from knowledge_bot.services.storage import ObjectStorage

logger = logging.getLogger(__name__)

BOT_FOLDER_RE = re.compile(r"^/bot-([0-9a-fA-F-]{36})$")
SOURCE_MANUAL_UPLOAD = "manual_upload"


@dataclass
class IncomingFile:
    """One multipart part as read by the route."""

    name: str
    data: bytes
    mime: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


def bot_id_from_folder(folder_path: Optional[str]) -> Optional[UUID]:
    """Bot id encoded in a ``/bot-<uuid>`` folder path, or None for any other path."""
    if not folder_path:
        return None
    match = BOT_FOLDER_RE.match(folder_path.strip())
    if not match:
        return None
    try:
        return UUID(match.group(1))
    except ValueError:
        return None


def upload_message(count: int) -> Dict[str, Any]:
    word = "file" if count == 1 else "files"
    has, is_ = ("has", "is") if count == 1 else ("have", "are")
    return {
        "message": (
            f"✅ {count} {word} uploaded successfully! You will receive an email notification once your "
            f"{word} {has} been processed and {is_} ready for use by your AI bot."
        ),
        "notification": {
            "type": "success",
            "title": "Upload Complete",
            "message": f"Your {word} will be processed shortly and you'll be notified via email when ready.",
        },
    }


class UploadService(BaseService):
    """Stores uploaded blobs, links them to the uploader's company and bot and records file events."""

    def __init__(self, session: AsyncSession, storage: ObjectStorage) -> None:
        super().__init__(session)
        self.storage = storage
        self.files = FileRepository(session)
        self.bots = BotRepository(session)

    async def resolve_bot(
        self, company_id: Optional[UUID], bot_id: Optional[UUID], folder_path: Optional[str]
    ) -> Optional[Bot]:
        """
        Find the target bot from an explicit id or a bot folder path.

        Raises:
            NotFoundError: an explicit bot id does not exist.
            ForbiddenError: the bot belongs to another company.
        """
        explicit = bot_id is not None
        bot_id = bot_id or bot_id_from_folder(folder_path)
        if bot_id is None:
            return None
        bot = await self.bots.get_by_id(bot_id)
        if bot is None:
            if explicit:
                raise NotFoundError("Bot not found")
            logger.warning("Folder %s points to a missing bot", folder_path)
            return None
        if company_id is not None and bot.company_id != company_id:
            raise ForbiddenError("You can only use bots from your company")
        return bot

    async def upload(
        self,
        user: User,
        incoming: Sequence[IncomingFile],
        *,
        bot_id: Optional[UUID] = None,
        folder_path: Optional[str] = None,
        replace_id: Optional[UUID] = None,
    ) -> Dict[str, Any]:
        if not incoming:
            raise ValidationError("No files were uploaded")
        if replace_id is not None and len(incoming) != 1:
            raise ValidationError("Exactly one file is required when replacing a file")

        bot = await self.resolve_bot(user.company_id, bot_id, folder_path)
        company_id = user.company_id or (bot.company_id if bot else None)
        if company_id is None:
            raise ValidationError("User must be associated with a company")
        if bot is not None and not folder_path:
            folder_path = bot.folder_path

        existing: Optional[File] = None
        if replace_id is not None:
            existing = await self.get_owned(replace_id, company_id)

        batch_id = generate_batch_id()
        records: List[File] = []
        for item in incoming:
            record = await self._store(item, user, company_id, bot, folder_path, existing)
            await self._record_event(record, bot, batch_id, "updated" if existing else "created")
            records.append(record)

        await self.files.commit()
        for record in records:
            await self.files.refresh(record)
        logger.info("Uploaded %d file(s) for company %s (batch %s)", len(records), company_id, batch_id)
        return {"data": records, "batchId": batch_id, **upload_message(len(records))}

    async def _store(
        self,
        item: IncomingFile,
        user: User,
        company_id: UUID,
        bot: Optional[Bot],
        folder_path: Optional[str],
        existing: Optional[File],
    ) -> File:
        digest = uuid.uuid4().hex
        ext = os.path.splitext(item.name)[1].lower()
        mime = item.mime or mimetypes.guess_type(item.name)[0] or "application/octet-stream"
        key = f"{digest}{ext}"
        url = await self.storage.put_object(key, item.data, content_type=mime)

        values = dict(
            name=item.name,
            hash=digest,
            ext=ext,
            mime=mime,
            size=item.size,
            url=url,
            storage_key=key,
            source_type=SOURCE_MANUAL_UPLOAD,
            folder_path=folder_path,
            user_id=user.id,
            bot_id=bot.id if bot else None,
            company_id=company_id,
        )
        if existing is None:
            return await self.files.create(**values)

        if existing.storage_key:
            await self.storage.delete_object(existing.storage_key)
        updated = await self.files.update(existing.id, **values)
        return updated  # type: ignore[return-value]

    async def _record_event(self, record: File, bot: Optional[Bot], batch_id: str, event_type: str) -> None:
        decision = should_process_file(record.mime, record.size, bot)
        try:
            async with self.session.begin_nested():
                await self.files.add_event(
                    event_type=event_type,
                    processing_status="pending" if decision["shouldProcess"] else "skipped",
                    processed=False,
                    file_document_id=record.id,
                    file_name=record.name,
                    file_type=record.ext,
                    file_size=record.size,
                    user_id=record.user_id,
                    bot_id=record.bot_id,
                    company_id=record.company_id,
                    batch_id=batch_id,
                    error_message=decision.get("reason"),
                )
        except Exception:
            logger.exception("Failed to record %s event for file %s", event_type, record.id)

    async def list_for_company(
        self, company_id: UUID, bot_id: Optional[UUID] = None, limit: int = 100, offset: int = 0
    ) -> List[File]:
        return await self.files.list_for_company(company_id, bot_id=bot_id, limit=limit, offset=offset)

    async def get_owned(self, file_id: UUID, company_id: UUID) -> File:
        """Non-deleted file of the company; deleted and foreign files are reported as missing."""
        record = await self.files.get_by_id(file_id)
        if record is None or record.company_id != company_id:
            raise NotFoundError("File not found")
        return record

    async def delete(self, file_id: UUID, company_id: UUID) -> File:
        """Record a deleted event, remove the blob and soft-delete the row."""
        record = await self.get_owned(file_id, company_id)
        await self.files.add_event(
            event_type="deleted",
            processing_status="completed",
            processed=True,
            file_document_id=record.id,
            file_name=record.name,
            file_type=record.ext,
            file_size=record.size,
            user_id=record.user_id,
            bot_id=record.bot_id,
            company_id=record.company_id,
        )
        if record.storage_key:
            await self.storage.delete_object(record.storage_key)
        await self.files.soft_delete(record.id, datetime.now(tz=timezone.utc))
        await self.files.commit()
        logger.info("Deleted file %s of company %s", record.id, company_id)
        return record
