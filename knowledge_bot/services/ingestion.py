from __future__ import annotations

import logging
import secrets
import time
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.repositories.accounts import AccountRepository
from knowledge_bot.repositories.bots import BotRepository
from knowledge_bot.repositories.companies import CompanyRepository
from knowledge_bot.repositories.files import FileRepository
from knowledge_bot.services.base import BaseService, ForbiddenError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

SUPPORTED_MIME_TYPES = (
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
    "application/msword",
)
MAX_PROCESSABLE_BYTES = 50 * 1024 * 1024

TIME_RANGES = {
    "1h": timedelta(hours=1),
    "24h": timedelta(days=1),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}

PENDING_STATUSES = ("pending", "queued", "processing")

# User columns editable through the preferences payload
_NOTIFICATION_FIELDS = {
    "channel": "notification_channel",
    "frequency": "notification_frequency",
    "emailFormat": "email_format",
    "includeFailures": "include_failures",
    "includeSuccesses": "include_successes",
    "includeProcessing": "include_processing",
    "groupingWindow": "notification_grouping_window",
}


def generate_batch_id() -> str:
    return f"batch_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


def should_process_file(mime: Optional[str], size: int, bot) -> Dict[str, Any]:
    """Decide whether the ingestion pipeline should pick a file up."""
    if mime not in SUPPORTED_MIME_TYPES:
        return {"shouldProcess": False, "reason": "Unsupported file type"}
    if size > MAX_PROCESSABLE_BYTES:
        return {"shouldProcess": False, "reason": "File too large (max 50MB)"}
    if bot is None or not bot.processing_enabled:
        return {"shouldProcess": False, "reason": "Processing disabled for bot"}
    return {"shouldProcess": True}


def calculate_processing_metrics(events: Iterable[Any]) -> Dict[str, Any]:
    events = list(events)
    by_status = Counter(e.processing_status or "pending" for e in events)
    by_type = Counter(e.file_type or "unknown" for e in events)
    completed = by_status.get("completed", 0)
    return {
        "totalEvents": len(events),
        "byStatus": dict(by_status),
        "byType": dict(by_type),
        "avgProcessingTime": average_processing_time(events),
        "successRate": round(completed / len(events) * 100) if events else 0,
    }


def average_processing_time(events: Iterable[Any]) -> int:
    timed = [e.processing_time_seconds for e in events if e.processing_time_seconds]
    if not timed:
        return 0
    return round(sum(timed) / len(timed))


def peak_hour(events: Iterable[Any]) -> str:
    """Hour of day with the most events, formatted as ``H:00``; ties go to the earliest hour."""
    counts = Counter(e.created_at.hour for e in events if e.created_at is not None)
    if not counts:
        return "0:00"
    hour = max(sorted(counts), key=lambda h: counts[h])
    return f"{hour}:00"


def _preferences_view(user, company) -> Dict[str, Any]:
    return {
        "notifications": {
            "enabled": True if user.notification_channel else bool(company.default_notifications_enabled),
            "channel": user.notification_channel,
            "frequency": user.notification_frequency,
            "emailFormat": user.email_format,
            "includeFailures": bool(user.include_failures),
            "includeSuccesses": bool(user.include_successes),
            "includeProcessing": bool(user.include_processing),
            "groupingWindow": user.notification_grouping_window,
        },
        "emailSettings": {
            "primaryEmail": user.email,
            "ccEmails": [user.cc_email] if user.cc_email else [],
        },
    }


class IngestionService(BaseService):
    """Lookups and status reporting consumed by the document ingestion pipeline."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.accounts = AccountRepository(session)
        self.companies = CompanyRepository(session)
        self.bots = BotRepository(session)
        self.files = FileRepository(session)

    async def _user_in_company(self, user_id: UUID, company_id: UUID):
        user = await self.accounts.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if user.company_id != company_id:
            raise ForbiddenError("User does not belong to the specified company")
        return user

    async def get_user_email(self, user_id: UUID, company_id: UUID) -> Dict[str, Any]:
        user = await self._user_in_company(user_id, company_id)
        return {"email": user.email, "userId": str(user.id)}

    async def get_user_preferences(self, user_id: UUID, company_id: UUID, bot_id: UUID) -> Dict[str, Any]:
        user = await self._user_in_company(user_id, company_id)
        company = await self.companies.get_by_id(company_id)
        if company is None:
            raise NotFoundError("Company not found")
        bot = await self.bots.get_by_id(bot_id)
        if bot is None or bot.company_id != company_id:
            raise NotFoundError("Bot not found")
        return {
            "email": user.email,
            "preferences": _preferences_view(user, company),
            "company": {"id": str(company.id)},
            "bot": {"id": str(bot.id), "name": bot.name},
        }

    async def batch_user_lookup(
        self,
        user_ids: List[UUID],
        company_id: UUID,
        include_preferences: bool = True,
    ) -> Dict[str, Any]:
        """Emails (and optionally preferences) of the listed users that belong to `company_id`."""
        if not user_ids:
            raise ValidationError("userIds array is required and must not be empty")
        company = await self.companies.get_by_id(company_id)
        if company is None:
            raise NotFoundError("Company not found")

        users: Dict[str, Any] = {}
        for user in await self.accounts.list_users_by_ids(user_ids):
            if user.company_id != company_id:
                continue
            entry: Dict[str, Any] = {"email": user.email}
            if include_preferences:
                entry["preferences"] = _preferences_view(user, company)
            users[str(user.id)] = entry
        return {"users": users}

    async def update_user_preferences(self, user_id: UUID, company_id: UUID, preferences: Dict[str, Any]) -> None:
        await self._user_in_company(user_id, company_id)
        values: Dict[str, Any] = {}
        for key, column in _NOTIFICATION_FIELDS.items():
            if key in (preferences.get("notifications") or {}):
                values[column] = preferences["notifications"][key]
        email_settings = preferences.get("emailSettings") or {}
        if "ccEmails" in email_settings:
            cc = email_settings["ccEmails"]
            values["cc_email"] = (cc[0] if cc else None) if isinstance(cc, list) else cc
        await self.accounts.update_user(user_id, **values)

    async def _owned_file(self, file_id: UUID, company_id: UUID):
        record = await self.files.get_by_id(file_id)
        if record is None:
            raise NotFoundError("File not found")
        if record.company_id != company_id:
            raise ForbiddenError("You can only access files from your company")
        return record

    async def get_file_status(self, file_id: UUID, company_id: UUID) -> Dict[str, Any]:
        record = await self._owned_file(file_id, company_id)
        latest = await self.files.latest_event(record.id)
        status = latest.processing_status if latest else "pending"
        return {
            "fileId": str(record.id),
            "fileName": record.name,
            "status": status,
            "uploadTime": record.created_at.isoformat() if record.created_at else None,
            "processingStage": status,
            "processingDetails": {
                "startTime": latest.processing_started_at.isoformat() if latest and latest.processing_started_at else None,
                "endTime": latest.processing_completed_at.isoformat()
                if latest and latest.processing_completed_at
                else None,
                "duration": latest.processing_time_seconds if latest else None,
                "chunksCreated": (latest.chunks_created or 0) if latest else 0,
                "errorMessage": latest.error_message if latest else None,
            },
            "metadata": {
                "size": record.size,
                "mimeType": record.mime,
                "botId": str(record.bot_id) if record.bot_id else None,
                "companyId": str(record.company_id) if record.company_id else None,
                "userId": str(record.user_id) if record.user_id else None,
            },
        }

    async def retry_file_processing(self, file_id: UUID, company_id: UUID) -> Dict[str, Any]:
        record = await self._owned_file(file_id, company_id)
        latest = await self.files.latest_event(record.id)
        event = await self.files.add_event(
            event_type="retry",
            processed=False,
            processing_status="queued",
            file_document_id=record.id,
            file_name=record.name,
            file_type=record.ext,
            file_size=record.size,
            user_id=record.user_id,
            bot_id=record.bot_id,
            company_id=record.company_id,
            retry_attempt=((latest.retry_attempt or 0) if latest else 0) + 1,
        )
        await self.files.commit()
        logger.info("Queued reprocessing of file %s", record.id)
        return {
            "message": "File reprocessing initiated",
            "eventId": str(event.id),
            "fileId": str(record.id),
            "status": "queued",
        }

    async def get_batch_status(self, batch_id: str, company_id: UUID) -> Dict[str, Any]:
        events = [e for e in await self.files.events_for_batch(batch_id) if e.company_id == company_id]
        if not events:
            raise NotFoundError("Batch not found")
        metrics = calculate_processing_metrics(events)
        pending = sum(metrics["byStatus"].get(s, 0) for s in PENDING_STATUSES)
        return {
            "batchId": batch_id,
            "status": "processing" if pending else "completed",
            "totalFiles": metrics["totalEvents"],
            "byStatus": metrics["byStatus"],
            "successRate": metrics["successRate"],
            "createdAt": events[0].created_at.isoformat() if events[0].created_at else None,
        }

    async def get_processing_stats(self, company_id: UUID, bot_id: UUID, time_range: str = "24h") -> Dict[str, Any]:
        if time_range not in TIME_RANGES:
            time_range = "24h"
        now = datetime.now(tz=timezone.utc)
        start = now - TIME_RANGES[time_range]
        events = await self.files.events_since(start, company_id=company_id, bot_id=bot_id)

        total = len(events)
        completed = sum(1 for e in events if e.processing_status == "completed")
        types = Counter(e.file_type for e in events)
        company = await self.companies.get_by_id(company_id)

        return {
            "timeRange": time_range,
            "period": {"start": start.isoformat(), "end": now.isoformat()},
            "summary": {
                "totalFiles": total,
                "processedFiles": completed,
                "pendingFiles": sum(1 for e in events if e.processing_status in PENDING_STATUSES),
                "failedFiles": sum(1 for e in events if e.processing_status == "failed"),
                "successRate": round(completed / total * 100) if total else 0,
            },
            "fileTypes": {
                "pdf": types.get(".pdf", 0),
                "docx": types.get(".docx", 0),
                "txt": types.get(".txt", 0),
                "other": total - types.get(".pdf", 0) - types.get(".docx", 0) - types.get(".txt", 0),
            },
            "performance": {
                "averageProcessingTime": average_processing_time(events),
                "peakHour": peak_hour(events),
                "totalStorageUsed": (company.storage_used_bytes or 0) if company else 0,
            },
        }
