from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.db.models import Bot
from knowledge_bot.repositories.bots import BotRepository
from knowledge_bot.repositories.files import FileRepository
from knowledge_bot.services.base import BaseService, ForbiddenError, NotFoundError, ValidationError
from knowledge_bot.services.widget import build_widget_instructions, create_widget_token

logger = logging.getLogger(__name__)

# Columns a caller may set; company and generated widget fields are managed here
EDITABLE_FIELDS = (
    "name",
    "bot_id",
    "description",
    "processing_enabled",
    "auto_correction_enabled",
    "max_retry_attempts",
    "retry_delay_minutes",
)


def bot_folder_path(bot_id: UUID) -> str:
    return f"/bot-{bot_id}"


def delete_blocked_message(bot_name: str, file_names: Sequence[str]) -> str:
    """Explain why a bot with files cannot be deleted, naming at most three files."""
    count = len(file_names)
    listed = ", ".join(file_names[:3])
    if count > 3:
        listed += f" and {count - 3} more"
    return (
        f'Cannot delete bot "{bot_name}" because its folder contains {count} file(s): {listed}. '
        "Please delete or move all files from the bot's folder before deleting the bot."
    )


class BotService(BaseService):
    """Tenant-scoped bot lifecycle: widget token issuance, folder assignment and guarded deletion."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.bots = BotRepository(session)
        self.files = FileRepository(session)

    async def list_for_company(self, company_id: UUID) -> List[Bot]:
        return await self.bots.list_for_company(company_id)

    async def get_owned(self, bot_id: UUID, company_id: UUID, action: str = "view") -> Bot:
        """
        Load a bot and ensure it belongs to `company_id`.

        Raises:
            NotFoundError: the bot does not exist.
            ForbiddenError: the bot belongs to another company.
        """
        bot = await self.bots.get_by_id(bot_id)
        if bot is None:
            raise NotFoundError("Bot not found")
        if bot.company_id != company_id:
            raise ForbiddenError(f"You can only {action} bots from your company")
        return bot

    async def create(self, company_id: UUID, data: Dict[str, Any]) -> Bot:
        values = {k: v for k, v in data.items() if k in EDITABLE_FIELDS and v is not None}
        bot = await self.bots.create(
            company_id=company_id,
            published_at=datetime.now(tz=timezone.utc),
            **values,
        )
        token = create_widget_token(company_id, bot.id)
        created = await self.bots.update(
            bot.id,
            bot_id=values.get("bot_id") or str(bot.id),
            jwt_token=token,
            instructions=build_widget_instructions(token),
            folder_path=bot_folder_path(bot.id),
        )
        logger.info("Created bot %s for company %s", bot.id, company_id)
        return created  # type: ignore[return-value]

    async def update(self, bot_id: UUID, company_id: UUID, data: Dict[str, Any]) -> Bot:
        bot = await self.get_owned(bot_id, company_id, action="update")
        # company is assigned on create only
        values = {k: v for k, v in data.items() if k in EDITABLE_FIELDS and v is not None}
        if not bot.jwt_token:
            token = create_widget_token(bot.company_id, bot.id)
            values.update(jwt_token=token, instructions=build_widget_instructions(token))
        if not bot.folder_path:
            values["folder_path"] = bot_folder_path(bot.id)
        updated = await self.bots.update(bot.id, **values)
        return updated  # type: ignore[return-value]

    async def ensure_deletable(self, bot: Bot) -> None:
        """Refuse deletion while the bot still owns files."""
        files = await self.files.list_active_for_bot(bot.id, bot.folder_path)
        if files:
            raise ValidationError(delete_blocked_message(bot.name, [f.name for f in files]))

    async def delete(self, bot_id: UUID, company_id: UUID) -> Bot:
        bot = await self.get_owned(bot_id, company_id, action="delete")
        await self.ensure_deletable(bot)
        await self.bots.delete(bot.id)
        logger.info("Deleted bot %s of company %s", bot.id, company_id)
        return bot

    async def details(self, bot_id: UUID, company_id: UUID) -> Dict[str, Any]:
        bot = await self.get_owned(bot_id, company_id, action="view")
        file_count, total_size = await self.files.stats_for_bot(bot.id)
        return {"bot": bot, "file_count": file_count, "total_file_size": total_size}

    async def upload_targets(self, company_id: UUID) -> List[Dict[str, Any]]:
        """Published bots of the company as upload destinations, sorted by name."""
        bots = await self.bots.list_published(company_id)
        return [
            {
                "id": str(b.id),
                "name": b.name,
                "bot_id": b.bot_id,
                "folderPath": b.folder_path or bot_folder_path(b.id),
            }
            for b in bots
        ]
