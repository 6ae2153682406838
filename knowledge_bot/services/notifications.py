from __future__ import annotations

import logging
from typing import Any, Dict, List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.db.models import NotificationPreference
from knowledge_bot.repositories.accounts import AccountRepository
from knowledge_bot.repositories.bots import BotRepository
from knowledge_bot.repositories.notifications import NotificationPreferenceRepository
from knowledge_bot.services.base import BaseService, ForbiddenError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_PREFERENCES: Dict[str, Any] = {
    "notification_enabled": True,
    "batch_size_threshold": 5,
    "notification_delay_minutes": 30,
    "email_format": "html",
    "include_success_details": True,
    "include_error_details": True,
}

SETTING_FIELDS = tuple(DEFAULT_PREFERENCES)


def default_preferences(email: str) -> Dict[str, Any]:
    return {**DEFAULT_PREFERENCES, "email": email}


class NotificationPreferenceService(BaseService):
    """
    Notification batching preferences per (company, bot, user).

    The stored email always mirrors the owning user's email; any email sent by
    the client is ignored.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.preferences = NotificationPreferenceRepository(session)
        self.accounts = AccountRepository(session)
        self.bots = BotRepository(session)

    async def _check_scope(self, caller_company_id: UUID, company_id: UUID, bot_id: UUID, user_id: UUID):
        """Validate that the company, bot and user are all in the caller's tenant; return the user."""
        if company_id != caller_company_id:
            raise ForbiddenError("You can only manage preferences for your company")
        user = await self.accounts.get_user_by_id(user_id)
        if user is None:
            raise ValidationError("User not found")
        if user.company_id != company_id:
            raise ForbiddenError("User does not belong to the specified company")
        bot = await self.bots.get_by_id(bot_id)
        if bot is None:
            raise NotFoundError("Bot not found")
        if bot.company_id != company_id:
            raise ForbiddenError("You can only use bots from your company")
        return user

    async def find_for_user(
        self, caller_company_id: UUID, company_id: UUID, bot_id: UUID, user_id: UUID
    ) -> Dict[str, Any] | NotificationPreference:
        """Stored preference for the tuple, or defaults carrying the user's email."""
        if company_id != caller_company_id:
            raise ForbiddenError("You can only manage preferences for your company")
        existing = await self.preferences.find_scope(company_id, bot_id, user_id)
        if existing is not None:
            return existing
        user = await self.accounts.get_user_by_id(user_id)
        if user is None:
            raise ValidationError("User not found")
        if user.company_id != company_id:
            raise ForbiddenError("User does not belong to the specified company")
        return default_preferences(user.email)

    async def upsert(self, caller_company_id: UUID, data: Dict[str, Any]) -> NotificationPreference:
        company_id, bot_id, user_id = data.get("company"), data.get("bot"), data.get("user")
        if not company_id or not bot_id or not user_id:
            raise ValidationError("company, bot, and user are required")
        user = await self._check_scope(caller_company_id, company_id, bot_id, user_id)
        settings = {k: data[k] for k in SETTING_FIELDS if data.get(k) is not None}

        existing = await self.preferences.find_scope(company_id, bot_id, user_id)
        if existing is not None:
            updated = await self.preferences.update(existing.id, email=user.email, **settings)
            return updated  # type: ignore[return-value]
        logger.info("Creating notification preferences for user %s on bot %s", user_id, bot_id)
        return await self.preferences.create(
            company_id=company_id, bot_id=bot_id, user_id=user_id, email=user.email, **settings
        )

    async def list_for_company(self, company_id: UUID, limit: int = 100, offset: int = 0) -> List[NotificationPreference]:
        return await self.preferences.list_for_company(company_id, limit=limit, offset=offset)

    async def get_owned(self, preference_id: UUID, company_id: UUID, action: str = "view") -> NotificationPreference:
        pref = await self.preferences.get_by_id(preference_id)
        if pref is None:
            raise NotFoundError("Notification preference not found")
        if pref.company_id != company_id:
            raise ForbiddenError(f"You can only {action} preferences from your company")
        return pref

    async def create(self, caller_company_id: UUID, data: Dict[str, Any]) -> NotificationPreference:
        company_id = data.get("company") or caller_company_id
        bot_id, user_id = data.get("bot"), data.get("user")
        if not bot_id or not user_id:
            raise ValidationError("company, bot, and user are required")
        user = await self._check_scope(caller_company_id, company_id, bot_id, user_id)
        if await self.preferences.find_scope(company_id, bot_id, user_id) is not None:
            raise ValidationError("Preferences already exist for this user and bot")
        settings = {k: data[k] for k in SETTING_FIELDS if data.get(k) is not None}
        return await self.preferences.create(
            company_id=company_id, bot_id=bot_id, user_id=user_id, email=user.email, **settings
        )

    async def update(self, preference_id: UUID, caller_company_id: UUID, data: Dict[str, Any]) -> NotificationPreference:
        pref = await self.get_owned(preference_id, caller_company_id, action="update")
        user = await self.accounts.get_user_by_id(pref.user_id)
        settings = {k: data[k] for k in SETTING_FIELDS if data.get(k) is not None}
        if user is not None:
            settings["email"] = user.email
        updated = await self.preferences.update(pref.id, **settings)
        return updated  # type: ignore[return-value]

    async def delete(self, preference_id: UUID, caller_company_id: UUID) -> None:
        pref = await self.get_owned(preference_id, caller_company_id, action="delete")
        await self.preferences.delete(pref.id)
        logger.info("Deleted notification preference %s of company %s", pref.id, caller_company_id)
