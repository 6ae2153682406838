from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.core.security import get_password_hash, verify_password
from knowledge_bot.db.models import AdminUser, User
from knowledge_bot.repositories.accounts import AccountRepository
from knowledge_bot.repositories.bots import BotRepository
from knowledge_bot.services.base import BaseService, ForbiddenError, NotFoundError, ValidationError
from knowledge_bot.services.companies import CompanyService
from knowledge_bot.services.widget import build_widget_instructions, create_widget_token

logger = logging.getLogger(__name__)


class AccountService(BaseService):
    """Registration, credential checks and company/bot assignment for application users."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.accounts = AccountRepository(session)
        self.bots = BotRepository(session)
        self.company_service = CompanyService(session)

    async def register(
        self,
        *,
        email: str,
        password: str,
        username: Optional[str] = None,
        company_id: Optional[UUID] = None,
        company_name: Optional[str] = None,
        firstname: Optional[str] = None,
        lastname: Optional[str] = None,
    ) -> User:
        """
        Create an application user and the matching admin-panel account.

        The user joins `company_id` when given, otherwise the company named
        `company_name`, which is created on first use.
        """
        if await self.accounts.get_user_by_email(email):
            raise ValidationError("User with this email already exists")

        if company_id is not None:
            company = await self.company_service.companies.get_by_id(company_id)
            if company is None:
                raise NotFoundError("Company not found")
        elif company_name:
            company = await self.company_service.create_unique(company_name, commit=False)
        else:
            raise ValidationError("All fields are required including company information")

        # company, user and admin account are committed together
        hashed = get_password_hash(password)
        user = await self.accounts.create_user(
            email=email,
            hashed_password=hashed,
            username=username or email,
            company_id=company.id,
            commit=False,
        )
        if await self.accounts.get_admin_by_email(email) is None:
            await self.accounts.create_admin(
                email=email, hashed_password=hashed, firstname=firstname, lastname=lastname, commit=False
            )
        await self.accounts.commit()
        logger.info("Registered user %s in company %s", user.id, company.id)
        return (await self.accounts.get_user_by_id(user.id))  # type: ignore

    async def authenticate(self, email: str, password: str) -> Optional[User]:
        user = await self.accounts.get_user_by_email(email)
        if user is None or not verify_password(password, user.hashed_password):
            return None
        return user

    async def authenticate_admin(self, email: str, password: str) -> Optional[AdminUser]:
        admin = await self.accounts.get_admin_by_email(email)
        if admin is None or not admin.is_active or not verify_password(password, admin.hashed_password):
            return None
        return admin

    async def assign_bot(self, user: User, bot_id: UUID) -> User:
        """Attach the user to a bot of its own company and regenerate widget instructions."""
        if user.company_id is None:
            raise ValidationError("Bot and Company are required before saving. Please select both fields.")
        bot = await self.bots.get_by_id(bot_id)
        if bot is None:
            raise NotFoundError("Bot not found")
        if bot.company_id != user.company_id:
            raise ForbiddenError("You can only use bots from your company")
        token = create_widget_token(user.company_id, bot.id)
        updated = await self.accounts.update_user(
            user.id, bot_id=bot.id, instructions=build_widget_instructions(token)
        )
        return updated  # type: ignore[return-value]

    async def assign_company(self, email: str, company_name: str) -> User:
        """Repair helper: attach an existing user to a company, creating the company if needed."""
        user = await self.accounts.get_user_by_email(email)
        if user is None:
            raise NotFoundError(f"User {email} not found")
        company = await self.company_service.get_or_create(company_name)
        updated = await self.accounts.update_user(user.id, company_id=company.id)
        logger.info("Assigned user %s to company %s", email, company.name)
        return updated  # type: ignore[return-value]
