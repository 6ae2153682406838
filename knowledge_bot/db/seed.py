"""
Database seeding utilities for a local demo tenant.

Seeds:
- Demo company (Demo Company) on a starter trial
- Admin user (role admin) with a matching admin-panel account
- Regular user assigned to the demo bot
- Demo bot with widget token, instructions and upload folder

Usage:
  python -m knowledge_bot.db.run_migrations upgrade head
  python -m knowledge_bot.db.seed
"""

from __future__ import annotations

import asyncio
import logging
import os

from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.core.security import get_password_hash
from knowledge_bot.db.session import session_scope
from knowledge_bot.repositories.accounts import AccountRepository
from knowledge_bot.repositories.bots import BotRepository
from knowledge_bot.services.accounts import AccountService
from knowledge_bot.services.bots import BotService
from knowledge_bot.services.companies import CompanyService

logger = logging.getLogger(__name__)

DEMO_COMPANY = "Demo Company"
DEMO_ADMIN_EMAIL = "admin@demo.local"
DEMO_USER_EMAIL = "user@demo.local"
DEMO_BOT_NAME = "Demo Bot"


# PUBLIC_INTERFACE
async def seed_all() -> None:
    """
    Seed the database with a demo tenant. Safe to run repeatedly.

    Passwords come from SEED_ADMIN_PASSWORD and SEED_USER_PASSWORD, defaulting to "changeme".
    """
    async with session_scope() as session:
        company = await CompanyService(session).get_or_create(DEMO_COMPANY)
        bot = await _ensure_bot(session, company.id)
        await _ensure_user(
            session, DEMO_ADMIN_EMAIL, os.getenv("SEED_ADMIN_PASSWORD", "changeme"), company.id, role="admin"
        )
        user = await _ensure_user(
            session, DEMO_USER_EMAIL, os.getenv("SEED_USER_PASSWORD", "changeme"), company.id
        )
        if user.bot_id is None:
            await AccountService(session).assign_bot(user, bot.id)
        logger.info("Seeded company %s with bot %s", company.id, bot.id)


async def _ensure_bot(session: AsyncSession, company_id):
    for bot in await BotRepository(session).list_for_company(company_id):
        if bot.name == DEMO_BOT_NAME:
            return bot
    return await BotService(session).create(
        company_id, {"name": DEMO_BOT_NAME, "description": "Seeded demo bot"}
    )


async def _ensure_user(session: AsyncSession, email: str, password: str, company_id, role: str = "authenticated"):
    accounts = AccountRepository(session)
    user = await accounts.get_user_by_email(email)
    hashed = get_password_hash(password)
    if user is None:
        user = await accounts.create_user(
            email=email, hashed_password=hashed, username=email.split("@")[0], company_id=company_id, role=role
        )
    if await accounts.get_admin_by_email(email) is None:
        await accounts.create_admin(email=email, hashed_password=hashed)
    return user


if __name__ == "__main__":
    from knowledge_bot.core.logging import configure_logging

    configure_logging()
    asyncio.run(seed_all())
