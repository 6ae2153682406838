from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.core.security import decode_admin_token, decode_token
from knowledge_bot.db.models import User
from knowledge_bot.repositories.accounts import AccountRepository
from knowledge_bot.services.base import BaseService

logger = logging.getLogger(__name__)


def _as_uuid(value) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


class IdentityService(BaseService):
    """
    Resolve the acting application user of a request.

    Two bearer tokens are accepted:
      - an application access token (the session-bound identity), whose `sub` is the user id
      - an admin-panel token signed with ADMIN_JWT_SECRET, whose `id` is an admin account;
        the acting user is the application user with the same email
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.accounts = AccountRepository(session)

    async def resolve_acting_user(self, token: Optional[str]) -> Optional[User]:
        """Return the acting user, or None when no identity resolves."""
        if not token:
            return None

        user = await self._from_session_token(token)
        if user is not None:
            return user
        return await self._from_admin_token(token)

    async def _from_session_token(self, token: str) -> Optional[User]:
        try:
            claims = decode_token(token)
        except JWTError:
            return None
        if claims.get("type") != "access":
            return None
        user_id = _as_uuid(claims.get("sub"))
        if user_id is None:
            return None
        user = await self.accounts.get_user_by_id(user_id)
        if user is None or not user.is_active:
            return None
        return user

    async def _from_admin_token(self, token: str) -> Optional[User]:
        try:
            claims = decode_admin_token(token)
        except JWTError:
            logger.info("Bearer token rejected by admin secret verification")
            return None

        admin_id = _as_uuid(claims.get("id"))
        if admin_id is None:
            return None
        admin = await self.accounts.get_admin_by_id(admin_id)
        if admin is None or not admin.is_active:
            logger.info("Admin account %s not found or inactive", admin_id)
            return None

        user = await self.accounts.get_user_by_email(admin.email)
        if user is None:
            logger.info("No application user matches admin email %s", admin.email)
        return user
