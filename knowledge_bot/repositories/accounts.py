from __future__ import annotations

from typing import Any, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import func, select, update

from knowledge_bot.db.models import AdminUser, User
from .base import BaseRepository


class AccountRepository(BaseRepository):
    """Repository for application users and admin-panel accounts."""

    # Users
    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        stmt = select(User).where(User.id == user_id)
        return await self.scalar_one_or_none(stmt)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(func.lower(User.email) == email.strip().lower())
        return await self.scalar_one_or_none(stmt)

    async def list_users_by_ids(self, user_ids: Iterable[UUID]) -> List[User]:
        ids = list(user_ids)
        if not ids:
            return []
        stmt = select(User).where(User.id.in_(ids))
        return list(await self.scalars(stmt))

    async def count_users_for_company(self, company_id: UUID) -> int:
        stmt = select(func.count(User.id)).where(User.company_id == company_id)
        return int(await self.scalar(stmt))

    async def create_user(
        self,
        *,
        email: str,
        hashed_password: str,
        username: Optional[str] = None,
        company_id: Optional[UUID] = None,
        bot_id: Optional[UUID] = None,
        role: str = "authenticated",
        commit: bool = True,
    ) -> User:
        user = User(
            email=email.strip().lower(),
            username=username,
            hashed_password=hashed_password,
            company_id=company_id,
            bot_id=bot_id,
            role=role,
        )
        await self.add(user)
        if not commit:
            await self.flush()
            return user
        await self.commit()
        return (await self.get_user_by_id(user.id))  # type: ignore

    async def update_user(self, user_id: UUID, **values: Any) -> Optional[User]:
        if not values:
            return await self.get_user_by_id(user_id)
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        await self.execute(stmt)
        await self.commit()
        return await self.get_user_by_id(user_id)

    # Admin panel accounts
    async def get_admin_by_id(self, admin_id: UUID) -> Optional[AdminUser]:
        stmt = select(AdminUser).where(AdminUser.id == admin_id)
        return await self.scalar_one_or_none(stmt)

    async def get_admin_by_email(self, email: str) -> Optional[AdminUser]:
        stmt = select(AdminUser).where(func.lower(AdminUser.email) == email.strip().lower())
        return await self.scalar_one_or_none(stmt)

    async def create_admin(
        self,
        *,
        email: str,
        hashed_password: str,
        firstname: Optional[str] = None,
        lastname: Optional[str] = None,
        commit: bool = True,
    ) -> AdminUser:
        admin = AdminUser(
            email=email.strip().lower(),
            hashed_password=hashed_password,
            firstname=firstname,
            lastname=lastname,
        )
        if commit:
            return await self.save(admin)
        await self.add(admin)
        await self.flush()
        return admin
