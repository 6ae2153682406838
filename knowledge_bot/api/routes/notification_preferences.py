from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.core.deps import get_company_user
from knowledge_bot.db.session import get_async_session
from knowledge_bot.schemas.common import ListMeta, MessageResponse
from knowledge_bot.schemas.notification import (
    NotificationPreferenceListResponse,
    NotificationPreferenceRead,
    NotificationPreferenceResponse,
    NotificationPreferenceWrite,
)
from knowledge_bot.services.notifications import NotificationPreferenceService

router = APIRouter(prefix="/user-notification-preferences", tags=["Notification Preferences"])


# PUBLIC_INTERFACE
@router.get(
    "/by-user/{company_id}/{bot_id}/{user_id}",
    response_model=NotificationPreferenceResponse,
    summary="Preferences for a user and bot",
    description="Stored preferences for the (company, bot, user) tuple, or defaults carrying the user's email.",
)
async def find_by_user(
    company_id: UUID,
    bot_id: UUID,
    user_id: UUID,
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> NotificationPreferenceResponse:
    pref = await NotificationPreferenceService(session).find_for_user(user.company_id, company_id, bot_id, user_id)
    return NotificationPreferenceResponse(data=NotificationPreferenceRead.model_validate(pref))


# PUBLIC_INTERFACE
@router.post(
    "/upsert",
    response_model=NotificationPreferenceResponse,
    summary="Create or update preferences",
    description="Requires company, bot and user. The email is always taken from the user.",
)
async def upsert_preferences(
    payload: NotificationPreferenceWrite,
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> NotificationPreferenceResponse:
    pref = await NotificationPreferenceService(session).upsert(user.company_id, payload.model_dump())
    return NotificationPreferenceResponse(data=NotificationPreferenceRead.model_validate(pref))


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=NotificationPreferenceListResponse,
    summary="List preferences",
)
async def list_preferences(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> NotificationPreferenceListResponse:
    prefs = await NotificationPreferenceService(session).list_for_company(user.company_id, limit=limit, offset=offset)
    return NotificationPreferenceListResponse(
        data=[NotificationPreferenceRead.model_validate(p) for p in prefs], meta=ListMeta(total=len(prefs))
    )


# PUBLIC_INTERFACE
@router.get(
    "/{preference_id}",
    response_model=NotificationPreferenceResponse,
    summary="Get preferences",
)
async def get_preferences(
    preference_id: UUID,
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> NotificationPreferenceResponse:
    pref = await NotificationPreferenceService(session).get_owned(preference_id, user.company_id)
    return NotificationPreferenceResponse(data=NotificationPreferenceRead.model_validate(pref))


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=NotificationPreferenceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create preferences",
)
async def create_preferences(
    payload: NotificationPreferenceWrite,
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> NotificationPreferenceResponse:
    pref = await NotificationPreferenceService(session).create(user.company_id, payload.model_dump())
    return NotificationPreferenceResponse(data=NotificationPreferenceRead.model_validate(pref))


# PUBLIC_INTERFACE
@router.put(
    "/{preference_id}",
    response_model=NotificationPreferenceResponse,
    summary="Update preferences",
)
async def update_preferences(
    preference_id: UUID,
    payload: NotificationPreferenceWrite,
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> NotificationPreferenceResponse:
    pref = await NotificationPreferenceService(session).update(preference_id, user.company_id, payload.model_dump())
    return NotificationPreferenceResponse(data=NotificationPreferenceRead.model_validate(pref))


# PUBLIC_INTERFACE
@router.delete(
    "/{preference_id}",
    response_model=MessageResponse,
    summary="Delete preferences",
)
async def delete_preferences(
    preference_id: UUID,
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> MessageResponse:
    await NotificationPreferenceService(session).delete(preference_id, user.company_id)
    return MessageResponse(message="Notification preferences deleted")
