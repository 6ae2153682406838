from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.api.guards import guard_subscription
from knowledge_bot.core.deps import get_company_user
from knowledge_bot.db.session import get_async_session
from knowledge_bot.schemas.bot import (
    BotCreate,
    BotDeleteResponse,
    BotListResponse,
    BotRead,
    BotResponse,
    BotUpdate,
)
from knowledge_bot.schemas.common import ListMeta
from knowledge_bot.services.bots import BotService

router = APIRouter(prefix="/bots", tags=["Bots"])


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=BotListResponse,
    summary="List bots",
    description="List the bots of the acting user's company.",
)
async def list_bots(
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> BotListResponse:
    bots = await BotService(session).list_for_company(user.company_id)
    return BotListResponse(data=[BotRead.model_validate(b) for b in bots], meta=ListMeta(total=len(bots)))


# PUBLIC_INTERFACE
@router.get(
    "/{bot_id}",
    response_model=BotResponse,
    summary="Get bot",
    description="Return one bot of the acting user's company.",
)
async def get_bot(
    bot_id: UUID,
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> BotResponse:
    bot = await BotService(session).get_owned(bot_id, user.company_id, action="view")
    return BotResponse(data=BotRead.model_validate(bot))


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=BotResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create bot",
    description="Create a bot in the acting user's company. The widget token, embed instructions and folder are generated.",
    dependencies=[Depends(guard_subscription)],
)
async def create_bot(
    payload: BotCreate,
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> BotResponse:
    bot = await BotService(session).create(user.company_id, payload.model_dump(exclude_unset=True))
    return BotResponse(data=BotRead.model_validate(bot))


# PUBLIC_INTERFACE
@router.put(
    "/{bot_id}",
    response_model=BotResponse,
    summary="Update bot",
    description="Update a bot of the acting user's company. The company cannot be changed.",
    dependencies=[Depends(guard_subscription)],
)
async def update_bot(
    bot_id: UUID,
    payload: BotUpdate,
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> BotResponse:
    bot = await BotService(session).update(bot_id, user.company_id, payload.model_dump(exclude_unset=True))
    return BotResponse(data=BotRead.model_validate(bot))


# PUBLIC_INTERFACE
@router.delete(
    "/{bot_id}",
    response_model=BotDeleteResponse,
    summary="Delete bot",
    description="Delete a bot of the acting user's company. Bots that still own files cannot be deleted.",
    dependencies=[Depends(guard_subscription)],
)
async def delete_bot(
    bot_id: UUID,
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> BotDeleteResponse:
    bot = await BotService(session).delete(bot_id, user.company_id)
    return BotDeleteResponse(message="Bot deleted successfully", data=BotRead.model_validate(bot))
