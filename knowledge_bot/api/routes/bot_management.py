from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.api.guards import guard_subscription
from knowledge_bot.core.deps import COMPANY_ASSIGNMENT_REQUIRED, require_company_user
from knowledge_bot.db.session import get_async_session
from knowledge_bot.schemas.bot import (
    BotCreate,
    BotDeleteResponse,
    BotDetails,
    BotDetailsResponse,
    BotListResponse,
    BotRead,
    BotResponse,
    BotUpdate,
    UploadTarget,
    UploadTargetsResponse,
)
from knowledge_bot.schemas.common import ListMeta
from knowledge_bot.services.bots import BotService

router = APIRouter(prefix="/bot-management", tags=["Bot Management"])

# Accepts application tokens and admin-panel tokens
get_managing_user = require_company_user(COMPANY_ASSIGNMENT_REQUIRED)


# PUBLIC_INTERFACE
@router.get(
    "/list",
    response_model=BotListResponse,
    summary="List company bots",
)
async def list_company_bots(
    user=Depends(get_managing_user),
    session: AsyncSession = Depends(get_async_session),
) -> BotListResponse:
    bots = await BotService(session).list_for_company(user.company_id)
    return BotListResponse(data=[BotRead.model_validate(b) for b in bots], meta=ListMeta(total=len(bots)))


# PUBLIC_INTERFACE
@router.get(
    "/upload-bots",
    response_model=UploadTargetsResponse,
    summary="Bots available as upload targets",
    description="Published bots of the company sorted by name, with their upload folder paths.",
)
async def list_upload_bots(
    user=Depends(get_managing_user),
    session: AsyncSession = Depends(get_async_session),
) -> UploadTargetsResponse:
    targets = await BotService(session).upload_targets(user.company_id)
    return UploadTargetsResponse(
        data=[UploadTarget(**t) for t in targets], meta=ListMeta(total=len(targets))
    )


# PUBLIC_INTERFACE
@router.post(
    "/create",
    response_model=BotResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create bot",
    dependencies=[Depends(guard_subscription)],
)
async def create_company_bot(
    payload: BotCreate,
    user=Depends(get_managing_user),
    session: AsyncSession = Depends(get_async_session),
) -> BotResponse:
    bot = await BotService(session).create(user.company_id, payload.model_dump(exclude_unset=True))
    return BotResponse(data=BotRead.model_validate(bot))


# PUBLIC_INTERFACE
@router.get(
    "/{bot_id}",
    response_model=BotDetailsResponse,
    summary="Bot details",
    description="Bot with the number and total size of its non-deleted files.",
)
async def get_bot_details(
    bot_id: UUID,
    user=Depends(get_managing_user),
    session: AsyncSession = Depends(get_async_session),
) -> BotDetailsResponse:
    details = await BotService(session).details(bot_id, user.company_id)
    base = BotRead.model_validate(details["bot"]).model_dump()
    return BotDetailsResponse(
        data=BotDetails(**base, file_count=details["file_count"], total_file_size=details["total_file_size"])
    )


# PUBLIC_INTERFACE
@router.put(
    "/{bot_id}",
    response_model=BotResponse,
    summary="Update bot",
    dependencies=[Depends(guard_subscription)],
)
async def update_company_bot(
    bot_id: UUID,
    payload: BotUpdate,
    user=Depends(get_managing_user),
    session: AsyncSession = Depends(get_async_session),
) -> BotResponse:
    bot = await BotService(session).update(bot_id, user.company_id, payload.model_dump(exclude_unset=True))
    return BotResponse(data=BotRead.model_validate(bot))


# PUBLIC_INTERFACE
@router.delete(
    "/{bot_id}",
    response_model=BotDeleteResponse,
    summary="Delete bot",
    dependencies=[Depends(guard_subscription)],
)
async def delete_company_bot(
    bot_id: UUID,
    user=Depends(get_managing_user),
    session: AsyncSession = Depends(get_async_session),
) -> BotDeleteResponse:
    bot = await BotService(session).delete(bot_id, user.company_id)
    return BotDeleteResponse(message="Bot deleted successfully", data=BotRead.model_validate(bot))
