from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.core.deps import get_company_user
from knowledge_bot.db.models import File
from knowledge_bot.db.session import get_async_session
from knowledge_bot.schemas.bot import BotCreate
from knowledge_bot.services.bots import BotService

router = APIRouter(prefix="/debug", tags=["Debug"])


# PUBLIC_INTERFACE
@router.get(
    "/content-type",
    response_model=Dict[str, Any],
    summary="Describe the file table",
    description="Columns of the file table with their types and nullability.",
)
async def describe_file_schema(user=Depends(get_company_user)) -> Dict[str, Any]:
    table = File.__table__
    return {
        "table": table.name,
        "attributes": {
            column.name: {"type": str(column.type), "nullable": bool(column.nullable)} for column in table.columns
        },
    }


# PUBLIC_INTERFACE
@router.post(
    "/test-bot-lifecycle",
    response_model=Dict[str, Any],
    summary="Exercise bot creation",
    description="Create a bot and report whether its widget token, instructions and folder were generated.",
)
async def test_bot_lifecycle(
    payload: BotCreate,
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    bot = await BotService(session).create(user.company_id, payload.model_dump(exclude_unset=True))
    return {
        "botId": str(bot.id),
        "hasJwtToken": bool(bot.jwt_token),
        "hasInstructions": bool(bot.instructions),
        "hasFolder": bool(bot.folder_path),
        "folderPath": bot.folder_path,
    }
