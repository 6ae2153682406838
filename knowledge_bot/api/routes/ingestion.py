from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.core.deps import get_company_user
from knowledge_bot.db.session import get_async_session
from knowledge_bot.schemas.common import MessageResponse
from knowledge_bot.schemas.ingestion import BatchLookupRequest, UpdateUserPreferencesRequest
from knowledge_bot.services.ingestion import IngestionService

router = APIRouter(prefix="/file-ingestion", tags=["File Ingestion"])


def _scoped_company(requested: Optional[UUID], user) -> UUID:
    """The caller's company; naming another company is refused."""
    if requested is not None and requested != user.company_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this company")
    return user.company_id


# PUBLIC_INTERFACE
@router.get(
    "/users/{user_id}/email",
    response_model=Dict[str, Any],
    summary="User email lookup",
)
async def get_user_email(
    user_id: UUID,
    companyId: Optional[UUID] = Query(None, description="Company the user must belong to"),
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    company_id = _scoped_company(companyId, user)
    return {"data": await IngestionService(session).get_user_email(user_id, company_id)}


# PUBLIC_INTERFACE
@router.get(
    "/users/{user_id}/preferences",
    response_model=Dict[str, Any],
    summary="User notification preferences for ingestion",
    description="Email and notification settings of a user for one bot; 403 when the user is not in the company.",
)
async def get_user_preferences(
    user_id: UUID,
    botId: UUID = Query(..., description="Bot the notifications are about"),
    companyId: Optional[UUID] = Query(None),
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    company_id = _scoped_company(companyId, user)
    return {"data": await IngestionService(session).get_user_preferences(user_id, company_id, botId)}


# PUBLIC_INTERFACE
@router.put(
    "/users/{user_id}/preferences",
    response_model=MessageResponse,
    summary="Update user notification preferences",
)
async def update_user_preferences(
    user_id: UUID,
    payload: UpdateUserPreferencesRequest,
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> MessageResponse:
    company_id = _scoped_company(payload.companyId, user)
    await IngestionService(session).update_user_preferences(
        user_id, company_id, payload.preferences.model_dump(exclude_unset=True)
    )
    return MessageResponse(message="Preferences updated successfully")


# PUBLIC_INTERFACE
@router.post(
    "/users/batch-lookup",
    response_model=Dict[str, Any],
    summary="Batch user lookup",
    description="Emails (and optionally preferences) for several users of one company.",
)
async def batch_user_lookup(
    payload: BatchLookupRequest,
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    company_id = _scoped_company(payload.companyId, user)
    result = await IngestionService(session).batch_user_lookup(
        payload.userIds, company_id, include_preferences=payload.includePreferences
    )
    return {"data": result}


# PUBLIC_INTERFACE
@router.get(
    "/files/{file_id}/status",
    response_model=Dict[str, Any],
    summary="File processing status",
)
async def get_file_status(
    file_id: UUID,
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    return {"data": await IngestionService(session).get_file_status(file_id, user.company_id)}


# PUBLIC_INTERFACE
@router.post(
    "/files/{file_id}/retry",
    response_model=Dict[str, Any],
    summary="Retry file processing",
    description="Queue a retry event for the file.",
)
async def retry_file_processing(
    file_id: UUID,
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    return {"data": await IngestionService(session).retry_file_processing(file_id, user.company_id)}


# PUBLIC_INTERFACE
@router.get(
    "/batches/{batch_id}/status",
    response_model=Dict[str, Any],
    summary="Upload batch status",
)
async def get_batch_status(
    batch_id: str,
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    return {"data": await IngestionService(session).get_batch_status(batch_id, user.company_id)}


# PUBLIC_INTERFACE
@router.get(
    "/stats/processing",
    response_model=Dict[str, Any],
    summary="Processing statistics",
    description="Event counts, file types and timing for a bot over 1h, 24h, 7d or 30d.",
)
async def get_processing_stats(
    botId: UUID = Query(..., description="Bot ID"),
    timeRange: str = Query("24h", description="1h | 24h | 7d | 30d"),
    companyId: Optional[UUID] = Query(None),
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    company_id = _scoped_company(companyId, user)
    return {"data": await IngestionService(session).get_processing_stats(company_id, botId, timeRange)}
