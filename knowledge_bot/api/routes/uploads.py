from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.api.guards import guard_upload, recalculate_storage
from knowledge_bot.core.deps import get_company_user, get_current_user
from knowledge_bot.db.session import get_async_session
from knowledge_bot.schemas.common import ListMeta
from knowledge_bot.schemas.file import FileListResponse, FileRead, FileResponse, UploadResponse
from knowledge_bot.services.storage import ObjectStorage, get_object_storage
from knowledge_bot.services.uploads import IncomingFile, UploadService

router = APIRouter(tags=["Uploads"])


# PUBLIC_INTERFACE
@router.post(
    "/upload",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload files",
    description=(
        "Store one or more files for the acting user's company. The target bot is given by `bot` "
        "or derived from a `/bot-<id>` folder path. Accepts application and admin-panel tokens."
    ),
    dependencies=[Depends(guard_upload)],
)
async def upload_files(
    files: List[UploadFile] = File(..., description="Files to upload"),
    bot: Optional[UUID] = Form(None, description="Target bot ID"),
    folder_path: Optional[str] = Form(None, description="Target folder, e.g. /bot-<id>"),
    replace_id: Optional[UUID] = Form(None, description="File to replace"),
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
    storage: ObjectStorage = Depends(get_object_storage),
) -> UploadResponse:
    incoming = [
        IncomingFile(name=f.filename or "upload", data=await f.read(), mime=f.content_type) for f in files
    ]
    result = await UploadService(session, storage).upload(
        user, incoming, bot_id=bot, folder_path=folder_path, replace_id=replace_id
    )
    return UploadResponse(
        data=[FileRead.model_validate(r) for r in result["data"]],
        batchId=result["batchId"],
        message=result["message"],
        notification=result["notification"],
    )


# PUBLIC_INTERFACE
@router.get(
    "/files",
    response_model=FileListResponse,
    summary="List files",
    description="Non-deleted files of the acting user's company, newest first.",
)
async def list_files(
    bot_id: Optional[UUID] = Query(None, description="Filter by bot"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
    storage: ObjectStorage = Depends(get_object_storage),
) -> FileListResponse:
    records = await UploadService(session, storage).list_for_company(
        user.company_id, bot_id=bot_id, limit=limit, offset=offset
    )
    return FileListResponse(data=[FileRead.model_validate(r) for r in records], meta=ListMeta(total=len(records)))


# PUBLIC_INTERFACE
@router.get(
    "/files/{file_id}",
    response_model=FileResponse,
    summary="Get file",
)
async def get_file(
    file_id: UUID,
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
    storage: ObjectStorage = Depends(get_object_storage),
) -> FileResponse:
    record = await UploadService(session, storage).get_owned(file_id, user.company_id)
    return FileResponse(data=FileRead.model_validate(record))


# PUBLIC_INTERFACE
@router.delete(
    "/files/{file_id}",
    response_model=FileResponse,
    summary="Delete file",
    description="Record a deleted event, remove the stored object and soft-delete the file.",
)
async def delete_file(
    file_id: UUID,
    background_tasks: BackgroundTasks,
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
    storage: ObjectStorage = Depends(get_object_storage),
) -> FileResponse:
    record = await UploadService(session, storage).delete(file_id, user.company_id)
    background_tasks.add_task(recalculate_storage, user.company_id)
    return FileResponse(data=FileRead.model_validate(record))
