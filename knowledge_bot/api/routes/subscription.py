from __future__ import annotations

import io
from datetime import datetime, timezone
from typing import Any, Dict, List
from uuid import UUID

import pandas as pd
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.core.deps import get_company_user, require_roles
from knowledge_bot.db.session import get_async_session
from knowledge_bot.schemas.common import MessageResponse
from knowledge_bot.schemas.subscription import (
    ClearCacheRequest,
    StorageCheckRequest,
    ValidateBatchRequest,
    ValidateDailyRequest,
)
from knowledge_bot.services.base import ServiceError
from knowledge_bot.services.reports import UsageReportService, files_frame, summary_frame
from knowledge_bot.services.subscription import SubscriptionService, get_features, validation_cache

router = APIRouter(prefix="/subscription", tags=["Subscription"])

REPORT_FORMATS = ("csv", "json", "xlsx", "pdf")


def _export_frames(frames: Dict[str, pd.DataFrame], filename_base: str, export_format: str) -> StreamingResponse:
    """
    Render titled DataFrames in the requested format and return a StreamingResponse.

    Supported formats:
      - csv: sections separated by a blank line, each preceded by its title
      - xlsx: one sheet per section (openpyxl)
      - pdf: one table per section (reportlab)
    """
    if export_format == "xlsx":
        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            for title, df in frames.items():
                df.to_excel(writer, index=False, sheet_name=title[:31])
        buffer.seek(0)
        headers = {"Content-Disposition": f'attachment; filename="{filename_base}.xlsx"'}
        return StreamingResponse(
            buffer,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers=headers,
        )

    if export_format == "pdf":
        from reportlab.lib import colors
        from reportlab.lib.pagesizes import landscape, letter
        from reportlab.lib.styles import getSampleStyleSheet
        from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer, pagesize=landscape(letter), leftMargin=18, rightMargin=18, topMargin=18, bottomMargin=18
        )
        styles = getSampleStyleSheet()
        stamp = datetime.now(tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
        elements: list = [Paragraph(f"Usage Report ({stamp})", styles["Title"])]
        for title, df in frames.items():
            elements.append(Paragraph(title, styles["Heading2"]))
            table = Table([list(df.columns)] + df.astype(str).values.tolist(), repeatRows=1)
            table.setStyle(
                TableStyle(
                    [
                        ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
                        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                        ("FONTSIZE", (0, 0), (-1, -1), 8),
                        ("ALIGN", (0, 0), (-1, -1), "LEFT"),
                        ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
                    ]
                )
            )
            elements.extend([table, Spacer(1, 12)])
        doc.build(elements)
        buffer.seek(0)
        headers = {"Content-Disposition": f'attachment; filename="{filename_base}.pdf"'}
        return StreamingResponse(buffer, media_type="application/pdf", headers=headers)

    text = io.StringIO()
    for title, df in frames.items():
        text.write(f"{title}\n")
        df.to_csv(text, index=False)
        text.write("\n")
    text.seek(0)
    headers = {"Content-Disposition": f'attachment; filename="{filename_base}.csv"'}
    return StreamingResponse(text, media_type="text/csv", headers=headers)


# PUBLIC_INTERFACE
@router.post(
    "/validate-daily",
    response_model=Dict[str, Any],
    summary="Daily subscription validation",
    description="Validate a (company, bot) pair. Results are cached for 24 hours; the response reports cache usage.",
)
async def validate_daily(
    payload: ValidateDailyRequest,
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    return await SubscriptionService(session).validate_daily(payload.companyId, payload.botId)


# PUBLIC_INTERFACE
@router.post(
    "/validate-batch",
    response_model=Dict[str, Any],
    summary="Batch subscription validation",
    description="Validate several (company, bot) pairs; a failing pair is reported without failing the batch.",
)
async def validate_batch(
    payload: ValidateBatchRequest,
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    service = SubscriptionService(session)
    results: List[Dict[str, Any]] = []
    for item in payload.validations:
        try:
            results.append(await service.validate_daily(item.companyId, item.botId))
        except ServiceError as exc:
            results.append(
                {"companyId": str(item.companyId), "botId": str(item.botId), "isValid": False, "error": exc.message}
            )
    return {"validations": results}


# PUBLIC_INTERFACE
@router.get(
    "/cache-stats",
    response_model=Dict[str, Any],
    summary="Validation cache statistics",
    dependencies=[Depends(require_roles("admin", "super_admin"))],
)
async def cache_stats() -> Dict[str, Any]:
    entries = validation_cache.ages()
    return {
        "cacheSize": len(validation_cache),
        "cacheKeys": [key for key, _, _ in entries],
        "cacheAges": [{"key": key, "age": int(age * 1000), "valid": valid} for key, age, valid in entries],
    }


# PUBLIC_INTERFACE
@router.post(
    "/clear-cache",
    response_model=MessageResponse,
    summary="Clear validation cache",
    description="Clear one (company, bot) entry when both ids are given, otherwise the whole cache.",
    dependencies=[Depends(require_roles("admin", "super_admin"))],
)
async def clear_cache(payload: ClearCacheRequest) -> MessageResponse:
    if payload.companyId and payload.botId:
        key = f"{payload.companyId}-{payload.botId}"
        validation_cache.delete(key)
        return MessageResponse(message=f"Cache cleared for {key}")
    validation_cache.clear()
    return MessageResponse(message="Entire cache cleared")


# PUBLIC_INTERFACE
@router.get(
    "/validate-access",
    response_model=Dict[str, Any],
    summary="Validate bot access",
    description="Check that the acting user may use the bot under the company's current subscription.",
)
async def validate_access(
    botId: UUID = Query(..., description="Bot ID"),
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    return await SubscriptionService(session).validate_access(user.id, user.company_id, botId)


# PUBLIC_INTERFACE
@router.post(
    "/check-storage",
    response_model=Dict[str, Any],
    summary="Check storage quota",
    description="Project the company's usage after adding `fileSize` bytes.",
)
async def check_storage(
    payload: StorageCheckRequest,
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    return await SubscriptionService(session).check_storage_limit(user.company_id, payload.fileSize)


# PUBLIC_INTERFACE
@router.get(
    "/features",
    response_model=Dict[str, Any],
    summary="Plan features",
)
async def plan_features(user=Depends(get_company_user)) -> Dict[str, Any]:
    plan = user.company.plan_level if user.company is not None else "starter"
    return {"planLevel": plan, "features": get_features(plan)}


# PUBLIC_INTERFACE
@router.get(
    "/dashboard-usage",
    response_model=Dict[str, Any],
    summary="Dashboard usage widget",
)
async def dashboard_usage(
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    return {"data": await SubscriptionService(session).dashboard_usage(user.company_id)}


# PUBLIC_INTERFACE
@router.get(
    "/usage-report",
    summary="Usage report",
    description="Company usage report with per-file detail.",
    response_description="JSON or file stream (CSV/XLSX/PDF)",
)
async def usage_report(
    format: str = Query("csv", description="Export format: csv | json | xlsx | pdf"),
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
):
    export_format = (format or "csv").lower()
    if export_format not in REPORT_FORMATS:
        raise HTTPException(status_code=400, detail=f"Unsupported format; use one of {', '.join(REPORT_FORMATS)}")
    report = await UsageReportService(session).build(user.company_id)
    if export_format == "json":
        return JSONResponse(content={"data": report})
    day = datetime.now(tz=timezone.utc).strftime("%Y-%m-%d")
    frames = {"Company Report": summary_frame(report), "Files Detail": files_frame(report)}
    return _export_frames(frames, f"usage-report-{user.company_id}-{day}", export_format)


# PUBLIC_INTERFACE
@router.get(
    "/analytics",
    response_model=Dict[str, Any],
    summary="Usage analytics",
    description="Uploads and file-type breakdown over 7d, 30d or 90d.",
)
async def analytics(
    period: str = Query("30d", description="7d | 30d | 90d"),
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> Dict[str, Any]:
    return {"data": await SubscriptionService(session).get_analytics(user.company_id, period)}
