"""Company usage reports, assembled as plain data and as pandas DataFrames for export."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict
from uuid import UUID

import pandas as pd
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.db.models.company import DEFAULT_STORAGE_LIMIT_BYTES
from knowledge_bot.repositories.accounts import AccountRepository
from knowledge_bot.repositories.companies import CompanyRepository
from knowledge_bot.repositories.files import FileRepository
from knowledge_bot.services.base import BaseService, NotFoundError

REPORT_FILE_LIMIT = 10000

FILE_COLUMNS = ["File ID", "File Name", "Size (bytes)", "MIME Type", "Uploaded At", "Uploaded By"]


def _iso(value) -> str | None:
    return value.isoformat() if value else None


class UsageReportService(BaseService):
    """Builds the per-company usage report offered as JSON, CSV, XLSX or PDF."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.companies = CompanyRepository(session)
        self.accounts = AccountRepository(session)
        self.files = FileRepository(session)

    async def build(self, company_id: UUID) -> Dict[str, Any]:
        company = await self.companies.get_by_id(company_id)
        if company is None:
            raise NotFoundError("Company not found")

        files = await self.files.list_for_company(company_id, limit=REPORT_FILE_LIMIT)
        user_count = await self.accounts.count_users_for_company(company_id)
        total = sum(f.size or 0 for f in files)
        return {
            "company": {"id": str(company.id), "name": company.name, "createdAt": _iso(company.created_at)},
            "subscription": {
                "status": company.subscription_status or "trial",
                "planLevel": company.plan_level or "starter",
                "currentPeriodStart": _iso(company.current_period_start),
                "currentPeriodEnd": _iso(company.current_period_end),
            },
            "usage": {
                "storageUsed": company.storage_used_bytes or 0,
                "storageLimit": company.storage_limit_bytes or DEFAULT_STORAGE_LIMIT_BYTES,
                "userCount": user_count,
                "fileCount": len(files),
                "averageFileSize": round(total / len(files)) if files else 0,
            },
            "files": [
                {
                    "id": str(f.id),
                    "name": f.name,
                    "size": f.size or 0,
                    "mimeType": f.mime,
                    "uploadedAt": _iso(f.created_at),
                    "uploadedBy": str(f.user_id) if f.user_id else "Unknown",
                }
                for f in files
            ],
            "generatedAt": datetime.now(tz=timezone.utc).isoformat(),
        }


def summary_frame(report: Dict[str, Any]) -> pd.DataFrame:
    rows = [
        ("Company ID", report["company"]["id"]),
        ("Company Name", report["company"]["name"]),
        ("Created At", report["company"]["createdAt"]),
        ("Subscription Status", report["subscription"]["status"]),
        ("Plan Level", report["subscription"]["planLevel"]),
        ("Storage Used (bytes)", report["usage"]["storageUsed"]),
        ("Storage Limit (bytes)", report["usage"]["storageLimit"]),
        ("User Count", report["usage"]["userCount"]),
        ("File Count", report["usage"]["fileCount"]),
        ("Average File Size (bytes)", report["usage"]["averageFileSize"]),
    ]
    return pd.DataFrame(rows, columns=["Metric", "Value"])


def files_frame(report: Dict[str, Any]) -> pd.DataFrame:
    rows = [
        [f["id"], f["name"], f["size"], f["mimeType"], f["uploadedAt"], f["uploadedBy"]]
        for f in report["files"]
    ]
    return pd.DataFrame(rows, columns=FILE_COLUMNS)
