from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.core.deps import get_company_user
from knowledge_bot.db.session import get_async_session
from knowledge_bot.repositories.companies import CompanyRepository
from knowledge_bot.schemas.company import (
    CompanyRead,
    CompanySearchResponse,
    CompanySummary,
    CompanyUniqueResponse,
)
from knowledge_bot.services.base import NotFoundError
from knowledge_bot.services.companies import CompanyService

router = APIRouter(prefix="/companies", tags=["Companies"])


# PUBLIC_INTERFACE
@router.get(
    "/validate-unique",
    response_model=CompanyUniqueResponse,
    summary="Check company name availability",
    description="Public check used by registration. Names are trimmed and compared case-insensitively.",
)
async def validate_unique(
    name: Optional[str] = Query(None, description="Company name to check"),
    session: AsyncSession = Depends(get_async_session),
) -> CompanyUniqueResponse:
    result = await CompanyService(session).validate_unique(name)
    return CompanyUniqueResponse(**result)


# PUBLIC_INTERFACE
@router.get(
    "/search",
    response_model=CompanySearchResponse,
    summary="Search companies by name",
    description="Public lookup used by registration; queries shorter than two characters return nothing.",
)
async def search_companies(
    q: Optional[str] = Query(None, description="Name fragment"),
    session: AsyncSession = Depends(get_async_session),
) -> CompanySearchResponse:
    companies = await CompanyService(session).search(q)
    return CompanySearchResponse(data=[CompanySummary.model_validate(c) for c in companies])


# PUBLIC_INTERFACE
@router.get(
    "/me",
    response_model=CompanyRead,
    summary="Current company",
    description="Return the company of the acting user.",
)
async def read_my_company(
    user=Depends(get_company_user),
    session: AsyncSession = Depends(get_async_session),
) -> CompanyRead:
    company = await CompanyRepository(session).get_by_id(user.company_id)
    if company is None:
        raise NotFoundError("Company not found")
    return CompanyRead.model_validate(company)
