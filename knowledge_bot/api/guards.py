from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from fastapi import BackgroundTasks, Depends, HTTPException, Request, status
from starlette.datastructures import UploadFile

from knowledge_bot.core.deps import get_optional_user
from knowledge_bot.db.session import session_scope
from knowledge_bot.services.subscription import SubscriptionService, evaluate_storage, is_inactive, subscription_snapshot

logger = logging.getLogger(__name__)

SUBSCRIPTION_INACTIVE = "Subscription inactive. Please update your billing information."
STORAGE_LIMIT_EXCEEDED = "Storage limit exceeded. Please upgrade your plan or delete some files."


# PUBLIC_INTERFACE
async def recalculate_storage(company_id: UUID) -> None:
    """Recompute a company's storage usage in a fresh session; failures are logged."""
    try:
        async with session_scope() as session:
            await SubscriptionService(session).calculate_storage_usage(company_id)
    except Exception:
        logger.exception("Failed to update storage usage for company %s", company_id)


async def _incoming_bytes(request: Request) -> int:
    """Total size of the multipart `files` parts; the parsed form is cached on the request."""
    form = await request.form()
    total = 0
    for part in form.getlist("files"):
        if isinstance(part, UploadFile):
            total += part.size or 0
    return total


# PUBLIC_INTERFACE
def subscription_guard(check_storage: bool = False):
    """
    Create a dependency enforcing the company subscription on state-changing routes.

    Requests without a user or company pass through. Lookup errors are logged
    and the request continues. On success the subscription summary is stored
    on ``request.state.subscription`` and a storage recalculation is scheduled
    to run after the response.

    Raises:
        HTTPException: 403 when the subscription is inactive or the upload would exceed the limit.
    """

    async def _dep(
        request: Request,
        background_tasks: BackgroundTasks,
        user=Depends(get_optional_user),
    ) -> Optional[dict]:
        if user is None or user.company_id is None:
            return None

        try:
            company = user.company
            if company is None:
                return None
            inactive = is_inactive(company)
            over_limit = False
            if check_storage and not inactive:
                over_limit = not evaluate_storage(company, await _incoming_bytes(request))["allowed"]
            snapshot = subscription_snapshot(company)
        except Exception:
            logger.exception("Subscription guard error; continuing without validation")
            return None

        if inactive:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=SUBSCRIPTION_INACTIVE)
        if over_limit:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=STORAGE_LIMIT_EXCEEDED)

        request.state.subscription = snapshot
        background_tasks.add_task(recalculate_storage, company.id)
        return snapshot

    return _dep


guard_subscription = subscription_guard()
guard_upload = subscription_guard(check_storage=True)
