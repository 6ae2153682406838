from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.core.logging import bind_company
from knowledge_bot.db.session import get_async_session
from knowledge_bot.services.identity import IdentityService

logger = logging.getLogger(__name__)

# auto_error is off so routes can report their own 401 message
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)

COMPANY_REQUIRED = "User must be associated with a company"
COMPANY_ASSIGNMENT_REQUIRED = "User must be assigned to a company"


# PUBLIC_INTERFACE
async def get_optional_user(
    token: Optional[str] = Depends(oauth2_scheme),
    session: AsyncSession = Depends(get_async_session),
):
    """
    Resolve the acting user from an application or admin-panel bearer token.

    Returns:
        User | None: None when no token is sent or no identity resolves.
    """
    user = await IdentityService(session).resolve_acting_user(token)
    if user is not None:
        bind_company(user.company_id)
    return user


# PUBLIC_INTERFACE
async def get_current_user(user=Depends(get_optional_user)):
    """
    Require an acting user.

    Raises:
        HTTPException: 401 when no identity resolves.
    """
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user


# PUBLIC_INTERFACE
def require_company_user(detail: str = COMPANY_REQUIRED):
    """
    Create a dependency returning the acting user only when it belongs to a company.

    Raises:
        HTTPException: 401 without identity, 400 with `detail` when the user has no company.
    """

    async def _dep(user=Depends(get_current_user)):
        if user.company_id is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
        return user

    return _dep


get_company_user = require_company_user()


# PUBLIC_INTERFACE
def require_roles(*required: str):
    """Create a dependency that requires the acting user to hold one of the given roles."""

    async def _dep(user=Depends(get_current_user)):
        if user.role not in set(required):
            logger.info("User %s with role %s denied; requires one of %s", user.id, user.role, required)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
        return user

    return _dep
