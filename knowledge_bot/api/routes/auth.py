from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_bot.core.deps import get_current_user
from knowledge_bot.core.security import create_access_token, create_admin_token
from knowledge_bot.db.session import get_async_session
from knowledge_bot.schemas.auth import (
    AdminLoginRequest,
    AssignBotRequest,
    RegisterRequest,
    TokenResponse,
    UserRead,
)
from knowledge_bot.services.accounts import AccountService

router = APIRouter(prefix="/auth", tags=["Auth"])


def _issue_token(user) -> TokenResponse:
    access = create_access_token(
        subject=str(user.id),
        company_id=str(user.company_id) if user.company_id else None,
        roles=[user.role],
    )
    return TokenResponse(access_token=access)


# PUBLIC_INTERFACE
@router.post(
    "/register",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Register user",
    description=(
        "Create a user in an existing company (company_id) or in a new company (company_name). "
        "A matching admin-panel account is created as well."
    ),
)
async def register_user(
    payload: RegisterRequest,
    session: AsyncSession = Depends(get_async_session),
) -> UserRead:
    """Register a new user and return its profile."""
    user = await AccountService(session).register(
        email=payload.email,
        password=payload.password,
        username=payload.username,
        company_id=payload.company_id,
        company_name=payload.company_name,
        firstname=payload.firstname,
        lastname=payload.lastname,
    )
    return UserRead.model_validate(user)


# PUBLIC_INTERFACE
@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login",
    description="Authenticate using OAuth2 password form (username = email) and receive an access token.",
)
async def login_for_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: AsyncSession = Depends(get_async_session),
) -> TokenResponse:
    """Authenticate a user and issue an access token."""
    user = await AccountService(session).authenticate(form_data.username, form_data.password)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=400, detail="User is inactive")
    return _issue_token(user)


# PUBLIC_INTERFACE
@router.post(
    "/admin/login",
    response_model=TokenResponse,
    summary="Admin-panel login",
    description="Authenticate an admin-panel account and receive an admin token accepted by bot management and uploads.",
)
async def admin_login(
    payload: AdminLoginRequest,
    session: AsyncSession = Depends(get_async_session),
) -> TokenResponse:
    admin = await AccountService(session).authenticate_admin(payload.email, payload.password)
    if admin is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return TokenResponse(access_token=create_admin_token(str(admin.id)))


# PUBLIC_INTERFACE
@router.get(
    "/me",
    response_model=UserRead,
    summary="Read current user",
    description="Return the acting user resolved from an application or admin-panel token.",
)
async def read_current_user(user=Depends(get_current_user)) -> UserRead:
    return UserRead.model_validate(user)


# PUBLIC_INTERFACE
@router.put(
    "/me/bot",
    response_model=UserRead,
    summary="Assign bot to current user",
    description="Attach the current user to one of its company's bots and regenerate the widget instructions.",
)
async def assign_bot(
    payload: AssignBotRequest,
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
) -> UserRead:
    updated = await AccountService(session).assign_bot(user, payload.bot_id)
    return UserRead.model_validate(updated)
