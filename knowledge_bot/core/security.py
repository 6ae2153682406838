from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt
from passlib.context import CryptContext

from knowledge_bot.core.settings import get_app_settings

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# PUBLIC_INTERFACE
def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password using bcrypt."""
    return _pwd_context.verify(plain_password, hashed_password)


# PUBLIC_INTERFACE
def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt."""
    return _pwd_context.hash(password)


def _create_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta],
    token_type: str,
    secret: str,
    algorithm: str,
) -> str:
    to_encode = data.copy()
    now = datetime.now(tz=timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=15))
    to_encode.update({"exp": expire, "iat": now, "type": token_type})
    return jwt.encode(to_encode, secret, algorithm=algorithm)


# PUBLIC_INTERFACE
def create_access_token(
    subject: str,
    company_id: Optional[str],
    roles: list[str] | None = None,
    expires_minutes: Optional[int] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> str:
    """Create a signed application access token with subject (user id), company claim and roles."""
    settings = get_app_settings()
    exp = timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload: Dict[str, Any] = {"sub": subject, "company_id": company_id, "roles": roles or []}
    if extra:
        payload.update(extra)
    return _create_token(
        payload, exp, token_type="access", secret=settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM
    )


# PUBLIC_INTERFACE
def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate an application JWT; raises JWTError if invalid/expired."""
    settings = get_app_settings()
    return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])


# PUBLIC_INTERFACE
def create_admin_token(admin_id: str, expires_minutes: Optional[int] = None) -> str:
    """Create an admin-panel token carrying the admin account id as `id`."""
    settings = get_app_settings()
    exp = timedelta(minutes=expires_minutes or settings.ADMIN_TOKEN_EXPIRE_MINUTES)
    return _create_token(
        {"id": admin_id}, exp, token_type="admin", secret=settings.ADMIN_JWT_SECRET, algorithm="HS256"
    )


# PUBLIC_INTERFACE
def decode_admin_token(token: str) -> Dict[str, Any]:
    """Verify an admin-panel token against ADMIN_JWT_SECRET; raises JWTError if invalid."""
    settings = get_app_settings()
    return jwt.decode(token, settings.ADMIN_JWT_SECRET, algorithms=["HS256"])

