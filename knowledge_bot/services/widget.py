"""Chat widget token and embed snippet generation."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Union
from uuid import UUID

from jose import jwt

from knowledge_bot.core.settings import get_app_settings

WIDGET_ALGORITHM = "HS256"


# PUBLIC_INTERFACE
def create_widget_token(company_id: Union[str, UUID], bot_id: Union[str, UUID]) -> str:
    """
    Sign the token embedded in the widget script tag.

    The payload carries only `company_id` and `bot_id` (plus `iat`); the widget
    backend uses them to route chat sessions to the right knowledge base.
    """
    settings = get_app_settings()
    payload: Dict[str, Any] = {
        "company_id": str(company_id),
        "bot_id": str(bot_id),
        "iat": int(datetime.now(tz=timezone.utc).timestamp()),
    }
    return jwt.encode(payload, settings.WIDGET_JWT_SECRET, algorithm=WIDGET_ALGORITHM)


# PUBLIC_INTERFACE
def decode_widget_token(token: str) -> Dict[str, Any]:
    """Verify a widget token; raises jose.JWTError when the signature does not match."""
    settings = get_app_settings()
    return jwt.decode(token, settings.WIDGET_JWT_SECRET, algorithms=[WIDGET_ALGORITHM])


# PUBLIC_INTERFACE
def build_widget_instructions(token: str) -> str:
    """Return the HTML snippet customers paste into their site."""
    settings = get_app_settings()
    return (
        f'<script src="{settings.WIDGET_SCRIPT_URL}" data-token="{token}" defer></script>\n'
        "<!-- Paste this tag before the closing </body> tag of every page that should show the chat widget. -->"
    )
