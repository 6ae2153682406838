from __future__ import annotations

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Application-level settings for the FastAPI service.

    This is separate from knowledge_bot.db.config.Settings, which focuses on the database layer.
    """

    # FastAPI metadata
    APP_NAME: str = Field(default="Knowledge Bot API")
    APP_DESCRIPTION: str = Field(
        default=(
            "Backend API for a multi-tenant knowledge bot platform. "
            "Manages companies, bots, document uploads, notification preferences and subscriptions."
        )
    )
    APP_VERSION: str = Field(default="0.1.0")

    # CORS
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Comma-separated list or JSON array of allowed origins. Default: *",
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True)
    CORS_ALLOW_METHODS: List[str] = Field(default_factory=lambda: ["*"])
    CORS_ALLOW_HEADERS: List[str] = Field(default_factory=lambda: ["*"])

    # Startup behavior
    RUN_MIGRATIONS_ON_STARTUP: bool = Field(
        default=True,
        description="If true, run Alembic migrations (upgrade head) at app startup.",
    )
    AUTO_SEED: bool = Field(
        default=False,
        description="If true, seed a demo company, accounts and bot after migrations.",
    )
    ENABLE_DEBUG_ROUTES: bool = Field(
        default=False,
        description="Mount the /debug diagnostic routes.",
    )

    # Application tokens
    JWT_SECRET_KEY: str = Field(default="change-me", description="Secret for application access tokens")
    JWT_ALGORITHM: str = Field(default="HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60 * 24 * 7)

    # Admin panel tokens are verified, never issued by this secret outside /admin/login
    ADMIN_JWT_SECRET: str = Field(default="change-me-admin", description="Secret used by the admin panel")
    ADMIN_TOKEN_EXPIRE_MINUTES: int = Field(default=60 * 8)

    # Chat widget
    WIDGET_JWT_SECRET: str = Field(
        default="my-ultra-secure-signing-key",
        description="Secret used to sign widget tokens embedded in script tags",
    )
    WIDGET_SCRIPT_URL: str = Field(default="https://widget.knowledgebot.app/widget.js")

    # S3 compatible object storage
    AWS_ACCESS_KEY_ID: Optional[str] = Field(default=None)
    AWS_ACCESS_SECRET: Optional[str] = Field(default=None)
    AWS_REGION: str = Field(default="us-east-1")
    AWS_BUCKET_NAME: str = Field(default="knowledge-bot-uploads")
    S3_ENDPOINT_URL: Optional[str] = Field(
        default=None, description="Custom endpoint for MinIO or other S3 compatible stores"
    )
    S3_PUBLIC_URL: Optional[str] = Field(
        default=None, description="Base URL used to build public file URLs"
    )

    # Billing
    STRIPE_SECRET_KEY: Optional[str] = Field(
        default=None, description="Stripe API key; checkout, portal and subscription changes need it"
    )
    STRIPE_WEBHOOK_SECRET: Optional[str] = Field(default=None)
    STRIPE_STARTER_PRICE_ID: Optional[str] = Field(default=None)
    STRIPE_PROFESSIONAL_PRICE_ID: Optional[str] = Field(default=None)
    STRIPE_ENTERPRISE_PRICE_ID: Optional[str] = Field(default=None)
    BILLING_BUSINESS_UNIT: str = Field(default="knowledge-bot")
    FRONTEND_URL: str = Field(default="http://localhost:3000")

    # Environment label
    ENVIRONMENT: Optional[str] = Field(
        default=None, description="Environment label (dev/test/prod)"
    )

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        """
        Accept both JSON array format and comma-separated formats for CORS origins.
        """
        if v is None:
            return ["*"]
        if isinstance(v, str):
            parts = [p.strip() for p in v.split(",") if p.strip()]
            return parts or ["*"]
        if isinstance(v, list):
            return v or ["*"]
        return ["*"]


# PUBLIC_INTERFACE
def get_app_settings() -> AppSettings:
    """Return a new AppSettings instance populated from environment variables."""
    return AppSettings()
