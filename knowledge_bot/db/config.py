from __future__ import annotations

import re
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Database configuration read from environment variables (or .env via pydantic-settings).

    Either DATABASE_URL or the individual variables are used:
      - DATABASE_HOST
      - DATABASE_PORT
      - DATABASE_NAME
      - DATABASE_USERNAME
      - DATABASE_PASSWORD
    """

    DATABASE_URL: Optional[str] = Field(
        default=None, description="If provided, full PostgreSQL connection URL."
    )
    DATABASE_USERNAME: Optional[str] = Field(default=None, description="DB username")
    DATABASE_PASSWORD: Optional[str] = Field(default=None, description="DB password")
    DATABASE_NAME: Optional[str] = Field(default=None, description="Database name")
    DATABASE_PORT: Optional[int] = Field(default=5432, description="Database port (default 5432)")
    DATABASE_HOST: Optional[str] = Field(
        default="localhost", description="Database host (default localhost)"
    )

    # SQLAlchemy engine options
    SQL_ECHO: bool = Field(
        default=False, description="Echo SQL statements for debugging (default False)"
    )

    ENVIRONMENT: Optional[str] = Field(
        default=None, description="Environment label (dev/test/prod)"
    )

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @property
    def database_url(self) -> str:
        """
        Compute the base database URL. Prefers DATABASE_URL, otherwise builds one
        from the individual DATABASE_* variables.
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        if not all([self.DATABASE_USERNAME, self.DATABASE_PASSWORD, self.DATABASE_NAME]):
            raise ValueError(
                "Database configuration missing. Ensure DATABASE_URL or "
                "DATABASE_USERNAME, DATABASE_PASSWORD, and DATABASE_NAME are set in the environment."
            )
        host = self.DATABASE_HOST or "localhost"
        port = self.DATABASE_PORT or 5432
        return f"postgresql://{self.DATABASE_USERNAME}:{self.DATABASE_PASSWORD}@{host}:{port}/{self.DATABASE_NAME}"

    @property
    def async_database_url(self) -> str:
        """Convert the base URL to an asyncpg SQLAlchemy URL, required for AsyncEngine."""
        url = self.database_url
        if url.startswith("postgresql+asyncpg://"):
            return url
        # Heroku style scheme
        url = re.sub(r"^postgres://", "postgresql://", url)
        return re.sub(r"^postgresql(\+\w+)?://", "postgresql+asyncpg://", url)

    @property
    def sync_database_url(self) -> str:
        """Plain postgresql:// variant used by Alembic offline mode."""
        url = re.sub(r"^postgres://", "postgresql://", self.database_url)
        return re.sub(r"^postgresql\+\w+://", "postgresql://", url)


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return a settings object for reuse across modules."""
    return Settings()
