"""
Configuration for the portfolio API.

Values come from the environment (or a local .env file). Backends whose
credentials are missing fall back to in-memory implementations.
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_JWT_SECRET = "dev_secret_change_me"


class Settings(BaseSettings):
    """Environment-backed settings for the portfolio service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # MongoDB
    database_url: Optional[str] = Field(default=None)
    database_name: str = Field(default="PORTFOLIO")

    # S3-compatible media host
    s3_bucket: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_endpoint: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    asset_public_base_url: Optional[str] = Field(default=None)

    # Sessions
    jwt_secret: str = Field(default=DEFAULT_JWT_SECRET)
    jwt_expire_days: int = Field(default=7)
    cookie_secure: bool = Field(default=False)

    # Outbound mail
    smtp_host: Optional[str] = Field(default=None)
    smtp_port: int = Field(default=587)
    smtp_user: Optional[str] = Field(default=None)
    smtp_password: Optional[str] = Field(default=None)
    smtp_from: Optional[str] = Field(default=None)

    dashboard_url: str = Field(default="http://localhost:5173")
    portfolio_owner_email: Optional[str] = Field(default=None)
    reset_token_expire_minutes: int = Field(default=15)

    # "production" refuses to start without a database and a real JWT secret
    environment: str = Field(default="development")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    use_in_memory_backends: bool = Field(default=False)
    log_level: str = Field(default="INFO")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
