"""
Configuration and settings for the preschool API.
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from preschool_common.constants import DEFAULT_ADMIN_EMAILS


class Settings(BaseSettings):
    """Environment-backed settings (``PRESCHOOL_*``) for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_prefix="PRESCHOOL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Firebase (Firestore, Storage, Auth)
    firebase_project_id: Optional[str] = Field(default=None)
    firebase_credentials_path: Optional[str] = Field(default=None)
    firebase_storage_bucket: Optional[str] = Field(default=None)

    # Self-hosted document store (SQLAlchemy URL, Postgres or SQLite)
    database_url: Optional[str] = Field(default=None)

    # S3-compatible storage
    s3_bucket: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_endpoint: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    signed_url_expires_in: int = Field(default=3600)

    admin_emails: List[str] = Field(default_factory=lambda: list(DEFAULT_ADMIN_EMAILS))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
