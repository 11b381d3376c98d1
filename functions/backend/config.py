"""
Configuration and settings for the photo service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.constants import MAX_UPLOAD_BYTES


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Document store: Firestore when a project is set, else SQLAlchemy URL.
    database_url: Optional[str] = Field(default=None)

    # Firebase (Firestore, Auth, Storage)
    firebase_project_id: Optional[str] = Field(default=None)
    firebase_storage_bucket: Optional[str] = Field(default=None)
    firebase_credentials_path: Optional[str] = Field(default=None)

    # S3-compatible storage (Tencent COS)
    cos_endpoint: Optional[str] = Field(default=None)
    cos_region: Optional[str] = Field(default=None)
    cos_bucket: Optional[str] = Field(default=None)
    cos_public_base_url: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # Session locks (Redis)
    redis_url: Optional[str] = Field(default=None)
    redis_lock_prefix: str = Field(default="famileezy:lock:")

    # Photo pipeline
    photo_max_width: int = Field(default=512, gt=0)
    photo_max_height: int = Field(default=512, gt=0)
    photo_quality: float = Field(default=0.85, ge=0.0, le=1.0)
    photo_output_format: str = Field(default="jpeg", pattern="^(jpeg|png|webp)$")
    crop_aspect: float = Field(default=1.0, gt=0.0)
    crop_initial_percent: float = Field(default=90.0, gt=0.0, le=100.0)
    crop_min_zoom: float = Field(default=0.5, gt=0.0)
    crop_max_zoom: float = Field(default=3.0, gt=0.0)
    photo_session_ttl_seconds: int = Field(default=900, gt=0)
    # 0 disables the background sweep; sessions still expire when touched.
    photo_session_sweep_interval_seconds: float = Field(default=60.0, ge=0.0)
    max_upload_bytes: int = Field(default=MAX_UPLOAD_BYTES, gt=0)
    notification_buffer_size: int = Field(default=100, gt=0)

    @model_validator(mode="after")
    def _check_zoom_bounds(self) -> Settings:
        if self.crop_max_zoom < self.crop_min_zoom:
            raise ValueError(
                f"crop_max_zoom ({self.crop_max_zoom}) must not be below "
                f"crop_min_zoom ({self.crop_min_zoom})"
            )
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
