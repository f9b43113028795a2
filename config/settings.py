"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )
    supabase_jwt_secret: Optional[str] = Field(
        None,
        description="Supabase JWT secret used to verify caller tokens"
    )

    # ===================
    # API SECURITY
    # ===================
    api_key: Optional[str] = Field(
        None,
        description="Service API key (callers using it act as administrator)"
    )

    # ===================
    # STAGING
    # ===================
    staging_insert_batch_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Staged rows inserted per request when replacing a supplier's preview"
    )

    # ===================
    # COMMIT
    # ===================
    commit_batch_size_default: int = Field(
        default=50,
        ge=10,
        le=200,
        description="Staged rows committed per page when the caller gives no batch size"
    )
    commit_batch_size_min: int = Field(
        default=10,
        ge=1,
        description="Smallest accepted commit page size"
    )
    commit_batch_size_max: int = Field(
        default=200,
        ge=1,
        description="Largest accepted commit page size"
    )
    commit_page_pause_seconds: float = Field(
        default=0.1,
        ge=0,
        le=5,
        description="Pause between commit pages to spare the connection pool"
    )
    require_product_image: bool = Field(
        default=False,
        description="Fail commit of staged rows that carry no image"
    )

    # ===================
    # UPLOADS
    # ===================
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum spreadsheet size in MB"
    )
    max_image_size_mb: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum image size in MB"
    )
    max_images_per_request: int = Field(
        default=5,
        ge=1,
        le=10,
        description="Maximum images accepted by one multi-image upload"
    )
    image_bucket: str = Field(
        default="product-images",
        description="Supabase Storage bucket for product images"
    )
    preview_image_folder: str = Field(
        default="preview-products",
        description="Folder inside the bucket for images attached to staged rows"
    )

    # ===================
    # TEMPLATE
    # ===================
    template_validation_rows: int = Field(
        default=1000,
        ge=10,
        le=100000,
        description="Last spreadsheet row covered by the template's inline constraints"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def max_image_size_bytes(self) -> int:
        return self.max_image_size_mb * 1024 * 1024


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
