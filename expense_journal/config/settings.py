"""
Configuration Management for Expense Journal

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
Every setting the core needs has a default, so the camera and budget
components work without any environment configured.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from expense_journal.models.capture import FacingMode


class CameraSettings(BaseSettings):
    """Capture session timing and encoding configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CAMERA_",
        extra="ignore"
    )

    handheld_device: bool = Field(
        default=False,
        description="Prefer the outward-facing camera (phones, tablets)"
    )
    playback_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        le=60.0,
        description="How long to wait for confirmed playback after acquisition"
    )
    playback_poll_interval_seconds: float = Field(
        default=0.5,
        gt=0.0,
        le=5.0,
        description="How often the surface play state is re-checked while waiting"
    )
    restart_settle_seconds: float = Field(
        default=0.3,
        ge=0.0,
        le=5.0,
        description="Pause between stop and start when restarting the camera"
    )
    default_frame_width: int = Field(
        default=640,
        ge=1,
        description="Capture width when the frame size is unknown"
    )
    default_frame_height: int = Field(
        default=480,
        ge=1,
        description="Capture height when the frame size is unknown"
    )
    jpeg_quality: int = Field(
        default=85,
        ge=1,
        le=95,
        description="JPEG quality used for captured stills"
    )
    background_color: str = Field(
        default="#333333",
        description="Canvas fill behind the drawn frame"
    )

    @property
    def default_facing(self) -> FacingMode:
        """Outward-facing on handheld devices, inward-facing otherwise."""
        if self.handheld_device:
            return FacingMode.ENVIRONMENT
        return FacingMode.USER


class BudgetSettings(BaseSettings):
    """Budget defaults."""

    model_config = SettingsConfigDict(
        env_prefix="BUDGET_",
        extra="ignore"
    )

    default_monthly_budget: Decimal = Field(
        default=Decimal("2500.00"),
        ge=0,
        description="Monthly budget used when no override exists"
    )
    history_months: int = Field(
        default=12,
        ge=1,
        le=120,
        description="Number of months shown in the spending history"
    )
    default_label: str = Field(
        default="groceries",
        min_length=1,
        description="Label used when an expense is saved without one"
    )


class ImageStorageSettings(BaseSettings):
    """Where expense photos and thumbnails are kept."""

    model_config = SettingsConfigDict(
        env_prefix="IMAGES_",
        extra="ignore"
    )

    backend: str = Field(
        default="local",
        pattern="^(local|cloudinary)$",
        description="Image storage backend"
    )
    uploads_dir: str = Field(
        default="uploads",
        description="Directory for locally stored photos"
    )
    url_prefix: str = Field(
        default="/uploads",
        description="Reference prefix for locally stored photos"
    )
    thumbnail_size: int = Field(
        default=150,
        ge=16,
        le=1024,
        description="Thumbnail edge length in pixels"
    )
    thumbnail_quality: int = Field(
        default=90,
        ge=1,
        le=95,
        description="JPEG quality for thumbnails"
    )
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum photo size in MB"
    )

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


class CloudinarySettings(BaseSettings):
    """Cloudinary image hosting configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CLOUDINARY_",
        extra="ignore"
    )

    cloud_name: str = Field(
        ...,
        description="Cloudinary cloud name"
    )
    api_key: str = Field(
        ...,
        description="Cloudinary API key"
    )
    api_secret: str = Field(
        ...,
        description="Cloudinary API secret"
    )
    folder: str = Field(
        default="expense_journal",
        description="Folder that holds expense photos"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    expenses_sheet_name: str = Field(
        default="Expenses",
        description="Name of the sheet for expenses"
    )
    budgets_sheet_name: str = Field(
        default="Budgets",
        description="Name of the sheet for the default budget and overrides"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    storage_backend: str = Field(
        default="memory",
        pattern="^(memory|google_sheets)$",
        description="Where expenses and budgets are persisted"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def camera(self) -> CameraSettings:
        return CameraSettings()

    @property
    def budget(self) -> BudgetSettings:
        return BudgetSettings()

    @property
    def images(self) -> ImageStorageSettings:
        return ImageStorageSettings()

    @property
    def cloudinary(self) -> CloudinarySettings:
        return CloudinarySettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid} plus
    {setting_name}_error entries for the failures.
    Useful for startup checks and the settings page.
    """
    results = {}

    settings = get_settings()

    for name in ("camera", "budget", "images", "cloudinary", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
