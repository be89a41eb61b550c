"""Configuration package."""

from expense_journal.config.settings import (
    AppSettings,
    BudgetSettings,
    CameraSettings,
    CloudinarySettings,
    GoogleSheetsSettings,
    ImageStorageSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "BudgetSettings",
    "CameraSettings",
    "CloudinarySettings",
    "GoogleSheetsSettings",
    "ImageStorageSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
