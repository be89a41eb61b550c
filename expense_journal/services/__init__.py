"""Services package."""

from expense_journal.services.image import (
    CloudinaryImageStorage,
    ImageDeletionError,
    ImageStorageError,
    ImageStorageInterface,
    ImageUploadError,
    InvalidImageError,
    LocalImageStorage,
    StoredImage,
)
from expense_journal.services.storage import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ConnectionError,
    DuplicateError,
    ExpenseStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsClient,
    GoogleSheetsExpenseStorage,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryExpenseStorage,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Image services
    "CloudinaryImageStorage",
    "ImageDeletionError",
    "ImageStorageError",
    "ImageStorageInterface",
    "ImageUploadError",
    "InvalidImageError",
    "LocalImageStorage",
    "StoredImage",
    # Storage services
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "ExpenseStorageInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsBudgetStorage",
    "GoogleSheetsClient",
    "GoogleSheetsExpenseStorage",
    "InMemoryAuditStorage",
    "InMemoryBudgetStorage",
    "InMemoryExpenseStorage",
    "NotFoundError",
    "StorageError",
]
