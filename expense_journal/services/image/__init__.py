"""Image storage services package."""

from expense_journal.services.image.interface import (
    ImageDeletionError,
    ImageStorageError,
    ImageStorageInterface,
    ImageUploadError,
    InvalidImageError,
    StoredImage,
    verify_image_bytes,
)
from expense_journal.services.image.local import LocalImageStorage
from expense_journal.services.image.cloudinary_service import (
    CloudinaryImageStorage,
    public_id_from_url,
)

__all__ = [
    "CloudinaryImageStorage",
    "ImageDeletionError",
    "ImageStorageError",
    "ImageStorageInterface",
    "ImageUploadError",
    "InvalidImageError",
    "LocalImageStorage",
    "StoredImage",
    "public_id_from_url",
    "verify_image_bytes",
]
