"""
Abstract Image Storage Interface

Every expense has a photo. The photo is stored first, then the record
pointing at it; the journal only ever sees opaque references.

A thumbnail is a convenience. Failing to make one never fails a store.
"""

from abc import ABC, abstractmethod
from io import BytesIO
from typing import Optional

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, Field


class StoredImage(BaseModel):
    """References to a stored photo and its thumbnail."""

    image_ref: str = Field(..., min_length=1)
    thumbnail_ref: Optional[str] = None
    size_bytes: int = Field(default=0, ge=0)


class ImageStorageError(Exception):
    """Base exception for image storage errors."""
    pass


class InvalidImageError(ImageStorageError):
    """The bytes are not a readable image, or are too large."""
    pass


class ImageUploadError(ImageStorageError):
    """The photo could not be stored."""
    pass


class ImageDeletionError(ImageStorageError):
    """One or more stored artifacts could not be removed."""
    pass


def verify_image_bytes(image_bytes: bytes, max_size_bytes: int) -> str:
    """
    Check size and decodability of an uploaded photo.

    Returns:
        The Pillow format name (e.g. "JPEG")

    Raises:
        InvalidImageError: If empty, too large or not an image
    """
    if not image_bytes:
        raise InvalidImageError("Image is empty")

    if len(image_bytes) > max_size_bytes:
        raise InvalidImageError(
            f"Image is {len(image_bytes)} bytes, maximum is {max_size_bytes}"
        )

    try:
        with Image.open(BytesIO(image_bytes)) as img:
            image_format = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise InvalidImageError(f"Not a readable image: {e}")

    return image_format or "JPEG"


class ImageStorageInterface(ABC):
    """Stores photos and removes them again."""

    @abstractmethod
    async def store(self, image_bytes: bytes) -> StoredImage:
        """
        Store a photo and try to produce a thumbnail.

        Raises:
            InvalidImageError: If the bytes are not an acceptable image
            ImageUploadError: If the photo could not be stored
        """
        pass

    @abstractmethod
    async def delete_artifacts(
        self,
        image_ref: str,
        thumbnail_ref: Optional[str] = None,
    ) -> None:
        """
        Remove a photo and its thumbnail.

        Artifacts that are already gone are not an error.

        Raises:
            ImageDeletionError: If an existing artifact could not be removed
        """
        pass
