"""
Local Filesystem Image Storage

Photos are written to the uploads directory under a random name.
References look like "/uploads/<name>.jpg"; only the final path
component is ever used to locate a file, so a reference can never
point outside the uploads directory.
"""

from io import BytesIO
from pathlib import Path, PurePosixPath
from typing import Optional
from uuid import uuid4

import structlog
from PIL import Image, ImageOps

from expense_journal.config import ImageStorageSettings, get_settings
from expense_journal.services.image.interface import (
    ImageDeletionError,
    ImageStorageInterface,
    ImageUploadError,
    StoredImage,
    verify_image_bytes,
)


_EXTENSIONS = {
    "JPEG": "jpg",
    "PNG": "png",
    "WEBP": "webp",
    "GIF": "gif",
}

THUMBNAIL_SUFFIX = "_thumb"


class LocalImageStorage(ImageStorageInterface):
    """Stores photos as files, with a square JPEG thumbnail beside each."""

    def __init__(self, settings: Optional[ImageStorageSettings] = None):
        self._settings = settings or get_settings().images
        self._uploads_dir = Path(self._settings.uploads_dir)
        self._logger = structlog.get_logger(__name__)

    @property
    def uploads_dir(self) -> Path:
        return self._uploads_dir

    def path_for(self, ref: str) -> Path:
        """Filesystem path of a stored reference."""
        name = PurePosixPath(ref).name
        if not name or name in (".", ".."):
            raise ValueError(f"Not an image reference: {ref!r}")
        return self._uploads_dir / name

    def _ref_for(self, filename: str) -> str:
        return f"{self._settings.url_prefix.rstrip('/')}/{filename}"

    def _write_thumbnail(self, image_bytes: bytes, stem: str) -> Optional[str]:
        size = self._settings.thumbnail_size
        filename = f"{stem}{THUMBNAIL_SUFFIX}.jpg"
        try:
            with Image.open(BytesIO(image_bytes)) as img:
                img = ImageOps.exif_transpose(img)
                thumb = ImageOps.fit(img.convert("RGB"), (size, size))
                thumb.save(
                    self._uploads_dir / filename,
                    format="JPEG",
                    quality=self._settings.thumbnail_quality,
                )
        except (OSError, ValueError) as e:
            self._logger.warning("thumbnail_failed", stem=stem, error=str(e))
            return None
        return self._ref_for(filename)

    async def store(self, image_bytes: bytes) -> StoredImage:
        image_format = verify_image_bytes(
            image_bytes, self._settings.max_upload_size_bytes
        )
        extension = _EXTENSIONS.get(image_format, image_format.lower())

        stem = uuid4().hex
        filename = f"{stem}.{extension}"

        try:
            self._uploads_dir.mkdir(parents=True, exist_ok=True)
            (self._uploads_dir / filename).write_bytes(image_bytes)
        except OSError as e:
            raise ImageUploadError(f"Could not write image: {e}")

        stored = StoredImage(
            image_ref=self._ref_for(filename),
            thumbnail_ref=self._write_thumbnail(image_bytes, stem),
            size_bytes=len(image_bytes),
        )
        self._logger.info(
            "image_stored",
            image_ref=stored.image_ref,
            thumbnail_ref=stored.thumbnail_ref,
            size_bytes=stored.size_bytes,
        )
        return stored

    async def delete_artifacts(
        self,
        image_ref: str,
        thumbnail_ref: Optional[str] = None,
    ) -> None:
        failures = []
        for ref in (image_ref, thumbnail_ref):
            if not ref:
                continue
            try:
                self.path_for(ref).unlink()
            except FileNotFoundError:
                continue
            except (OSError, ValueError) as e:
                failures.append(f"{ref}: {e}")

        if failures:
            raise ImageDeletionError("; ".join(failures))
