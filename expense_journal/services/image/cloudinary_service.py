"""
Cloudinary Image Storage

DESIGN DECISION: Cloudinary is the hosted alternative to local files:
1. Photos survive redeploys of the app
2. Thumbnails are URL transformations, so nothing extra is uploaded
3. Simple API
4. Free tier sufficient for personal use

References are the secure delivery URLs. Deleting needs the public ID,
which is recovered from the URL.
"""

import re
from typing import Optional
from urllib.parse import urlparse
from uuid import uuid4

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
import structlog
from cloudinary import CloudinaryImage
from tenacity import retry, stop_after_attempt, wait_exponential

from expense_journal.config import (
    CloudinarySettings,
    ImageStorageSettings,
    get_settings,
)
from expense_journal.services.image.interface import (
    ImageDeletionError,
    ImageStorageInterface,
    ImageUploadError,
    StoredImage,
    verify_image_bytes,
)


_VERSION_SEGMENT = re.compile(r"^v\d+$")
_TRANSFORMATION_SEGMENT = re.compile(r"^[a-z]{1,3}_[^/]*$")


def public_id_from_url(url: str, folder: Optional[str] = None) -> Optional[str]:
    """
    Recover the public ID from a delivery URL.

    Handles both plain and transformed URLs:
        .../image/upload/v1712345/expense_journal/abc.jpg
        .../image/upload/c_fill,h_150,w_150/expense_journal/abc
    """
    path = urlparse(url).path
    if "/upload/" not in path:
        return None
    tail = path.split("/upload/", 1)[1]

    if folder and f"{folder}/" in tail:
        tail = tail[tail.index(f"{folder}/"):]
        segments = [s for s in tail.split("/") if s]
    else:
        segments = [s for s in tail.split("/") if s]
        while segments and (
            _VERSION_SEGMENT.match(segments[0])
            or "," in segments[0]
            or _TRANSFORMATION_SEGMENT.match(segments[0])
        ):
            segments.pop(0)

    if not segments:
        return None

    last = segments[-1]
    if "." in last:
        segments[-1] = last.rsplit(".", 1)[0]
    return "/".join(segments)


class CloudinaryImageStorage(ImageStorageInterface):
    """
    Stores photos in Cloudinary.

    Flow:
    1. Verify the bytes are an image
    2. Upload under a random public ID in the configured folder
    3. Build a fill-cropped thumbnail URL from the same public ID
    """

    def __init__(
        self,
        settings: Optional[CloudinarySettings] = None,
        image_settings: Optional[ImageStorageSettings] = None,
    ):
        self._settings = settings or get_settings().cloudinary
        self._image_settings = image_settings or get_settings().images
        self._configured = False
        self._logger = structlog.get_logger(__name__)

    def _configure(self):
        """Configure Cloudinary SDK."""
        if not self._configured:
            cloudinary.config(
                cloud_name=self._settings.cloud_name,
                api_key=self._settings.api_key,
                api_secret=self._settings.api_secret,
                secure=True,
            )
            self._configured = True

    def _thumbnail_url(self, public_id: str) -> str:
        size = self._image_settings.thumbnail_size
        return CloudinaryImage(public_id).build_url(
            width=size,
            height=size,
            crop="fill",
            quality=self._image_settings.thumbnail_quality,
            secure=True,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _upload(self, image_bytes: bytes, public_id: str) -> dict:
        return cloudinary.uploader.upload(
            image_bytes,
            public_id=public_id,
            resource_type="image",
            overwrite=False,
        )

    async def store(self, image_bytes: bytes) -> StoredImage:
        verify_image_bytes(image_bytes, self._image_settings.max_upload_size_bytes)
        self._configure()

        public_id = f"{self._settings.folder}/{uuid4().hex}"
        try:
            result = self._upload(image_bytes, public_id)
        except cloudinary.exceptions.Error as e:
            raise ImageUploadError(f"Cloudinary error: {e}")
        except Exception as e:
            raise ImageUploadError(f"Failed to upload image: {e}")

        image_url = result.get("secure_url", result.get("url", ""))
        if not image_url:
            raise ImageUploadError("No URL returned from Cloudinary")

        stored_id = result.get("public_id", public_id)
        try:
            thumbnail_url = self._thumbnail_url(stored_id)
        except Exception as e:
            self._logger.warning("thumbnail_failed", public_id=stored_id, error=str(e))
            thumbnail_url = None

        self._logger.info(
            "image_stored",
            image_ref=image_url,
            thumbnail_ref=thumbnail_url,
            size_bytes=len(image_bytes),
        )
        return StoredImage(
            image_ref=image_url,
            thumbnail_ref=thumbnail_url,
            size_bytes=len(image_bytes),
        )

    async def delete_artifacts(
        self,
        image_ref: str,
        thumbnail_ref: Optional[str] = None,
    ) -> None:
        # The thumbnail is a transformation of the same asset
        public_id = public_id_from_url(image_ref, self._settings.folder)
        if public_id is None:
            raise ImageDeletionError(f"Not a Cloudinary reference: {image_ref}")

        self._configure()
        try:
            result = cloudinary.uploader.destroy(public_id, invalidate=True)
        except cloudinary.exceptions.Error as e:
            raise ImageDeletionError(f"Cloudinary error: {e}")

        outcome = result.get("result")
        if outcome not in ("ok", "not found"):
            raise ImageDeletionError(f"Could not delete {public_id}: {outcome}")
