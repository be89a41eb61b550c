"""
Tests for photo storage.

Local storage runs against a temporary directory. The Cloudinary
backend is only tested for reference parsing; no uploads are made.
"""

import asyncio
from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image

from expense_journal.services.image import (
    ImageDeletionError,
    InvalidImageError,
    LocalImageStorage,
    public_id_from_url,
    verify_image_bytes,
)

from conftest import jpeg_bytes


def run(coro):
    return asyncio.run(coro)


def png_bytes(size=(40, 20)) -> bytes:
    buffer = BytesIO()
    Image.new("RGBA", size, (0, 255, 0, 128)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def storage(image_settings) -> LocalImageStorage:
    return LocalImageStorage(image_settings)


class TestVerifyImage:
    def test_accepts_jpeg(self):
        assert verify_image_bytes(jpeg_bytes(), 1024 * 1024) == "JPEG"

    def test_accepts_png(self):
        assert verify_image_bytes(png_bytes(), 1024 * 1024) == "PNG"

    def test_rejects_empty(self):
        with pytest.raises(InvalidImageError, match="empty"):
            verify_image_bytes(b"", 100)

    def test_rejects_too_large(self):
        data = jpeg_bytes()
        with pytest.raises(InvalidImageError, match="maximum"):
            verify_image_bytes(data, len(data) - 1)

    def test_rejects_garbage(self):
        with pytest.raises(InvalidImageError):
            verify_image_bytes(b"definitely not an image", 1024)


class TestLocalImageStorage:
    def test_store_writes_photo_and_thumbnail(self, storage, image_settings):
        stored = run(storage.store(jpeg_bytes()))

        photo = storage.path_for(stored.image_ref)
        thumb = storage.path_for(stored.thumbnail_ref)
        assert photo.read_bytes() == jpeg_bytes()
        assert stored.image_ref.startswith("/uploads/")
        assert stored.image_ref.endswith(".jpg")
        assert thumb.name == photo.stem + "_thumb.jpg"
        with Image.open(thumb) as img:
            assert img.size == (32, 32)
            assert img.format == "JPEG"

    def test_png_keeps_extension_and_gets_jpeg_thumbnail(self, storage):
        stored = run(storage.store(png_bytes()))
        assert stored.image_ref.endswith(".png")
        assert stored.thumbnail_ref.endswith("_thumb.jpg")

    def test_names_are_unique(self, storage):
        first = run(storage.store(jpeg_bytes()))
        second = run(storage.store(jpeg_bytes()))
        assert first.image_ref != second.image_ref

    def test_thumbnail_failure_is_not_fatal(self, storage, monkeypatch):
        def broken_fit(*args, **kwargs):
            raise OSError("decoder crashed")

        monkeypatch.setattr("expense_journal.services.image.local.ImageOps.fit", broken_fit)
        stored = run(storage.store(jpeg_bytes()))
        assert stored.thumbnail_ref is None
        assert storage.path_for(stored.image_ref).exists()

    def test_delete_removes_both(self, storage, image_settings):
        stored = run(storage.store(jpeg_bytes()))
        run(storage.delete_artifacts(stored.image_ref, stored.thumbnail_ref))
        assert list(Path(image_settings.uploads_dir).iterdir()) == []

    def test_delete_missing_is_not_an_error(self, storage):
        run(storage.delete_artifacts("/uploads/gone.jpg", "/uploads/gone_thumb.jpg"))

    def test_delete_failure_tries_every_artifact(self, storage, monkeypatch):
        stored = run(storage.store(jpeg_bytes()))
        attempted = []
        original_unlink = Path.unlink

        def flaky_unlink(path, *args, **kwargs):
            attempted.append(path.name)
            if path.name.endswith("_thumb.jpg"):
                return original_unlink(path, *args, **kwargs)
            raise PermissionError("read-only")

        monkeypatch.setattr(Path, "unlink", flaky_unlink)
        with pytest.raises(ImageDeletionError, match="read-only"):
            run(storage.delete_artifacts(stored.image_ref, stored.thumbnail_ref))
        assert len(attempted) == 2
        assert not storage.path_for(stored.thumbnail_ref).exists()

    def test_reference_cannot_escape_uploads(self, storage, image_settings):
        path = storage.path_for("/uploads/../../etc/passwd")
        assert path.parent == Path(image_settings.uploads_dir)
        assert path.name == "passwd"


class TestCloudinaryReferences:
    @pytest.mark.parametrize("url,expected", [
        (
            "https://res.cloudinary.com/demo/image/upload/v1712345/expense_journal/abc123.jpg",
            "expense_journal/abc123",
        ),
        (
            "https://res.cloudinary.com/demo/image/upload/c_fill,h_150,q_90,w_150/expense_journal/abc123",
            "expense_journal/abc123",
        ),
        (
            "https://res.cloudinary.com/demo/image/upload/v1/abc123.png",
            "abc123",
        ),
    ])
    def test_public_id_from_url(self, url, expected):
        assert public_id_from_url(url, "expense_journal") == expected

    def test_public_id_without_folder_hint(self):
        url = "https://res.cloudinary.com/demo/image/upload/c_fill,w_150/v12/photos/abc.jpg"
        assert public_id_from_url(url) == "photos/abc"

    def test_not_a_cloudinary_url(self):
        assert public_id_from_url("/uploads/abc.jpg") is None
