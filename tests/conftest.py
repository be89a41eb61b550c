"""
Shared fixtures and fakes.

The camera fakes record every hardware-facing call into one shared
list, so tests can assert on the exact order of acquire, bind, unbind
and release.
"""

import asyncio
from datetime import date, datetime, timedelta
from decimal import Decimal
from io import BytesIO
from typing import Optional

import pytest
from PIL import Image

from expense_journal.camera.device import (
    FrameUnavailableError,
    MediaDevice,
    MediaStream,
    RenderSurface,
)
from expense_journal.config import BudgetSettings, CameraSettings, ImageStorageSettings
from expense_journal.models.capture import MediaConstraints
from expense_journal.models.expense import ExpenseRecord


# =============================================================================
# CAMERA FAKES
# =============================================================================

class FakeStream(MediaStream):
    def __init__(self, stream_id: int, log: list):
        self.stream_id = stream_id
        self.release_calls = 0
        self._log = log
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def release(self) -> None:
        self.release_calls += 1
        if self._active:
            self._log.append(("release", self.stream_id))
        self._active = False


class FakeMediaDevice(MediaDevice):
    """
    Hands out FakeStreams.

    `outcomes` is consumed one entry per acquire(): an exception
    instance is raised, anything else yields a new stream. Once
    exhausted every call succeeds.
    """

    def __init__(self, log: list, outcomes: Optional[list] = None, delay: float = 0.0):
        self.log = log
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.calls: list[MediaConstraints] = []
        self.streams: list[FakeStream] = []
        self.is_supported = True

    @property
    def supported(self) -> bool:
        return self.is_supported

    async def acquire(self, constraints: MediaConstraints) -> MediaStream:
        self.calls.append(constraints)
        self.log.append(("acquire", constraints.to_dict()))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
        stream = FakeStream(len(self.streams) + 1, self.log)
        self.streams.append(stream)
        return stream


class FakeSurface(RenderSurface):
    """
    Render surface with switchable playback behaviour.

    play_result: "resolve", "reject" or "hang"
    emit_playing_on_bind: fire playing listeners right after bind
    reports_playing: is_playing turns True once bound
    """

    def __init__(self, log: list):
        self.log = log
        self.play_result = "resolve"
        self.emit_playing_on_bind = False
        self.reports_playing = False
        self.native_size = (320, 240)
        self.video_size_value = (320, 240)
        self.display_size_value = (0, 0)
        self.draw_failures = 0
        self.draw_calls: list[tuple] = []
        self.bound: Optional[MediaStream] = None
        self.listeners: list = []

    def bind(self, stream: MediaStream) -> None:
        self.bound = stream
        self.log.append(("bind", getattr(stream, "stream_id", None)))
        if self.emit_playing_on_bind:
            asyncio.get_running_loop().call_soon(self.emit_playing)

    def unbind(self) -> None:
        if self.bound is not None:
            self.log.append(("unbind", getattr(self.bound, "stream_id", None)))
        self.bound = None

    def emit_playing(self) -> None:
        for listener in list(self.listeners):
            listener()

    async def play(self) -> None:
        if self.play_result == "reject":
            raise RuntimeError("NotAllowedError: autoplay blocked")
        if self.play_result == "hang":
            await asyncio.Event().wait()

    @property
    def is_playing(self) -> bool:
        return self.reports_playing and self.bound is not None

    @property
    def video_size(self) -> tuple[int, int]:
        return self.video_size_value

    @property
    def display_size(self) -> tuple[int, int]:
        return self.display_size_value

    def draw_frame(self, width: Optional[int] = None, height: Optional[int] = None) -> Image.Image:
        self.draw_calls.append((width, height))
        if self.draw_failures > 0:
            self.draw_failures -= 1
            raise FrameUnavailableError("no frame")
        size = (width, height) if width and height else self.native_size
        return Image.new("RGB", size, "red")

    def add_playing_listener(self, listener) -> None:
        self.listeners.append(listener)

    def remove_playing_listener(self, listener) -> None:
        self.listeners.remove(listener)


@pytest.fixture
def hardware_log() -> list:
    return []


@pytest.fixture
def device(hardware_log) -> FakeMediaDevice:
    return FakeMediaDevice(hardware_log)


@pytest.fixture
def surface(hardware_log) -> FakeSurface:
    return FakeSurface(hardware_log)


@pytest.fixture
def camera_settings() -> CameraSettings:
    return CameraSettings(
        playback_timeout_seconds=0.2,
        playback_poll_interval_seconds=0.02,
        restart_settle_seconds=0.0,
        handheld_device=False,
    )


# =============================================================================
# EXPENSE HELPERS
# =============================================================================

def make_record(
    amount: str,
    expense_date: date,
    label: str = "groceries",
    created_at: Optional[datetime] = None,
) -> ExpenseRecord:
    return ExpenseRecord(
        amount=Decimal(amount),
        label=label,
        image_ref="/uploads/photo.jpg",
        expense_date=expense_date,
        created_at=created_at or datetime(2024, 6, 1, 12, 0, 0),
    )


def make_records_at(amounts_and_dates: list[tuple[str, date]]) -> list[ExpenseRecord]:
    """Records whose created_at increases with list position."""
    base = datetime(2024, 1, 1, 8, 0, 0)
    return [
        make_record(amount, day, created_at=base + timedelta(minutes=i))
        for i, (amount, day) in enumerate(amounts_and_dates)
    ]


def jpeg_bytes(size=(64, 48), color="blue") -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def budget_settings() -> BudgetSettings:
    return BudgetSettings(
        default_monthly_budget=Decimal("2500.00"),
        history_months=12,
        default_label="groceries",
    )


@pytest.fixture
def image_settings(tmp_path) -> ImageStorageSettings:
    return ImageStorageSettings(
        backend="local",
        uploads_dir=str(tmp_path / "uploads"),
        url_prefix="/uploads",
        thumbnail_size=32,
        max_upload_size_mb=1,
    )
