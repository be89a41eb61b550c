"""Camera capture package."""

from expense_journal.camera.device import (
    DeviceNotFoundError,
    FrameUnavailableError,
    MediaDevice,
    MediaDeviceError,
    MediaStream,
    OverconstrainedError,
    PermissionDeniedError,
    RenderSurface,
    UnsupportedPlatformError,
)
from expense_journal.camera.session import CaptureSession, classify_device_error

__all__ = [
    "CaptureSession",
    "classify_device_error",
    # Platform interfaces
    "MediaDevice",
    "MediaStream",
    "RenderSurface",
    # Exceptions
    "MediaDeviceError",
    "PermissionDeniedError",
    "DeviceNotFoundError",
    "OverconstrainedError",
    "UnsupportedPlatformError",
    "FrameUnavailableError",
]
