"""
Capture Models for Expense Journal

Shapes used by the camera capture session: its states, the error
classification shown to the user, the constraints handed to the device
and the still image it produces.

DESIGN DECISION: Capture failures are DATA, not exceptions.
The UI renders persistent guidance from the session's state and last
error instead of catching errors from every camera call.
"""

import base64
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class FacingMode(str, Enum):
    """Which way the camera faces."""
    USER = "user"                # inward-facing / selfie
    ENVIRONMENT = "environment"  # outward-facing / rear


class CaptureState(str, Enum):
    """
    Lifecycle states of a capture session.

    There is no separate "stopped" value: a stopped session is IDLE.
    CAPTURING is only observable while a frame is being encoded.
    """
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    CAPTURING = "capturing"
    ERROR = "error"


class CaptureErrorKind(str, Enum):
    """
    Classification of everything that can go wrong with the camera.

    Acquisition errors come from the device, playback errors from the
    render surface, capture errors from reading a frame.
    """
    # Acquisition
    PERMISSION_DENIED = "permission_denied"
    DEVICE_NOT_FOUND = "device_not_found"
    CONSTRAINTS_UNSATISFIABLE = "constraints_unsatisfiable"
    UNSUPPORTED_PLATFORM = "unsupported_platform"
    GENERIC_FAILURE = "generic_failure"

    # Playback
    PLAYBACK_TIMEOUT = "playback_timeout"

    # Capture
    NOT_STREAMING = "not_streaming"
    FRAME_DRAW_FAILED = "frame_draw_failed"
    ENCODE_FAILED = "encode_failed"

    @property
    def category(self) -> str:
        """One of 'acquisition', 'playback' or 'capture'."""
        if self == CaptureErrorKind.PLAYBACK_TIMEOUT:
            return "playback"
        if self in _CAPTURE_KINDS:
            return "capture"
        return "acquisition"


_CAPTURE_KINDS = {
    CaptureErrorKind.NOT_STREAMING,
    CaptureErrorKind.FRAME_DRAW_FAILED,
    CaptureErrorKind.ENCODE_FAILED,
}


_USER_MESSAGES = {
    CaptureErrorKind.PERMISSION_DENIED: (
        "Camera access was denied. Allow camera access in your browser "
        "settings and try again."
    ),
    CaptureErrorKind.DEVICE_NOT_FOUND: (
        "No camera was detected on this device."
    ),
    CaptureErrorKind.CONSTRAINTS_UNSATISFIABLE: (
        "The camera does not support the requested settings."
    ),
    CaptureErrorKind.UNSUPPORTED_PLATFORM: (
        "This browser does not support camera access. "
        "Try a different browser or upload a photo instead."
    ),
    CaptureErrorKind.GENERIC_FAILURE: (
        "The camera could not be started. Please try again."
    ),
    CaptureErrorKind.PLAYBACK_TIMEOUT: (
        "The camera started but no picture is showing. "
        "Tap to start the camera again."
    ),
    CaptureErrorKind.NOT_STREAMING: (
        "The camera is not ready yet. Wait for the preview before taking a photo."
    ),
    CaptureErrorKind.FRAME_DRAW_FAILED: (
        "The photo could not be taken. Please try again."
    ),
    CaptureErrorKind.ENCODE_FAILED: (
        "The photo could not be saved. Please try again."
    ),
}


class CaptureError(BaseModel):
    """A classified camera failure."""

    kind: CaptureErrorKind
    message: str = Field(
        ...,
        description="Technical description for logs"
    )
    occurred_at: datetime = Field(
        default_factory=datetime.utcnow
    )

    @property
    def user_message(self) -> str:
        """Classification-specific text for the UI."""
        return _USER_MESSAGES[self.kind]


class MediaConstraints(BaseModel):
    """
    What the session asks the device for.

    No facing mode means "any camera" - the relaxed fallback.
    """
    model_config = ConfigDict(frozen=True)

    facing_mode: Optional[FacingMode] = None
    exact_facing: bool = False
    audio: bool = False

    @classmethod
    def for_facing(cls, facing_mode: FacingMode, exact: bool = False) -> "MediaConstraints":
        return cls(facing_mode=facing_mode, exact_facing=exact)

    @classmethod
    def relaxed(cls) -> "MediaConstraints":
        return cls()

    @property
    def is_relaxed(self) -> bool:
        return self.facing_mode is None

    def to_dict(self) -> dict[str, Any]:
        """
        Render as a getUserMedia-style constraints dictionary.

        Examples:
            {"video": {"facingMode": {"exact": "environment"}}, "audio": False}
            {"video": True, "audio": False}
        """
        if self.facing_mode is None:
            video: Any = True
        elif self.exact_facing:
            video = {"facingMode": {"exact": self.facing_mode.value}}
        else:
            video = {"facingMode": self.facing_mode.value}
        return {"video": video, "audio": self.audio}


class CapturedPhoto(BaseModel):
    """An encoded still taken from the live stream."""

    photo_id: UUID = Field(
        default_factory=uuid4
    )
    captured_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    width: int = Field(ge=1)
    height: int = Field(ge=1)
    mime_type: str = "image/jpeg"
    quality: int = Field(ge=1, le=100)
    data: bytes = Field(
        ...,
        min_length=1,
        description="Encoded image bytes"
    )

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


class CaptureStatus(BaseModel):
    """Point-in-time view of a capture session for rendering."""

    state: CaptureState
    last_error: Optional[CaptureError] = None
    capture_error: Optional[CaptureError] = None
    has_capture: bool = False
    generation: int = Field(ge=0)

    @property
    def is_streaming(self) -> bool:
        return self.state in (CaptureState.STREAMING, CaptureState.CAPTURING)
