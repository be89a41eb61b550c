"""
Abstract Camera Platform Interface

DESIGN DECISION: The capture session never talks to a real camera API.
It talks to these three small interfaces instead:
1. MediaDevice   - grants (or refuses) a live stream
2. MediaStream   - the hardware resource that must be released
3. RenderSurface - where the stream is shown and frames are read from

Platform quirks (autoplay policies, late "playing" events, devices that
report a zero frame size) live in the adapters that implement these.
The session only relies on the contract documented here, which also
makes it possible to drive it with fakes in tests.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from PIL import Image

from expense_journal.models.capture import MediaConstraints


PlayingListener = Callable[[], None]


class MediaDeviceError(Exception):
    """Base exception for camera acquisition errors."""
    pass


class PermissionDeniedError(MediaDeviceError):
    """The user or platform refused camera access."""
    pass


class DeviceNotFoundError(MediaDeviceError):
    """No camera matching the request exists."""
    pass


class OverconstrainedError(MediaDeviceError):
    """A camera exists but cannot satisfy the constraints."""
    pass


class UnsupportedPlatformError(MediaDeviceError):
    """The platform has no camera API at all."""
    pass


class FrameUnavailableError(Exception):
    """The surface could not produce a frame."""
    pass


class MediaStream(ABC):
    """A granted live stream holding camera hardware."""

    @property
    @abstractmethod
    def active(self) -> bool:
        """False once released."""
        pass

    @abstractmethod
    def release(self) -> None:
        """
        Stop every track of the stream.

        Must be safe to call more than once.
        """
        pass


class MediaDevice(ABC):
    """Entry point to the platform's camera API."""

    @property
    def supported(self) -> bool:
        """Whether the platform exposes a camera API at all."""
        return True

    @abstractmethod
    async def acquire(self, constraints: MediaConstraints) -> MediaStream:
        """
        Request a live stream.

        Raises:
            PermissionDeniedError: access refused
            DeviceNotFoundError: no camera
            OverconstrainedError: constraints cannot be met
            UnsupportedPlatformError: no camera API
            MediaDeviceError: anything else
        """
        pass


class RenderSurface(ABC):
    """
    The element a stream is rendered into.

    A surface may be bound to at most one stream at a time.
    """

    @abstractmethod
    def bind(self, stream: MediaStream) -> None:
        """Attach a stream as the surface's source."""
        pass

    @abstractmethod
    def unbind(self) -> None:
        """
        Detach the current source and pause rendering.

        Must be safe to call when nothing is bound.
        """
        pass

    @abstractmethod
    async def play(self) -> None:
        """
        Start rendering the bound stream.

        May raise if the platform refuses to start playback
        (autoplay policies). Returning does not guarantee frames.
        """
        pass

    @property
    @abstractmethod
    def is_playing(self) -> bool:
        """True when frames are actually being rendered."""
        pass

    @property
    @abstractmethod
    def video_size(self) -> tuple[int, int]:
        """Native frame size, (0, 0) when not known yet."""
        pass

    @property
    def display_size(self) -> tuple[int, int]:
        """On-screen size of the surface, (0, 0) when not known."""
        return (0, 0)

    @abstractmethod
    def draw_frame(
        self,
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> Image.Image:
        """
        Read the frame currently shown.

        With no size, the frame is returned at whatever size the
        surface produces natively.

        Raises:
            FrameUnavailableError: nothing could be drawn
        """
        pass

    @abstractmethod
    def add_playing_listener(self, listener: PlayingListener) -> None:
        """Call `listener` when the platform reports frames are flowing."""
        pass

    @abstractmethod
    def remove_playing_listener(self, listener: PlayingListener) -> None:
        pass
