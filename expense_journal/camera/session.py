"""
Camera Capture Session

Owns one camera stream for one photo-taking interaction:
acquire a stream → confirm frames are flowing → take stills → release.

States:
    IDLE → REQUESTING → STREAMING (→ CAPTURING →) STREAMING
    REQUESTING / STREAMING → ERROR
    any state → IDLE on stop()

CRITICAL RULES:
1. At most one acquisition in flight. request_start() while REQUESTING
   is rejected immediately.
2. Stop before start. Any stream still held is released before new
   hardware is requested. Holding two streams at once is the classic
   cause of a black preview.
3. "Permission granted" is not "ready". STREAMING is only entered once
   the surface confirms frames, within a bounded wait.
4. Late results are discarded. Every attempt is tagged with a
   generation number; stop() bumps it, and anything that completes for
   an older generation is thrown away (a late stream is released at once).
5. Failures are reported through state, never raised. The session
   always ends up IDLE, STREAMING or ERROR - never half-initialized.

The only automatic retry is one relaxed-constraints attempt when the
requested camera facing cannot be satisfied.
"""

import asyncio
from io import BytesIO
from typing import Optional

import structlog
from PIL import Image

from expense_journal.camera.device import (
    DeviceNotFoundError,
    MediaDevice,
    MediaDeviceError,
    MediaStream,
    OverconstrainedError,
    PermissionDeniedError,
    RenderSurface,
    UnsupportedPlatformError,
)
from expense_journal.config import CameraSettings, get_settings
from expense_journal.models.capture import (
    CapturedPhoto,
    CaptureError,
    CaptureErrorKind,
    CaptureState,
    CaptureStatus,
    FacingMode,
    MediaConstraints,
)


_DEVICE_ERROR_KINDS = (
    (PermissionDeniedError, CaptureErrorKind.PERMISSION_DENIED),
    (DeviceNotFoundError, CaptureErrorKind.DEVICE_NOT_FOUND),
    (OverconstrainedError, CaptureErrorKind.CONSTRAINTS_UNSATISFIABLE),
    (UnsupportedPlatformError, CaptureErrorKind.UNSUPPORTED_PLATFORM),
)


def classify_device_error(error: Exception) -> CaptureErrorKind:
    """Map a device exception to the error kind shown to the user."""
    for error_type, kind in _DEVICE_ERROR_KINDS:
        if isinstance(error, error_type):
            return kind
    return CaptureErrorKind.GENERIC_FAILURE


class CaptureSession:
    """
    Camera lifecycle state machine for a single capture UI session.

    All state is owned by the instance; independent sessions never
    share anything. Intended to run on one asyncio event loop.
    """

    def __init__(
        self,
        device: MediaDevice,
        surface: RenderSurface,
        settings: Optional[CameraSettings] = None,
    ):
        self._device = device
        self._surface = surface
        self._settings = settings or get_settings().camera
        self._logger = structlog.get_logger(__name__)

        self._state = CaptureState.IDLE
        self._generation = 0
        self._stream: Optional[MediaStream] = None
        self._playing: Optional[asyncio.Event] = None
        self._playing_listener = None
        self._playback_rejection: Optional[str] = None

        self._last_error: Optional[CaptureError] = None
        self._capture_error: Optional[CaptureError] = None
        self._last_capture: Optional[CapturedPhoto] = None

    # -------------------------------------------------------------------------
    # Observable state
    # -------------------------------------------------------------------------

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def is_streaming(self) -> bool:
        return self._state == CaptureState.STREAMING

    @property
    def last_error(self) -> Optional[CaptureError]:
        """Acquisition or playback failure that put the session in ERROR."""
        return self._last_error

    @property
    def capture_error(self) -> Optional[CaptureError]:
        """Failure of the most recent capture() call."""
        return self._capture_error

    @property
    def last_capture(self) -> Optional[CapturedPhoto]:
        return self._last_capture

    @property
    def generation(self) -> int:
        return self._generation

    def status(self) -> CaptureStatus:
        return CaptureStatus(
            state=self._state,
            last_error=self._last_error,
            capture_error=self._capture_error,
            has_capture=self._last_capture is not None,
            generation=self._generation,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def request_start(self, preferred_facing: Optional[FacingMode] = None) -> bool:
        """
        Acquire the camera and wait until frames are confirmed.

        Args:
            preferred_facing: Camera to ask for first. Defaults to the
                outward-facing camera on handheld devices and the
                inward-facing one otherwise.

        Returns:
            True once STREAMING. False if rejected, failed, or superseded
            by stop() - check `state` and `last_error` for which.
        """
        if self._state == CaptureState.REQUESTING:
            self._logger.info(
                "camera_start_rejected",
                reason="acquisition_in_flight",
                generation=self._generation,
            )
            return False

        # Stop before start
        self._release_resources()

        self._generation += 1
        generation = self._generation
        self._last_error = None
        self._capture_error = None
        self._last_capture = None
        self._playback_rejection = None
        self._set_state(CaptureState.REQUESTING)

        if not self._device.supported:
            self._fail(
                CaptureErrorKind.UNSUPPORTED_PLATFORM,
                "Platform does not expose a camera API",
            )
            return False

        facing = preferred_facing or self._settings.default_facing

        try:
            stream = await self._acquire(facing, generation)
        except MediaDeviceError as e:
            if self._is_stale(generation):
                return False
            self._fail(classify_device_error(e), str(e) or type(e).__name__)
            return False
        except Exception as e:
            if self._is_stale(generation):
                return False
            self._fail(CaptureErrorKind.GENERIC_FAILURE, str(e) or type(e).__name__)
            return False

        if self._is_stale(generation):
            self._logger.info("camera_stale_stream_discarded", generation=generation)
            self._release_stream(stream)
            return False

        self._stream = stream
        playing = asyncio.Event()
        self._playing = playing

        try:
            self._subscribe_playing(generation, playing)
            self._surface.bind(stream)
        except Exception as e:
            self._release_resources()
            self._fail(
                CaptureErrorKind.GENERIC_FAILURE,
                f"Could not attach stream to surface: {e}",
            )
            return False

        confirmed = await self._await_playback(generation, playing)

        if self._is_stale(generation):
            return False

        if not confirmed:
            self._release_resources()
            message = (
                f"No frames within {self._settings.playback_timeout_seconds}s "
                "of acquiring the stream"
            )
            if self._playback_rejection:
                message += f" (playback refused: {self._playback_rejection})"
            self._fail(CaptureErrorKind.PLAYBACK_TIMEOUT, message)
            return False

        self._set_state(CaptureState.STREAMING)
        return True

    def stop(self) -> None:
        """
        Release everything and return to IDLE.

        Safe from any state, any number of times. An acquisition or
        playback wait still in flight will see that it was superseded
        and discard its result.
        """
        self._generation += 1
        self._release_resources()
        self._last_capture = None
        self._last_error = None
        self._capture_error = None
        self._set_state(CaptureState.IDLE)

    async def restart(self, preferred_facing: Optional[FacingMode] = None) -> bool:
        """Stop, let the platform settle, then start again."""
        if self._state == CaptureState.REQUESTING:
            self._logger.info(
                "camera_restart_rejected",
                reason="acquisition_in_flight",
                generation=self._generation,
            )
            return False

        self.stop()
        await asyncio.sleep(self._settings.restart_settle_seconds)
        return await self.request_start(preferred_facing)

    # -------------------------------------------------------------------------
    # Capture
    # -------------------------------------------------------------------------

    def capture(self) -> Optional[CapturedPhoto]:
        """
        Encode the frame currently on the surface as a JPEG still.

        Only valid while STREAMING. On failure returns None and sets
        `capture_error`; the stream keeps running either way.
        """
        if self._state != CaptureState.STREAMING:
            self._capture_failed(
                CaptureErrorKind.NOT_STREAMING,
                f"Cannot capture while {self._state.value}",
            )
            return None

        self._set_state(CaptureState.CAPTURING)
        try:
            photo = self._capture_frame()
        finally:
            if self._state == CaptureState.CAPTURING:
                self._set_state(CaptureState.STREAMING)

        if photo is not None:
            self._last_capture = photo
            self._capture_error = None
            self._logger.info(
                "camera_photo_captured",
                width=photo.width,
                height=photo.height,
                size_bytes=photo.size_bytes,
                generation=self._generation,
            )
        return photo

    def reset(self) -> bool:
        """
        Discard the last capture so another can be taken.

        Keeps the stream running. Only valid while STREAMING.
        """
        if self._state != CaptureState.STREAMING:
            self._logger.info("camera_reset_ignored", state=self._state.value)
            return False

        self._last_capture = None
        self._capture_error = None
        return True

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation

    def _set_state(self, state: CaptureState) -> None:
        if state != self._state:
            self._logger.debug(
                "camera_state_changed",
                previous=self._state.value,
                state=state.value,
                generation=self._generation,
            )
        self._state = state

    def _fail(self, kind: CaptureErrorKind, message: str) -> None:
        self._last_error = CaptureError(kind=kind, message=message)
        self._logger.warning(
            "camera_failed",
            kind=kind.value,
            category=kind.category,
            error=message,
            generation=self._generation,
        )
        self._set_state(CaptureState.ERROR)

    def _capture_failed(self, kind: CaptureErrorKind, message: str) -> None:
        self._capture_error = CaptureError(kind=kind, message=message)
        self._logger.warning(
            "camera_capture_failed",
            kind=kind.value,
            error=message,
            generation=self._generation,
        )

    async def _acquire(self, facing: FacingMode, generation: int) -> MediaStream:
        constraints = MediaConstraints.for_facing(
            facing,
            exact=facing == FacingMode.ENVIRONMENT,
        )
        self._logger.info(
            "camera_acquire",
            constraints=constraints.to_dict(),
            generation=generation,
        )
        try:
            return await self._device.acquire(constraints)
        except OverconstrainedError as e:
            if self._is_stale(generation):
                raise
            relaxed = MediaConstraints.relaxed()
            self._logger.warning(
                "camera_constraints_relaxed",
                error=str(e),
                constraints=relaxed.to_dict(),
                generation=generation,
            )
            return await self._device.acquire(relaxed)

    def _subscribe_playing(self, generation: int, playing: asyncio.Event) -> None:
        def on_playing() -> None:
            if generation == self._generation:
                playing.set()

        self._playing_listener = on_playing
        self._surface.add_playing_listener(on_playing)

    async def _start_playback(self, generation: int, playing: asyncio.Event) -> None:
        try:
            await self._surface.play()
        except Exception as e:
            # Autoplay refusals are common; the poll may still see frames
            if generation == self._generation:
                self._playback_rejection = str(e) or type(e).__name__
            self._logger.warning(
                "camera_play_refused",
                error=str(e),
                generation=generation,
            )
            return

        if generation == self._generation:
            playing.set()

    def _playback_confirmed(self, playing: asyncio.Event) -> bool:
        return playing.is_set() or self._surface.is_playing

    async def _await_playback(self, generation: int, playing: asyncio.Event) -> bool:
        """
        Wait for confirmed frames, bounded by the playback timeout.

        Confirmation is whichever comes first: the surface's playing
        signal, play() resolving, or the surface reporting is_playing
        on a periodic re-check.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._settings.playback_timeout_seconds
        poll_interval = self._settings.playback_poll_interval_seconds
        play_task = loop.create_task(self._start_playback(generation, playing))

        try:
            while not self._playback_confirmed(playing):
                if self._is_stale(generation):
                    return False
                remaining = deadline - loop.time()
                if remaining <= 0:
                    return False
                try:
                    await asyncio.wait_for(playing.wait(), timeout=min(poll_interval, remaining))
                except asyncio.TimeoutError:
                    pass
            return not self._is_stale(generation)
        finally:
            if not play_task.done():
                play_task.cancel()

    def _release_stream(self, stream: MediaStream) -> None:
        try:
            stream.release()
        except Exception as e:
            self._logger.error("camera_stream_release_failed", error=str(e))

    def _release_resources(self) -> None:
        """Remove listeners, unbind the surface and release the stream."""
        if self._playing_listener is not None:
            listener, self._playing_listener = self._playing_listener, None
            try:
                self._surface.remove_playing_listener(listener)
            except Exception as e:
                self._logger.error("camera_listener_removal_failed", error=str(e))

        if self._playing is not None:
            # Wakes a pending playback wait so it can notice it was superseded
            self._playing.set()
            self._playing = None

        try:
            self._surface.unbind()
        except Exception as e:
            self._logger.error("camera_surface_unbind_failed", error=str(e))

        if self._stream is not None:
            stream, self._stream = self._stream, None
            self._release_stream(stream)
            self._logger.info("camera_stream_released", generation=self._generation)

    def _frame_size(self) -> tuple[int, int]:
        for width, height in (self._surface.video_size, self._surface.display_size):
            if width > 0 and height > 0:
                return int(width), int(height)
        return self._settings.default_frame_width, self._settings.default_frame_height

    def _capture_frame(self) -> Optional[CapturedPhoto]:
        try:
            width, height = self._frame_size()
        except Exception as e:
            self._capture_failed(CaptureErrorKind.FRAME_DRAW_FAILED, f"Frame size unavailable: {e}")
            return None

        # Any surface error counts as a draw failure, not only FrameUnavailableError
        try:
            frame = self._surface.draw_frame(width, height)
        except Exception as first_error:
            self._logger.warning(
                "camera_draw_retry",
                error=str(first_error),
                width=width,
                height=height,
            )
            try:
                frame = self._surface.draw_frame()
            except Exception as e:
                self._capture_failed(CaptureErrorKind.FRAME_DRAW_FAILED, str(e))
                return None

        try:
            data = self._encode(frame, width, height)
        except (OSError, ValueError) as e:
            self._capture_failed(CaptureErrorKind.ENCODE_FAILED, str(e))
            return None

        return CapturedPhoto(
            width=width,
            height=height,
            quality=self._settings.jpeg_quality,
            data=data,
        )

    def _encode(self, frame: Image.Image, width: int, height: int) -> bytes:
        canvas = Image.new("RGB", (width, height), self._settings.background_color)
        if frame.size != (width, height):
            frame = frame.resize((width, height))
        canvas.paste(frame.convert("RGB"), (0, 0))

        buffer = BytesIO()
        canvas.save(buffer, format="JPEG", quality=self._settings.jpeg_quality)
        return buffer.getvalue()
