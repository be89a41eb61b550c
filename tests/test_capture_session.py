"""
Tests for the camera capture session.

The session is driven against fakes from conftest. Each test runs its
own event loop through asyncio.run.
"""

import asyncio

import pytest

from expense_journal.camera import (
    CaptureSession,
    DeviceNotFoundError,
    MediaDeviceError,
    OverconstrainedError,
    PermissionDeniedError,
    UnsupportedPlatformError,
    classify_device_error,
)
from expense_journal.config import CameraSettings
from expense_journal.models.capture import CaptureErrorKind, CaptureState, FacingMode


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def session(device, surface, camera_settings) -> CaptureSession:
    return CaptureSession(device, surface, camera_settings)


class TestStart:
    """Acquisition and playback confirmation."""

    def test_start_reaches_streaming(self, session, device, surface):
        """play() resolving confirms playback."""
        assert run(session.request_start()) is True
        assert session.state == CaptureState.STREAMING
        assert session.last_error is None
        assert surface.bound is device.streams[0]
        assert len(device.calls) == 1

    def test_desktop_asks_for_inward_camera(self, session, device):
        """Non-handheld devices request the user-facing camera, not exact."""
        run(session.request_start())
        assert device.calls[0].to_dict() == {
            "video": {"facingMode": "user"},
            "audio": False,
        }

    def test_handheld_asks_for_exact_outward_camera(self, device, surface):
        """Handheld devices request the environment camera exactly."""
        settings = CameraSettings(
            handheld_device=True,
            playback_timeout_seconds=0.2,
            playback_poll_interval_seconds=0.02,
        )
        session = CaptureSession(device, surface, settings)
        run(session.request_start())
        assert device.calls[0].facing_mode == FacingMode.ENVIRONMENT
        assert device.calls[0].exact_facing is True

    def test_explicit_facing_overrides_default(self, session, device):
        """A preferred facing mode is used as given."""
        run(session.request_start(FacingMode.ENVIRONMENT))
        assert device.calls[0].facing_mode == FacingMode.ENVIRONMENT

    def test_playing_signal_confirms_when_play_hangs(self, session, surface):
        """The surface's playing event alone is enough."""
        surface.play_result = "hang"
        surface.emit_playing_on_bind = True
        assert run(session.request_start()) is True
        assert session.state == CaptureState.STREAMING

    def test_poll_confirms_when_no_signal_arrives(self, session, surface):
        """is_playing seen on the periodic re-check is enough."""
        surface.play_result = "reject"
        surface.reports_playing = True
        assert run(session.request_start()) is True
        assert session.state == CaptureState.STREAMING

    def test_listener_removed_on_stop(self, session, surface):
        """No playing listener survives stop()."""
        run(session.request_start())
        assert len(surface.listeners) == 1
        session.stop()
        assert surface.listeners == []


class TestAcquisitionErrors:
    """Device failures are classified and reported through state."""

    def test_permission_denied(self, device, session):
        device.outcomes = [PermissionDeniedError("denied")]
        assert run(session.request_start()) is False
        assert session.state == CaptureState.ERROR
        assert session.last_error.kind == CaptureErrorKind.PERMISSION_DENIED
        # Only constraint failures are retried
        assert len(device.calls) == 1

    def test_device_not_found(self, device, session):
        device.outcomes = [DeviceNotFoundError("none")]
        run(session.request_start())
        assert session.last_error.kind == CaptureErrorKind.DEVICE_NOT_FOUND

    def test_unknown_exception_is_generic_failure(self, device, session):
        device.outcomes = [RuntimeError("boom")]
        assert run(session.request_start()) is False
        assert session.last_error.kind == CaptureErrorKind.GENERIC_FAILURE
        assert "boom" in session.last_error.message

    def test_unsupported_platform_never_calls_device(self, device, session):
        device.is_supported = False
        assert run(session.request_start()) is False
        assert session.state == CaptureState.ERROR
        assert session.last_error.kind == CaptureErrorKind.UNSUPPORTED_PLATFORM
        assert device.calls == []

    def test_overconstrained_retries_once_relaxed(self, device, session):
        """One relaxed retry when the facing mode cannot be satisfied."""
        device.outcomes = [OverconstrainedError("facingMode")]
        assert run(session.request_start(FacingMode.ENVIRONMENT)) is True
        assert len(device.calls) == 2
        assert device.calls[1].is_relaxed
        assert device.calls[1].to_dict() == {"video": True, "audio": False}

    def test_overconstrained_twice_fails(self, device, session):
        device.outcomes = [OverconstrainedError("a"), OverconstrainedError("b")]
        assert run(session.request_start()) is False
        assert len(device.calls) == 2
        assert session.last_error.kind == CaptureErrorKind.CONSTRAINTS_UNSATISFIABLE

    def test_error_state_can_start_again(self, device, session):
        """A new request from ERROR clears the old error."""
        device.outcomes = [PermissionDeniedError("denied")]

        async def scenario():
            await session.request_start()
            assert session.state == CaptureState.ERROR
            return await session.request_start()

        assert run(scenario()) is True
        assert session.state == CaptureState.STREAMING
        assert session.last_error is None

    def test_classify_device_error(self):
        assert classify_device_error(PermissionDeniedError()) == CaptureErrorKind.PERMISSION_DENIED
        assert classify_device_error(DeviceNotFoundError()) == CaptureErrorKind.DEVICE_NOT_FOUND
        assert classify_device_error(OverconstrainedError()) == CaptureErrorKind.CONSTRAINTS_UNSATISFIABLE
        assert classify_device_error(UnsupportedPlatformError()) == CaptureErrorKind.UNSUPPORTED_PLATFORM
        assert classify_device_error(MediaDeviceError()) == CaptureErrorKind.GENERIC_FAILURE
        assert classify_device_error(ValueError()) == CaptureErrorKind.GENERIC_FAILURE


class TestPlaybackTimeout:
    """Acquired streams that never show frames."""

    def test_timeout_releases_stream_and_reports(self, device, surface, session):
        surface.play_result = "reject"
        assert run(session.request_start()) is False
        assert session.state == CaptureState.ERROR
        assert session.last_error.kind == CaptureErrorKind.PLAYBACK_TIMEOUT
        assert session.last_error.kind.category == "playback"
        assert "playback refused" in session.last_error.message
        assert device.streams[0].active is False
        assert surface.bound is None
        assert surface.listeners == []

    def test_timeout_when_play_hangs(self, device, surface, session):
        surface.play_result = "hang"
        assert run(session.request_start()) is False
        assert session.last_error.kind == CaptureErrorKind.PLAYBACK_TIMEOUT
        assert device.streams[0].active is False


class TestReentrancy:
    """At most one acquisition in flight; stop before start."""

    def test_rapid_double_start_acquires_once(self, device, session):
        device.delay = 0.05

        async def scenario():
            first = asyncio.ensure_future(session.request_start())
            await asyncio.sleep(0)
            assert session.state == CaptureState.REQUESTING
            second = await session.request_start()
            return await first, second

        first, second = run(scenario())
        assert first is True
        assert second is False
        assert len(device.calls) == 1

    def test_start_while_streaming_releases_old_stream_first(
        self, device, surface, session, hardware_log
    ):
        """The old stream is released before new hardware is requested."""

        async def scenario():
            await session.request_start()
            return await session.request_start()

        assert run(scenario()) is True

        second_acquire = [i for i, entry in enumerate(hardware_log) if entry[0] == "acquire"][1]
        assert hardware_log.index(("unbind", 1)) < second_acquire
        assert hardware_log.index(("release", 1)) < second_acquire
        assert device.streams[0].active is False
        assert surface.bound is device.streams[1]

    def test_restart_replaces_stream(self, device, session):
        async def scenario():
            await session.request_start()
            return await session.restart()

        assert run(scenario()) is True
        assert len(device.streams) == 2
        assert device.streams[0].active is False
        assert device.streams[1].active is True

    def test_restart_rejected_while_requesting(self, device, session):
        device.delay = 0.05

        async def scenario():
            first = asyncio.ensure_future(session.request_start())
            await asyncio.sleep(0)
            restarted = await session.restart()
            await first
            return restarted

        assert run(scenario()) is False
        assert len(device.calls) == 1


class TestStop:
    """stop() is idempotent and supersedes in-flight work."""

    def test_stop_is_idempotent(self, device, session):
        run(session.request_start())
        session.stop()
        session.stop()
        assert session.state == CaptureState.IDLE
        assert device.streams[0].release_calls == 1

    def test_stop_on_fresh_session(self, session):
        session.stop()
        session.stop()
        assert session.state == CaptureState.IDLE
        assert session.last_error is None

    def test_stop_clears_error(self, device, session):
        device.outcomes = [PermissionDeniedError("denied")]
        run(session.request_start())
        session.stop()
        assert session.state == CaptureState.IDLE
        assert session.last_error is None

    def test_stop_during_acquisition_discards_late_stream(
        self, device, surface, session, hardware_log
    ):
        """A stream that arrives after stop() is released, never bound."""
        device.delay = 0.05

        async def scenario():
            pending = asyncio.ensure_future(session.request_start())
            await asyncio.sleep(0)
            session.stop()
            return await pending

        assert run(scenario()) is False
        assert session.state == CaptureState.IDLE
        assert session.last_error is None
        assert device.streams[0].active is False
        assert not any(entry[0] == "bind" for entry in hardware_log)

    def test_stop_during_playback_wait(self, device, surface, session):
        """stop() while waiting for frames ends the wait without an error."""
        surface.play_result = "hang"

        async def scenario():
            pending = asyncio.ensure_future(session.request_start())
            await asyncio.sleep(0.03)
            session.stop()
            return await pending

        assert run(scenario()) is False
        assert session.state == CaptureState.IDLE
        assert session.last_error is None
        assert device.streams[0].active is False

    def test_stop_bumps_generation(self, session):
        before = session.generation
        session.stop()
        assert session.generation == before + 1


class TestCapture:
    """Taking stills from the live stream."""

    def test_capture_while_streaming(self, session):
        run(session.request_start())
        photo = session.capture()

        assert photo is not None
        assert photo.data[:2] == b"\xff\xd8"
        assert (photo.width, photo.height) == (320, 240)
        assert photo.mime_type == "image/jpeg"
        assert session.state == CaptureState.STREAMING
        assert session.last_capture is photo
        assert session.status().has_capture is True
        assert photo.to_data_url().startswith("data:image/jpeg;base64,")

    @pytest.mark.parametrize("setup", ["idle", "error"])
    def test_capture_outside_streaming_fails_softly(self, device, session, setup):
        if setup == "error":
            device.outcomes = [PermissionDeniedError("denied")]
            run(session.request_start())
        state_before = session.state

        assert session.capture() is None
        assert session.capture_error.kind == CaptureErrorKind.NOT_STREAMING
        assert session.state == state_before

    def test_capture_while_requesting_fails_softly(self, device, session):
        device.delay = 0.05

        async def scenario():
            pending = asyncio.ensure_future(session.request_start())
            await asyncio.sleep(0)
            photo = session.capture()
            kind = session.capture_error.kind
            state = session.state
            await pending
            return photo, kind, state

        photo, kind, state = run(scenario())
        assert photo is None
        assert kind == CaptureErrorKind.NOT_STREAMING
        assert state == CaptureState.REQUESTING
        assert session.state == CaptureState.STREAMING

    def test_display_size_used_when_video_size_unknown(self, surface, session):
        surface.video_size_value = (0, 0)
        surface.display_size_value = (200, 100)
        run(session.request_start())
        photo = session.capture()
        assert (photo.width, photo.height) == (200, 100)

    def test_default_size_when_nothing_known(self, surface, session):
        surface.video_size_value = (0, 0)
        surface.display_size_value = (0, 0)
        run(session.request_start())
        photo = session.capture()
        assert (photo.width, photo.height) == (640, 480)

    def test_draw_falls_back_to_native_size(self, surface, session):
        """A failed sized draw is retried once without a size."""
        run(session.request_start())
        surface.draw_failures = 1
        photo = session.capture()
        assert photo is not None
        assert surface.draw_calls == [(320, 240), (None, None)]
        assert (photo.width, photo.height) == (320, 240)

    def test_draw_failure_keeps_stream(self, surface, session):
        run(session.request_start())
        surface.draw_failures = 2
        assert session.capture() is None
        assert session.capture_error.kind == CaptureErrorKind.FRAME_DRAW_FAILED
        assert session.state == CaptureState.STREAMING
        assert session.last_error is None

    def test_unexpected_draw_error_is_reported(self, surface, session, monkeypatch):
        """A surface error other than FrameUnavailableError is still soft."""
        run(session.request_start())

        def lost_context(width=None, height=None):
            raise RuntimeError("canvas context lost")

        monkeypatch.setattr(surface, "draw_frame", lost_context)
        assert session.capture() is None
        assert session.capture_error.kind == CaptureErrorKind.FRAME_DRAW_FAILED
        assert "canvas context lost" in session.capture_error.message
        assert session.state == CaptureState.STREAMING

    def test_unreadable_frame_size_is_reported(self, surface, session, monkeypatch):
        run(session.request_start())

        def broken_size(self):
            raise RuntimeError("surface detached")

        monkeypatch.setattr(type(surface), "video_size", property(broken_size))
        assert session.capture() is None
        assert session.capture_error.kind == CaptureErrorKind.FRAME_DRAW_FAILED
        assert session.state == CaptureState.STREAMING

    def test_encode_failure(self, device, surface):
        settings = CameraSettings(
            background_color="not-a-colour",
            playback_timeout_seconds=0.2,
            playback_poll_interval_seconds=0.02,
        )
        session = CaptureSession(device, surface, settings)
        run(session.request_start())
        assert session.capture() is None
        assert session.capture_error.kind == CaptureErrorKind.ENCODE_FAILED
        assert session.state == CaptureState.STREAMING

    def test_reset_discards_capture(self, session):
        run(session.request_start())
        session.capture()
        assert session.reset() is True
        assert session.last_capture is None
        assert session.state == CaptureState.STREAMING

    def test_reset_outside_streaming(self, session):
        assert session.reset() is False
        assert session.state == CaptureState.IDLE

    def test_stop_discards_capture(self, session):
        run(session.request_start())
        session.capture()
        session.stop()
        assert session.last_capture is None


class TestIndependentSessions:
    """Sessions share no state."""

    def test_two_sessions_do_not_interfere(self, camera_settings, hardware_log):
        from conftest import FakeMediaDevice, FakeSurface

        a = CaptureSession(FakeMediaDevice(hardware_log), FakeSurface(hardware_log), camera_settings)
        b = CaptureSession(FakeMediaDevice(hardware_log), FakeSurface(hardware_log), camera_settings)

        run(a.request_start())
        assert a.state == CaptureState.STREAMING
        assert b.state == CaptureState.IDLE
        b.stop()
        assert a.state == CaptureState.STREAMING
