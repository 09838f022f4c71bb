"""Unit tests for stream handles, the frame source and the device wait."""

from __future__ import annotations

import threading
import unittest
from unittest import mock

import numpy as np

from fakes import READY, FakeSession, SessionRecorder, StepClock
from voice_quality.audio import source as source_module
from voice_quality.audio.config import AnalyzerConfig
from voice_quality.audio.source import FrameSource, StreamHandle, handle_for_device, wait_for_device
from voice_quality.errors import DeviceUnavailableError


class TestStreamHandle(unittest.TestCase):
    def test_readiness(self) -> None:
        self.assertTrue(StreamHandle().is_ready)
        self.assertFalse(StreamHandle(active=False).is_ready)
        self.assertFalse(StreamHandle(channels=0).is_ready)
        self.assertFalse(StreamHandle(live=False).is_ready)


class TestFrameSource(unittest.TestCase):
    def setUp(self) -> None:
        self.recorder = SessionRecorder()
        self.source = FrameSource(AnalyzerConfig(), session_factory=self.recorder, clock=StepClock(0.5))

    def test_no_frame_without_session(self) -> None:
        self.assertIsNone(self.source.read_frame())
        self.assertFalse(self.source.resume_if_suspended())

    def test_open_read_close(self) -> None:
        self.source.open(READY)
        self.assertTrue(self.source.resume_if_suspended())
        frame = self.source.read_frame()
        self.assertEqual(frame.frame_length, 1024)
        self.assertEqual(frame.timestamp, 0.0)
        self.assertEqual(self.source.read_frame().timestamp, 0.5)
        self.source.close()
        self.assertFalse(self.source.is_open)
        self.assertIsNone(self.source.read_frame())
        self.source.close()

    def test_reopen_closes_previous_session(self) -> None:
        self.source.open(READY)
        self.source.open(READY)
        self.assertTrue(self.recorder.sessions[0].closed)
        self.assertFalse(self.recorder.sessions[1].closed)

    def test_resume_failure_is_logged(self) -> None:
        source = FrameSource(session_factory=lambda h, c: FakeSession(fail_resume=True))
        source.open(READY)
        with self.assertLogs("voice_quality.audio.source", level="WARNING") as logs:
            self.assertFalse(source.resume_if_suspended())
        self.assertIn("session_resume_failed", logs.output[0])


class TestWaitForDevice(unittest.TestCase):
    def test_returns_first_ready_handle(self) -> None:
        answers = iter([None, StreamHandle(channels=0), READY])
        self.assertIs(wait_for_device(lambda: next(answers), interval_sec=0.0), READY)

    def test_times_out_after_max_attempts(self) -> None:
        calls = []
        with self.assertLogs("voice_quality.audio.source", level="ERROR"):
            result = wait_for_device(lambda: calls.append(1), interval_sec=0.0, max_attempts=5)
        self.assertIsNone(result)
        self.assertEqual(len(calls), 5)

    def test_poll_errors_count_as_misses(self) -> None:
        def flaky():
            raise OSError("PortAudio not initialized")

        self.assertIsNone(wait_for_device(flaky, interval_sec=0.0, max_attempts=2))

    def test_cancel(self) -> None:
        cancel = threading.Event()
        calls = []

        def poll():
            calls.append(1)
            cancel.set()
            return None

        self.assertIsNone(wait_for_device(poll, interval_sec=10.0, max_attempts=60, cancel=cancel))
        self.assertEqual(len(calls), 1)


class TestDeviceDiscovery(unittest.TestCase):
    DEVICES = [
        {"name": "Speakers", "max_input_channels": 0},
        {"name": "Built-in Mic", "max_input_channels": 1},
        {"name": "USB Headset", "max_input_channels": 2},
    ]

    def _fake_sd(self, default=(1, 0)):
        fake = mock.Mock()
        fake.query_devices.return_value = self.DEVICES
        fake.default.device = list(default)
        return fake

    def test_default_input_device(self) -> None:
        with mock.patch.object(source_module, "sd", self._fake_sd()):
            handle = handle_for_device()
        self.assertEqual(handle.device, 1)
        self.assertEqual(handle.name, "Built-in Mic")
        self.assertTrue(handle.is_ready)

    def test_match_by_name(self) -> None:
        with mock.patch.object(source_module, "sd", self._fake_sd()):
            handle = handle_for_device("usb")
        self.assertEqual(handle.device, 2)
        self.assertEqual(handle.channels, 2)

    def test_unknown_name(self) -> None:
        with mock.patch.object(source_module, "sd", self._fake_sd()):
            self.assertIsNone(handle_for_device("zoom"))

    def test_missing_backend(self) -> None:
        with mock.patch.object(source_module, "sd", None):
            self.assertIsNone(handle_for_device())
            with self.assertRaises(DeviceUnavailableError):
                source_module.list_input_devices()


class TestSoundDeviceSession(unittest.TestCase):
    def _session(self, fake_sd):
        with mock.patch.object(source_module, "sd", fake_sd):
            return source_module.SoundDeviceSession(READY, AnalyzerConfig())

    def test_callback_feeds_recent_samples(self) -> None:
        fake_sd = mock.Mock()
        fake_sd.InputStream.return_value.active = False
        session = self._session(fake_sd)
        self.assertTrue(session.suspended)
        session._callback(np.ones((512, 1), dtype=np.float32), 512, None, None)
        latest = session.read_latest(1024)
        self.assertEqual(float(latest[:512].sum()), 0.0)
        self.assertEqual(float(latest[512:].sum()), 512.0)

    def test_recent_samples_keep_newest_in_order(self) -> None:
        fake_sd = mock.Mock()
        session = self._session(fake_sd)
        keep = AnalyzerConfig().fft_size * 2
        session._callback(np.arange(keep, dtype=np.float32).reshape(-1, 1), keep, None, None)
        session._callback(np.full((3, 1), -1.0, dtype=np.float32), 3, None, None)
        latest = session.read_latest(5)
        np.testing.assert_array_equal(latest, [keep - 2, keep - 1, -1, -1, -1])

    def test_stereo_callback_is_averaged(self) -> None:
        session = self._session(mock.Mock())
        session._callback(np.tile([[0.2, 0.6]], (4, 1)).astype(np.float32), 4, None, None)
        np.testing.assert_allclose(session.read_latest(4), [0.4] * 4, rtol=1e-6)

    def test_read_longer_than_history_zero_pads(self) -> None:
        session = self._session(mock.Mock())
        session._callback(np.ones((2, 1), dtype=np.float32), 2, None, None)
        latest = session.read_latest(AnalyzerConfig().fft_size * 2 + 3)
        self.assertEqual(len(latest), AnalyzerConfig().fft_size * 2 + 3)
        self.assertEqual(float(latest.sum()), 2.0)

    def test_resume_and_close(self) -> None:
        fake_sd = mock.Mock()
        stream = fake_sd.InputStream.return_value
        stream.active = False
        session = self._session(fake_sd)
        session.resume()
        stream.start.assert_called_once()
        session.close()
        session.close()
        self.assertTrue(session.closed)
        self.assertFalse(session.suspended)
        stream.close.assert_called_once()

    def test_open_failure(self) -> None:
        fake_sd = mock.Mock()
        fake_sd.InputStream.side_effect = RuntimeError("Invalid device")
        with self.assertRaises(DeviceUnavailableError):
            self._session(fake_sd)


if __name__ == "__main__":
    unittest.main()
