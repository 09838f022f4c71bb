"""Frame source: device capture session, analyser node and device-ready wait."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

import numpy as np

try:
    import sounddevice as sd
except (ImportError, OSError):  # OSError: PortAudio library missing
    sd = None  # type: ignore

from voice_quality.audio.config import AnalyzerConfig
from voice_quality.audio.frames import AnalyserNode, AudioFrame
from voice_quality.errors import DeviceUnavailableError

DeviceId = Union[int, str, None]


@dataclass(frozen=True)
class StreamHandle:
    """A device stream offered by the host.

    channels is the number of audio input channels (0 means no audio track);
    live is False once the device has been unplugged or released.
    """

    device: DeviceId = None
    active: bool = True
    channels: int = 1
    live: bool = True
    name: str = ""

    @property
    def is_ready(self) -> bool:
        return self.active and self.channels > 0 and self.live

    def describe(self) -> str:
        return (
            f"device={self.device!r} name={self.name!r} active={self.active} "
            f"channels={self.channels} live={self.live}"
        )


def _require_sounddevice() -> Any:
    if sd is None:
        raise DeviceUnavailableError("sounddevice is required for capture. pip install sounddevice")
    return sd


def list_input_devices() -> List[Dict[str, Any]]:
    """All PortAudio devices with at least one input channel."""
    backend = _require_sounddevice()
    devices = backend.query_devices()
    return [dict(d, index=i) for i, d in enumerate(devices) if d.get("max_input_channels", 0) > 0]


def handle_for_device(name: Optional[str] = None) -> Optional[StreamHandle]:
    """StreamHandle for the first input device matching name (default device when None).

    Returns None when no such input device exists.
    """
    try:
        candidates = list_input_devices()
    except DeviceUnavailableError:
        return None
    if not candidates:
        return None
    if name:
        matches = [d for d in candidates if name.lower() in d.get("name", "").lower()]
        if not matches:
            return None
        device = matches[0]
    else:
        default_index = _default_input_index()
        device = next((d for d in candidates if d["index"] == default_index), candidates[0])
    return StreamHandle(
        device=device["index"],
        active=True,
        channels=int(device.get("max_input_channels", 0)),
        live=True,
        name=device.get("name", ""),
    )


def _default_input_index() -> Optional[int]:
    if sd is None:
        return None
    try:
        index = sd.default.device[0]
    except (TypeError, IndexError):
        return None
    return index if isinstance(index, int) and index >= 0 else None


class CaptureSession(Protocol):
    """Device capture session feeding the analyser."""

    @property
    def suspended(self) -> bool: ...

    @property
    def closed(self) -> bool: ...

    def resume(self) -> None: ...

    def read_latest(self, n: int) -> np.ndarray: ...

    def close(self) -> None: ...


SessionFactory = Callable[[StreamHandle, AnalyzerConfig], CaptureSession]


class SoundDeviceSession:
    """PortAudio input stream keeping the most recent fft_size * 2 samples.

    The stream is created stopped (suspended); resume() starts it. The
    PortAudio callback runs on its own thread, so buffer access is locked.
    Before enough audio has arrived the history reads as leading zeros.
    """

    def __init__(
        self,
        handle: StreamHandle,
        config: AnalyzerConfig,
        logger: Optional[logging.Logger] = None,
    ):
        backend = _require_sounddevice()
        self.config = config
        self._log = logger or logging.getLogger(__name__)
        self._recent = np.zeros(config.fft_size * 2, dtype=np.float32)
        self._lock = threading.Lock()
        self._closed = False
        try:
            self._stream = backend.InputStream(
                samplerate=config.sample_rate,
                channels=config.channels,
                dtype=config.dtype,
                device=handle.device,
                callback=self._callback,
            )
        except Exception as exc:
            raise DeviceUnavailableError(f"Cannot open input stream: {exc}") from exc

    def _callback(self, indata: np.ndarray, _frames: int, _time: object, status: object) -> None:
        if status:
            self._log.debug("capture_status status=%s", status)
        mono = indata.mean(axis=1) if indata.ndim > 1 else indata
        if len(mono) == 0:
            return
        keep = len(self._recent)
        with self._lock:
            self._recent = np.concatenate((self._recent, mono.astype(np.float32)))[-keep:]

    @property
    def suspended(self) -> bool:
        return not self._closed and not self._stream.active

    @property
    def closed(self) -> bool:
        return self._closed

    def resume(self) -> None:
        if self._closed:
            return
        self._stream.start()

    def read_latest(self, n: int) -> np.ndarray:
        with self._lock:
            recent = self._recent
        if n <= len(recent):
            return recent[-n:].copy()
        return np.concatenate((np.zeros(n - len(recent), dtype=np.float32), recent))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._stream.stop()
        finally:
            self._stream.close()


def sounddevice_session(handle: StreamHandle, config: AnalyzerConfig) -> CaptureSession:
    return SoundDeviceSession(handle, config)


class FrameSource:
    """Owns one capture session and the analyser node that frames it."""

    def __init__(
        self,
        config: Optional[AnalyzerConfig] = None,
        session_factory: Optional[SessionFactory] = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or AnalyzerConfig()
        self.session_factory = session_factory or sounddevice_session
        self.clock = clock
        self._log = logger or logging.getLogger(__name__)
        self.analyser = AnalyserNode(self.config)
        self._session: Optional[CaptureSession] = None

    @property
    def is_open(self) -> bool:
        return self._session is not None and not self._session.closed

    def open(self, handle: StreamHandle) -> CaptureSession:
        """Open a capture session for handle. Raises DeviceUnavailableError."""
        self.close()
        self.analyser.reset()
        self._session = self.session_factory(handle, self.config)
        self._log.info(
            "session_opened %s fft_size=%d smoothing=%.2f range=[%.0f,%.0f]dB",
            handle.describe(),
            self.config.fft_size,
            self.config.smoothing_time_constant,
            self.config.min_decibels,
            self.config.max_decibels,
        )
        return self._session

    def resume_if_suspended(self) -> bool:
        """Try once to resume a suspended session. Failure is logged, never raised.

        Returns True when the session is running afterwards.
        """
        session = self._session
        if session is None or session.closed:
            return False
        if not session.suspended:
            return True
        try:
            session.resume()
        except Exception as exc:
            self._log.warning("session_resume_failed error=%s (continuing)", exc)
            return False
        return not session.suspended

    def read_frame(self) -> Optional[AudioFrame]:
        """Frame the latest captured samples; None when no session is open."""
        session = self._session
        if session is None or session.closed:
            return None
        samples = session.read_latest(self.config.fft_size)
        return self.analyser.frame(samples, self.clock())

    def close(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        try:
            session.close()
        except Exception as exc:
            self._log.warning("session_close_failed error=%s", exc)
        else:
            self._log.info("session_closed")


def wait_for_device(
    get_stream: Callable[[], Optional[StreamHandle]],
    interval_sec: float = 0.5,
    max_attempts: int = 60,
    cancel: Optional[threading.Event] = None,
    logger: Optional[logging.Logger] = None,
) -> Optional[StreamHandle]:
    """Poll get_stream until it returns a ready handle.

    Bounded by max_attempts * interval_sec. Returns None on timeout or when
    cancel is set; a failing get_stream counts as a missed attempt.
    """
    log = logger or logging.getLogger(__name__)
    cancel = cancel or threading.Event()
    handle: Optional[StreamHandle] = None

    for attempt in range(1, max_attempts + 1):
        if cancel.is_set():
            log.info("device_wait_cancelled attempt=%d", attempt)
            return None
        try:
            handle = get_stream()
        except Exception as exc:
            log.debug("device_poll_failed attempt=%d error=%s", attempt, exc)
            handle = None
        if handle is not None and handle.is_ready:
            log.info("device_ready attempt=%d %s", attempt, handle.describe())
            return handle
        if attempt % 4 == 0:
            log.info(
                "device_waiting attempt=%d/%d stream=%s",
                attempt,
                max_attempts,
                handle.describe() if handle is not None else "none",
            )
        if attempt < max_attempts and cancel.wait(interval_sec):
            log.info("device_wait_cancelled attempt=%d", attempt)
            return None

    log.error(
        "device_timeout attempts=%d timeout_sec=%.1f final=%s",
        max_attempts,
        interval_sec * max_attempts,
        handle.describe() if handle is not None else "none",
    )
    return None
