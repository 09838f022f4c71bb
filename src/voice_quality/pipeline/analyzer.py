"""Real-time voice quality analyzer: device lifecycle -> frames -> metrics -> report.

Lifecycle:
  IDLE --start(ready handle)--> ACQUIRING --session open--> ANALYZING
  any  --stop()--> STOPPED  (idempotent; history is kept)
  IDLE, STOPPED --device wait timeout--> STOPPED
  STOPPED --start(ready handle)--> ACQUIRING ...

A rejected start (inactive stream, no live audio channel, device error)
leaves the state unchanged. Frames are pulled by one loop thread at the
display rate; readers take snapshots from the collector.
"""

from __future__ import annotations

import enum
import logging
import threading
from typing import Callable, Iterable, List, Optional

from voice_quality.analysis.collector import MetricSample, SampleCollector
from voice_quality.analysis.report import ReportResult, ScoreCard, generate_report, live_scores
from voice_quality.audio.config import AnalyzerConfig
from voice_quality.audio.frames import AudioFrame
from voice_quality.audio.source import FrameSource, SessionFactory, StreamHandle, wait_for_device

StreamProvider = Callable[[], Optional[StreamHandle]]


class LifecycleState(str, enum.Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    ANALYZING = "analyzing"
    STOPPED = "stopped"


class VoiceQualityAnalyzer:
    """Owns the frame source, the sample collector and the frame loop.

    Interface:
      analyzer = VoiceQualityAnalyzer(AnalyzerConfig())
      analyzer.connect(lambda: handle_for_device("USB Mic"))  # waits up to 30 s
      analyzer.set_collecting_samples(True)
      ...
      analyzer.stop()
      report = analyzer.get_report()  # AnalysisReport or InsufficientData
    """

    def __init__(
        self,
        config: Optional[AnalyzerConfig] = None,
        frame_source: Optional[FrameSource] = None,
        collector: Optional[SampleCollector] = None,
        session_factory: Optional[SessionFactory] = None,
        run_loop: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or AnalyzerConfig()
        self._log = logger or logging.getLogger(__name__)
        self.frame_source = frame_source or FrameSource(
            self.config,
            session_factory=session_factory,
            logger=self._log,
        )
        self.collector = collector or SampleCollector(self.config, logger=self._log)
        self.run_loop = run_loop

        self._lock = threading.RLock()
        self._state = LifecycleState.IDLE
        self._generation = 0
        self._loop_thread: Optional[threading.Thread] = None
        self._loop_stop: Optional[threading.Event] = None
        self._wait_cancel = threading.Event()
        self._frame_errors = 0

    # -- lifecycle -------------------------------------------------------

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def is_analyzing(self) -> bool:
        return self._state is LifecycleState.ANALYZING

    def start(self, handle: Optional[StreamHandle]) -> bool:
        """Open a capture session on handle and begin analysis.

        Returns False, leaving the state unchanged, when handle is not ready
        or the device cannot be opened.
        """
        with self._lock:
            if self._state in (LifecycleState.ACQUIRING, LifecycleState.ANALYZING):
                self._log.info("start_ignored state=%s", self._state.value)
                return self._state is LifecycleState.ANALYZING
            if handle is None or not handle.is_ready:
                self._log.warning(
                    "start_rejected reason=stream_not_ready %s",
                    handle.describe() if handle is not None else "stream=none",
                )
                return False
            previous = self._state
            self._generation += 1
            generation = self._generation
            self._state = LifecycleState.ACQUIRING

        try:
            self.frame_source.open(handle)
        except Exception as exc:
            self._log.error("start_failed error=%s", exc)
            with self._lock:
                if self._generation == generation:
                    self._state = previous
            self.frame_source.close()
            return False

        running = self.frame_source.resume_if_suspended()
        if not running:
            self._log.warning("session_suspended analysis continues best-effort")

        with self._lock:
            if self._generation != generation:
                # stop() ran while the session was being acquired
                self._log.info("start_discarded reason=stopped_during_acquire")
                self.frame_source.close()
                return False
            self._state = LifecycleState.ANALYZING
            if self.run_loop:
                self._start_loop(generation)
        self._log.info("analysis_started sample_rate=%d", self.config.sample_rate)
        return True

    def stop(self) -> None:
        """Stop the frame loop and release the session. Safe to call repeatedly."""
        with self._lock:
            self._wait_cancel.set()
            already_stopped = self._state is LifecycleState.STOPPED
            self._generation += 1
            self._state = LifecycleState.STOPPED
            loop_thread, self._loop_thread = self._loop_thread, None
            loop_stop, self._loop_stop = self._loop_stop, None

        if loop_stop is not None:
            loop_stop.set()
        if loop_thread is not None and loop_thread is not threading.current_thread():
            loop_thread.join(timeout=1.0)
        self.frame_source.close()
        if not already_stopped:
            self._log.info("analysis_stopped samples=%d", len(self.collector))

    def connect(
        self,
        get_stream: StreamProvider,
        cancel: Optional[threading.Event] = None,
    ) -> bool:
        """Wait for a ready device stream, then start on it.

        The wait is bounded by the configured attempts and is cancelled by
        stop() or by the optional cancel event. A timeout moves an idle
        analyzer to STOPPED and returns False; a session that started in
        the meantime keeps running.
        """
        with self._lock:
            if self._state in (LifecycleState.ACQUIRING, LifecycleState.ANALYZING):
                self._log.info("connect_ignored state=%s", self._state.value)
                return self._state is LifecycleState.ANALYZING
            self._wait_cancel = cancel or threading.Event()
            wait_cancel = self._wait_cancel

        handle = wait_for_device(
            get_stream,
            interval_sec=self.config.device_poll_interval_sec,
            max_attempts=self.config.device_max_attempts,
            cancel=wait_cancel,
            logger=self._log,
        )
        if handle is None:
            with self._lock:
                if wait_cancel.is_set():
                    return False
                if self._state in (LifecycleState.ACQUIRING, LifecycleState.ANALYZING):
                    self._log.warning("device_wait_timeout state=%s session_kept", self._state.value)
                    return self._state is LifecycleState.ANALYZING
                self._state = LifecycleState.STOPPED
                self._log.error(
                    "device_unavailable timeout_sec=%.1f state=%s",
                    self.config.device_timeout_sec,
                    self._state.value,
                )
            return False
        return self.start(handle)

    def cancel_connect(self) -> None:
        """Abort a pending connect() without touching a running session."""
        self._wait_cancel.set()

    # -- frame loop ------------------------------------------------------

    def _start_loop(self, generation: int) -> None:
        stop_event = threading.Event()
        thread = threading.Thread(
            target=self._run_loop,
            args=(generation, stop_event),
            name="voice-quality-frames",
            daemon=True,
        )
        self._loop_stop = stop_event
        self._loop_thread = thread
        thread.start()

    def _run_loop(self, generation: int, stop_event: threading.Event) -> None:
        interval = self.config.frame_interval_sec
        while not stop_event.wait(interval):
            if self._generation != generation:
                break
            try:
                self.step()
            except Exception:
                self._frame_errors += 1
                if self._frame_errors == 1 or self._frame_errors % 100 == 0:
                    self._log.exception("frame_failed errors=%d", self._frame_errors)

    def step(self) -> Optional[MetricSample]:
        """Pull one frame from the source and feed it to the collector."""
        if self._state is not LifecycleState.ANALYZING:
            return None
        frame = self.frame_source.read_frame()
        if frame is None:
            return None
        return self.collector.process_frame(frame)

    def process_frame(self, frame: AudioFrame) -> MetricSample:
        """Feed an externally produced frame (offline analysis, tests)."""
        return self.collector.process_frame(frame)

    def run_frames(self, frames: Iterable[AudioFrame]) -> List[MetricSample]:
        """Process frames until exhausted or stopped; returns the per-frame metrics."""
        results: List[MetricSample] = []
        for frame in frames:
            if self._state is LifecycleState.STOPPED:
                break
            results.append(self.collector.process_frame(frame))
        return results

    # -- collection gate and outputs --------------------------------------

    def set_collecting_samples(self, collecting: bool) -> None:
        self.collector.set_collecting_samples(collecting)

    def clear_history(self) -> None:
        self.collector.clear_history()

    @property
    def current_metrics(self) -> MetricSample:
        return self.collector.current_metrics

    @property
    def history(self):
        return self.collector.history

    def get_report(self) -> ReportResult:
        return generate_report(
            self.collector.history,
            min_samples=self.config.min_report_samples,
            logger=self._log,
        )

    def live_scores(self) -> Optional[ScoreCard]:
        return live_scores(
            self.collector.history,
            window=self.config.display_window,
            min_samples=self.config.min_report_samples,
        )
