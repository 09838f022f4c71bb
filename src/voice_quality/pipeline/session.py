"""Evaluation session glue: device connection x collection gate.

Two independent booleans drive the analyzer:

  connected  collecting  effect
  ---------  ----------  ------------------------------------------
  False      False       idle; history kept for the final report
  False      True        gate remembered; nothing appended (no frames)
  True       False       metrics computed live; history untouched
  True       True        metrics computed; gated samples appended

History is cleared exactly once per session, on the transition from
disconnected to connected. Repeated "connected" signals are no-ops and
a disconnect keeps the history so the report can still be produced.
A connect attempt that never starts analysis (device timeout) leaves the
session disconnected, so the next "connected" signal retries.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from voice_quality.analysis.report import ReportResult
from voice_quality.pipeline.analyzer import StreamProvider, VoiceQualityAnalyzer

ReportSink = Callable[[dict], None]


class EvaluationSession:
    """Coordinates one analyzer across session connect/disconnect and phase signals."""

    def __init__(
        self,
        analyzer: VoiceQualityAnalyzer,
        logger: Optional[logging.Logger] = None,
    ):
        self.analyzer = analyzer
        self._log = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._connected = False
        self._collecting = False
        self._sessions_started = 0

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def collecting(self) -> bool:
        return self._collecting

    @property
    def sessions_started(self) -> int:
        """Number of disconnected -> connected transitions seen (history clears)."""
        return self._sessions_started

    def on_connected(self, get_stream: StreamProvider) -> bool:
        """Session came up: clear history once, then wait for the mic and start.

        Blocks for at most the configured device timeout. Returns True when
        analysis is running.
        """
        with self._lock:
            if self._connected:
                self._log.debug("connected_signal_ignored reason=already_connected")
                return self.analyzer.is_analyzing
            self._connected = True
            self._sessions_started += 1
            session_number = self._sessions_started

        self._log.info("session_connected number=%d clearing_history", session_number)
        self.analyzer.clear_history()
        started = self.analyzer.connect(get_stream)
        if not started:
            with self._lock:
                self._connected = False
            self._log.error("session_mic_unavailable number=%d", session_number)
        return started

    def on_disconnected(self) -> None:
        """Session went down: stop analysis, keep history."""
        with self._lock:
            was_connected, self._connected = self._connected, False
        if not was_connected:
            return
        self.analyzer.stop()
        self._log.info("session_disconnected samples_kept=%d", len(self.analyzer.history))

    def set_phase_active(self, active: bool) -> None:
        """Open or close the collection gate for the assessed phase."""
        self._collecting = bool(active)
        if self._collecting and not self._connected:
            self._log.warning("collection_gate_on_without_device")
        elif self._collecting and not self.analyzer.is_analyzing:
            self._log.warning("collection_gate_on_without_analysis state=%s", self.analyzer.state.value)
        self.analyzer.set_collecting_samples(self._collecting)

    def finish(self, report_sink: Optional[ReportSink] = None) -> ReportResult:
        """Generate the report and hand its JSON form to report_sink."""
        report = self.analyzer.get_report()
        if report.ok and report_sink is not None:
            report_sink(report.to_dict())
        elif not report.ok:
            self._log.error(
                "report_unavailable samples=%d required=%d",
                report.sample_count,
                report.required_samples,
            )
        return report
