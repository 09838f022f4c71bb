"""Current metrics and the gated, capped sample history."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional, Tuple

from voice_quality.audio.config import AnalyzerConfig
from voice_quality.audio.features import (
    compute_clarity,
    compute_pace,
    compute_pitch,
    compute_volume,
)
from voice_quality.audio.frames import AudioFrame

# Log one "audio while gate off" notice per this many gated-out frames.
_GATE_OFF_LOG_EVERY = 100

# Tolerance for float timestamps sitting exactly on the dedup interval.
_INTERVAL_EPSILON = 1e-9


@dataclass(frozen=True)
class MetricSample:
    """Voice metrics of one frame. pitch is 0 when undetected."""

    pitch: float = 0.0
    volume: float = 0.0
    clarity: float = 0.0
    pace: float = 0.0
    timestamp: float = 0.0


def measure(frame: AudioFrame, volume_gate: float = 8.0) -> MetricSample:
    """Run the extractors on one frame.

    Pitch, clarity and pace are only computed when volume exceeds the gate.
    """
    volume = compute_volume(frame.time_data)
    if volume <= volume_gate:
        return MetricSample(volume=volume, timestamp=frame.timestamp)
    return MetricSample(
        pitch=compute_pitch(frame.time_data, frame.sample_rate),
        volume=volume,
        clarity=compute_clarity(frame.frequency_data),
        pace=compute_pace(frame.time_data),
        timestamp=frame.timestamp,
    )


class SampleCollector:
    """Keeps current metrics and a FIFO-capped history of gated samples.

    A sample is appended only when the collection gate is on, its volume
    passed the meaningful-audio gate, and at least sample_interval has
    elapsed since the last appended sample. Current metrics are replaced
    on every frame regardless.
    """

    def __init__(
        self,
        config: Optional[AnalyzerConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or AnalyzerConfig()
        self._log = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._history: Deque[MetricSample] = deque(maxlen=self.config.max_history)
        self._current = MetricSample()
        self._collecting = False
        self._last_appended_at: Optional[float] = None
        self._gated_out_frames = 0

    @property
    def collecting(self) -> bool:
        return self._collecting

    def set_collecting_samples(self, collecting: bool) -> None:
        """Open or close the collection gate."""
        collecting = bool(collecting)
        if collecting != self._collecting:
            self._log.info("collection_gate state=%s", "on" if collecting else "off")
        self._collecting = collecting

    def clear_history(self) -> None:
        """Drop all history; current metrics are kept."""
        with self._lock:
            dropped = len(self._history)
            self._history.clear()
            self._last_appended_at = None
        self._log.info("history_cleared dropped=%d", dropped)

    def process_frame(self, frame: AudioFrame) -> MetricSample:
        """Measure frame, update current metrics, append to history when gated in."""
        sample = measure(frame, self.config.volume_gate)
        self.add_sample(sample)
        return sample

    def add_sample(self, sample: MetricSample) -> bool:
        """Record sample as current metrics. Returns True if it entered history."""
        with self._lock:
            self._current = sample
            if sample.volume <= self.config.volume_gate:
                return False
            if not self._collecting:
                self._gated_out_frames += 1
                if self._gated_out_frames % _GATE_OFF_LOG_EVERY == 1:
                    self._log.debug("audio_while_gate_off frames=%d", self._gated_out_frames)
                return False
            if (
                self._last_appended_at is not None
                and sample.timestamp - self._last_appended_at + _INTERVAL_EPSILON
                < self.config.sample_interval_sec
            ):
                return False
            self._history.append(sample)
            self._last_appended_at = sample.timestamp
            count = len(self._history)

        if count == 1 or count % 5 == 0:
            self._log.debug(
                "sample_collected count=%d volume=%.1f clarity=%.1f pitch=%.1f",
                count,
                sample.volume,
                sample.clarity,
                sample.pitch,
            )
        return True

    @property
    def current_metrics(self) -> MetricSample:
        return self._current

    @property
    def history(self) -> Tuple[MetricSample, ...]:
        """Immutable snapshot of the history, oldest first."""
        with self._lock:
            return tuple(self._history)

    def snapshot(self) -> Tuple[MetricSample, Tuple[MetricSample, ...]]:
        """Current metrics and history read together."""
        with self._lock:
            return self._current, tuple(self._history)

    def __len__(self) -> int:
        return len(self._history)
