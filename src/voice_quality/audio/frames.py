"""Analysis frames: ring buffer, byte time-domain and smoothed byte spectrum."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional

import numpy as np
from scipy import fft as sp_fft
from scipy.signal import get_window

from voice_quality.audio.config import AnalyzerConfig


@dataclass(frozen=True)
class AudioFrame:
    """One analysis frame.

    time_data: unsigned byte waveform, 128 = silence, shape (frame_length,).
    frequency_data: unsigned byte magnitude spectrum, shape (frame_length,).
    timestamp: capture time in seconds (monotonic clock).
    """

    time_data: np.ndarray
    frequency_data: np.ndarray
    sample_rate: int
    timestamp: float

    def __post_init__(self) -> None:
        if len(self.time_data) != len(self.frequency_data):
            raise ValueError(
                "time_data and frequency_data must have the same length "
                f"({len(self.time_data)} != {len(self.frequency_data)})"
            )

    @property
    def frame_length(self) -> int:
        return len(self.time_data)


def to_time_bytes(samples: np.ndarray) -> np.ndarray:
    """Float samples in [-1, 1] to unsigned bytes centered on 128."""
    scaled = np.floor(128.0 * (1.0 + np.asarray(samples, dtype=np.float64)))
    return np.clip(scaled, 0, 255).astype(np.uint8)


class AnalyserNode:
    """Turns raw capture samples into fixed-size byte frames.

    Frequency data follows the usual analyser recipe: Blackman window over
    the last fft_size samples, magnitude scaled by 1/fft_size, exponential
    smoothing against the previous spectrum, dB conversion, then a linear
    map of [min_decibels, max_decibels] onto [0, 255].
    """

    def __init__(self, config: Optional[AnalyzerConfig] = None):
        self.config = config or AnalyzerConfig()
        self._window = get_window("blackman", self.config.fft_size).astype(np.float64)
        self._smoothed = np.zeros(self.config.frame_length, dtype=np.float64)

    @property
    def fft_size(self) -> int:
        return self.config.fft_size

    @property
    def frequency_bin_count(self) -> int:
        return self.config.frame_length

    def reset(self) -> None:
        """Forget the smoothing state (new session)."""
        self._smoothed[:] = 0.0

    def time_domain(self, samples: np.ndarray) -> np.ndarray:
        """Most recent frame_length samples as bytes."""
        return to_time_bytes(samples[-self.frequency_bin_count :])

    def frequency_domain(self, samples: np.ndarray) -> np.ndarray:
        """Smoothed byte magnitude spectrum of the last fft_size samples."""
        block = np.asarray(samples[-self.fft_size :], dtype=np.float64)
        if len(block) < self.fft_size:
            block = np.concatenate([np.zeros(self.fft_size - len(block)), block])

        spectrum = sp_fft.rfft(block * self._window)[: self.frequency_bin_count]
        magnitude = np.abs(spectrum) / self.fft_size

        tau = self.config.smoothing_time_constant
        self._smoothed = tau * self._smoothed + (1.0 - tau) * magnitude

        with np.errstate(divide="ignore"):
            db = 20.0 * np.log10(self._smoothed)
        db_range = self.config.max_decibels - self.config.min_decibels
        scaled = np.floor(255.0 / db_range * (db - self.config.min_decibels))
        scaled = np.nan_to_num(scaled, nan=0.0, neginf=0.0, posinf=255.0)
        return np.clip(scaled, 0, 255).astype(np.uint8)

    def frame(self, samples: np.ndarray, timestamp: float) -> AudioFrame:
        """Build one AudioFrame from the latest fft_size capture samples."""
        samples = np.asarray(samples, dtype=np.float32)
        if len(samples) < self.fft_size:
            samples = np.concatenate(
                [np.zeros(self.fft_size - len(samples), dtype=np.float32), samples]
            )
        return AudioFrame(
            time_data=self.time_domain(samples),
            frequency_data=self.frequency_domain(samples),
            sample_rate=self.config.sample_rate,
            timestamp=timestamp,
        )


def iter_frames(
    audio: np.ndarray,
    analyser: AnalyserNode,
    hop_sec: float,
    start_time: float = 0.0,
) -> Iterator[AudioFrame]:
    """Frame a recorded mono signal as if read live every hop_sec seconds."""
    audio = np.asarray(audio, dtype=np.float32)
    sample_rate = analyser.config.sample_rate
    hop = max(1, int(round(hop_sec * sample_rate)))
    for end in range(hop, len(audio) + 1, hop):
        window = audio[max(0, end - analyser.fft_size) : end]
        yield analyser.frame(window, start_time + end / sample_rate)
