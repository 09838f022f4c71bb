"""Per-frame voice features: volume, pitch, clarity, pace.

All extractors are pure functions over the byte sequences of one
AudioFrame (time-domain bytes centered on 128, frequency bytes 0-255).
Degenerate input (empty, silent, no energy) yields 0, never NaN.
"""

import math

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

# Volume
VOLUME_SCALE = 500.0
VOLUME_NOISE_FLOOR = 3.0

# Pitch (autocorrelation)
PITCH_MIN_HZ = 60.0
PITCH_MAX_HZ = 400.0
PITCH_RMS_GATE = 0.005
PITCH_CORRELATION_THRESHOLD = 0.4
# Fraction of the correlation range a shorter-lag peak may trail the best by.
PITCH_PEAK_TOLERANCE = 0.1

# Clarity (speech band of the byte spectrum)
CLARITY_BIN_START = 2
CLARITY_BIN_END = 100
CLARITY_PEAK_RATIO_CAP = 5.0
CLARITY_CURVE_EXPONENT = 0.7

# Pace (voice activity)
PACE_AMPLITUDE_THRESHOLD = 10
PACE_SCALE = 200.0


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return min(high, max(low, value))


def _normalize(time_data: np.ndarray) -> np.ndarray:
    """Byte waveform to float amplitudes in [-1, 1)."""
    return (np.asarray(time_data, dtype=np.float64) - 128.0) / 128.0


def compute_volume(time_data: np.ndarray) -> float:
    """RMS loudness on a 0-100 scale with a noise floor.

    Values below the floor (RMS * 500 < 3) are background noise and read as 0.
    """
    if len(time_data) == 0:
        return 0.0
    amplitude = _normalize(time_data)
    volume = math.sqrt(float(np.mean(amplitude * amplitude))) * VOLUME_SCALE
    if volume < VOLUME_NOISE_FLOOR:
        return 0.0
    return min(100.0, volume)


def pitch_lag_range(frame_length: int, sample_rate: int) -> tuple[int, int]:
    """Inclusive autocorrelation lag range covering 60-400 Hz."""
    min_lag = max(1, int(math.ceil(sample_rate / PITCH_MAX_HZ)))
    max_lag = min(frame_length // 2, int(sample_rate // PITCH_MIN_HZ))
    return min_lag, max_lag


def compute_pitch(time_data: np.ndarray, sample_rate: int) -> float:
    """Fundamental frequency in Hz by autocorrelation, 0 when undetected.

    For each lag the similarity is 1 - mean(|a[i] - a[i + lag]|) over the
    first half of the frame. Candidates are local peaks above the
    threshold; the shortest-lag candidate within PITCH_PEAK_TOLERANCE of
    the strongest one wins, so a period is preferred over its multiples.
    The sweep starts two lags early so a peak at the shortest admissible
    lag is seen rising; a peak one lag short of the range snaps onto it.
    A sweep still rising at the longest lag takes that lag.
    """
    n = len(time_data)
    if n < 4 or sample_rate <= 0:
        return 0.0

    amplitude = _normalize(time_data)
    rms = math.sqrt(float(np.mean(amplitude * amplitude)))
    if rms < PITCH_RMS_GATE:
        return 0.0

    half = n // 2
    min_lag, max_lag = pitch_lag_range(n, sample_rate)
    if max_lag < min_lag:
        return 0.0

    first_lag = max(1, min_lag - 2)
    # windows[i] == amplitude[first_lag + i : first_lag + i + half]
    windows = sliding_window_view(amplitude, half)[first_lag : max_lag + 1]
    correlations = 1.0 - np.mean(np.abs(windows - amplitude[:half]), axis=1)

    rising = np.zeros(len(correlations), dtype=bool)
    rising[1:] = correlations[1:] > correlations[:-1]
    falling_after = np.ones(len(correlations), dtype=bool)
    falling_after[:-1] = correlations[:-1] >= correlations[1:]
    peaks = np.flatnonzero(rising & falling_after & (correlations > PITCH_CORRELATION_THRESHOLD))
    if len(peaks) == 0:
        return 0.0

    best = float(correlations[peaks].max())
    floor = best - PITCH_PEAK_TOLERANCE * (best - float(correlations.min()))
    chosen = int(peaks[np.argmax(correlations[peaks] >= floor)])
    best_lag = max(min_lag, first_lag + chosen)

    frequency = sample_rate / best_lag
    if PITCH_MIN_HZ <= frequency <= PITCH_MAX_HZ:
        return float(frequency)
    return 0.0


def compute_clarity(frequency_data: np.ndarray) -> float:
    """Spectral clarity 0-100 from the speech-band bins [2, 100).

    Peak-to-average energy ratio (capped at 5x) scaled by a spread factor
    max(0.5, 1 - deviation / 100), then compressed with a 0.7 power curve.
    """
    end = min(CLARITY_BIN_END, len(frequency_data))
    if end <= CLARITY_BIN_START:
        return 0.0
    energy = np.asarray(frequency_data[CLARITY_BIN_START:end], dtype=np.float64)
    total = float(energy.sum())
    if total == 0.0:
        return 0.0

    average = total / len(energy)
    deviation = math.sqrt(float(np.mean((energy - average) ** 2)))

    peak_ratio = min(CLARITY_PEAK_RATIO_CAP, float(energy.max()) / max(1.0, average))
    spread_factor = max(0.5, 1.0 - deviation / 100.0)

    raw = (peak_ratio / CLARITY_PEAK_RATIO_CAP) * 100.0 * spread_factor
    curved = math.pow(raw / 100.0, CLARITY_CURVE_EXPONENT) * 100.0
    return _clamp(curved)


def compute_pace(time_data: np.ndarray) -> float:
    """Voice-activity ratio (|x - 128| > 10) scaled by 200, clamped to 0-100."""
    if len(time_data) == 0:
        return 0.0
    deviation = np.abs(np.asarray(time_data, dtype=np.int16) - 128)
    activity = np.count_nonzero(deviation > PACE_AMPLITUDE_THRESHOLD) / len(time_data)
    return min(100.0, activity * PACE_SCALE)
