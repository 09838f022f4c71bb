"""Unit tests for the per-frame feature extractors."""

from __future__ import annotations

import unittest

import numpy as np

from fakes import sine_bytes, tone_bytes
from voice_quality.audio.features import (
    compute_clarity,
    compute_pace,
    compute_pitch,
    compute_volume,
    pitch_lag_range,
)

SR = 48_000
SILENCE = np.full(1024, 128, dtype=np.uint8)


class TestVolume(unittest.TestCase):
    def test_silence_is_zero(self) -> None:
        self.assertEqual(compute_volume(SILENCE), 0.0)

    def test_noise_floor_gates_to_zero(self) -> None:
        """RMS * 500 just under 3 reads as silence."""
        frame = np.tile(np.array([128, 129], dtype=np.uint8), 512)
        self.assertEqual(compute_volume(frame), 0.0)

    def test_loud_frame_clamped_to_100(self) -> None:
        frame = np.tile(np.array([64, 192], dtype=np.uint8), 512)
        self.assertEqual(compute_volume(frame), 100.0)

    def test_moderate_level(self) -> None:
        """Square wave of +-4 counts: rms = 4/128, volume = 15.625."""
        frame = np.tile(np.array([124, 132], dtype=np.uint8), 512)
        self.assertAlmostEqual(compute_volume(frame), 15.625, places=6)

    def test_bounded_for_random_frames(self) -> None:
        rng = np.random.default_rng(7)
        for _ in range(50):
            frame = rng.integers(0, 256, size=1024, dtype=np.uint8)
            volume = compute_volume(frame)
            self.assertGreaterEqual(volume, 0.0)
            self.assertLessEqual(volume, 100.0)

    def test_empty_frame(self) -> None:
        self.assertEqual(compute_volume(np.array([], dtype=np.uint8)), 0.0)


class TestPitch(unittest.TestCase):
    def test_lag_range_covers_voice_band(self) -> None:
        self.assertEqual(pitch_lag_range(1024, 48_000), (120, 512))
        self.assertEqual(pitch_lag_range(1024, 8_000), (20, 133))

    def test_silence_is_zero(self) -> None:
        self.assertEqual(compute_pitch(SILENCE, SR), 0.0)

    def test_below_rms_gate_is_zero(self) -> None:
        frame = SILENCE.copy()
        frame[::4] = 129  # rms = 0.5 / 128 < 0.005
        self.assertEqual(compute_pitch(frame, SR), 0.0)

    def test_detects_synthetic_tones(self) -> None:
        _, max_lag = pitch_lag_range(1024, SR)
        bound = SR / max_lag
        for frequency in (100.0, 150.0, 200.0, 300.0):
            with self.subTest(frequency=frequency):
                pitch = compute_pitch(tone_bytes(frequency, SR), SR)
                self.assertGreater(pitch, 0.0)
                self.assertLessEqual(abs(pitch - frequency), bound)

    def test_exact_period_gives_exact_frequency(self) -> None:
        self.assertAlmostEqual(compute_pitch(tone_bytes(200.0, SR), SR), 200.0)

    def test_lower_sample_rate(self) -> None:
        pitch = compute_pitch(tone_bytes(160.0, 8_000), 8_000)
        self.assertAlmostEqual(pitch, 160.0)

    def test_sampled_sines_across_voice_band(self) -> None:
        frequencies = [float(f) for f in range(60, 401, 5)] + [399.0]
        for sample_rate in (44_100, 48_000):
            _, max_lag = pitch_lag_range(1024, sample_rate)
            bound = sample_rate / max_lag
            for frequency in frequencies:
                with self.subTest(sample_rate=sample_rate, frequency=frequency):
                    pitch = compute_pitch(sine_bytes(frequency, sample_rate), sample_rate)
                    self.assertLessEqual(abs(pitch - frequency), bound)

    def test_period_preferred_over_its_multiples(self) -> None:
        # 2P of a 190 Hz sine lands closer to a whole lag than P does
        self.assertAlmostEqual(compute_pitch(sine_bytes(190.0, SR), SR), 190.0, delta=1.0)
        self.assertAlmostEqual(compute_pitch(sine_bytes(200.0, 44_100), 44_100), 200.0, delta=1.0)

    def test_peak_at_shortest_lag(self) -> None:
        self.assertAlmostEqual(compute_pitch(tone_bytes(400.0, SR), SR), 400.0)
        self.assertAlmostEqual(compute_pitch(sine_bytes(400.0, SR), SR), 400.0)

    def test_peak_just_above_band_snaps_to_shortest_lag(self) -> None:
        # period 110.25 samples; the shortest admissible lag is 111
        self.assertAlmostEqual(compute_pitch(sine_bytes(400.0, 44_100), 44_100), 44_100 / 111)

    def test_quiet_sines(self) -> None:
        _, max_lag = pitch_lag_range(1024, SR)
        for frequency in (110.0, 250.0, 390.0):
            with self.subTest(frequency=frequency):
                pitch = compute_pitch(sine_bytes(frequency, SR, amplitude=0.1), SR)
                self.assertGreater(pitch, 0.0)
                self.assertLessEqual(abs(pitch - frequency), SR / max_lag)

    def test_result_is_zero_or_in_voice_band(self) -> None:
        rng = np.random.default_rng(3)
        for _ in range(20):
            frame = rng.integers(0, 256, size=1024, dtype=np.uint8)
            pitch = compute_pitch(frame, SR)
            self.assertTrue(pitch == 0.0 or 60.0 <= pitch <= 400.0, pitch)

    def test_short_frame(self) -> None:
        self.assertEqual(compute_pitch(np.array([0, 255], dtype=np.uint8), SR), 0.0)


class TestClarity(unittest.TestCase):
    def test_zero_spectrum(self) -> None:
        self.assertEqual(compute_clarity(np.zeros(1024, dtype=np.uint8)), 0.0)

    def test_energy_outside_speech_bins_ignored(self) -> None:
        spectrum = np.zeros(1024, dtype=np.uint8)
        spectrum[:2] = 255
        spectrum[100:] = 255
        self.assertEqual(compute_clarity(spectrum), 0.0)

    def test_too_few_bins(self) -> None:
        self.assertEqual(compute_clarity(np.array([200, 200], dtype=np.uint8)), 0.0)

    def test_flat_spectrum(self) -> None:
        """Ratio 1, no spread: 100 * 0.2 ** 0.7."""
        spectrum = np.full(1024, 50, dtype=np.uint8)
        self.assertAlmostEqual(compute_clarity(spectrum), 100 * 0.2 ** 0.7, places=6)

    def test_higher_peak_ratio_is_clearer(self) -> None:
        """Both spectra spread widely enough to pin the spread factor at 0.5."""
        broad = np.zeros(1024, dtype=np.uint8)
        broad[2:100:2] = 200  # ratio 2
        peaky = np.zeros(1024, dtype=np.uint8)
        peaky[2:100:10] = 255  # ratio capped at 5
        self.assertAlmostEqual(compute_clarity(broad), 100 * 0.2 ** 0.7, places=6)
        self.assertAlmostEqual(compute_clarity(peaky), 100 * 0.5 ** 0.7, places=6)
        self.assertGreater(compute_clarity(peaky), compute_clarity(broad))

    def test_bounded_for_random_spectra(self) -> None:
        rng = np.random.default_rng(11)
        for _ in range(50):
            spectrum = rng.integers(0, 256, size=1024, dtype=np.uint8)
            clarity = compute_clarity(spectrum)
            self.assertGreaterEqual(clarity, 0.0)
            self.assertLessEqual(clarity, 100.0)


class TestPace(unittest.TestCase):
    def test_silence(self) -> None:
        self.assertEqual(compute_pace(SILENCE), 0.0)

    def test_full_activity_clamped(self) -> None:
        frame = np.tile(np.array([64, 192], dtype=np.uint8), 512)
        self.assertEqual(compute_pace(frame), 100.0)

    def test_quarter_activity(self) -> None:
        frame = SILENCE.copy()
        frame[::4] = 200
        self.assertAlmostEqual(compute_pace(frame), 50.0)

    def test_threshold_is_exclusive(self) -> None:
        frame = np.full(1024, 138, dtype=np.uint8)  # |x - 128| == 10
        self.assertEqual(compute_pace(frame), 0.0)


if __name__ == "__main__":
    unittest.main()
