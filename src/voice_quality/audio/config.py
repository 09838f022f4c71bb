"""Centralized analysis configuration.

Defaults:
- Audio: mono 48 kHz float32 capture
- Analyser: FFT 2048, smoothing 0.8, dynamic range -90..-10 dB
- Frames: 1024 byte samples per sequence (fft_size // 2)
- History: 200 ms dedup interval, FIFO cap 100, report needs 5 samples
- Device wait: poll every 500 ms, 60 attempts (30 s)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Dict, Optional

import yaml

from voice_quality.errors import ConfigError


@dataclass(frozen=True)
class AnalyzerConfig:
    """Analysis node, collector and lifecycle configuration."""

    # Capture
    sample_rate: int = 48_000
    channels: int = 1
    dtype: str = "float32"

    # Analyser node
    fft_size: int = 2048
    smoothing_time_constant: float = 0.8
    min_decibels: float = -90.0
    max_decibels: float = -10.0

    # Frame loop (display refresh rate)
    frame_rate_hz: float = 60.0

    # Sample collection
    volume_gate: float = 8.0
    sample_interval_ms: float = 200.0
    max_history: int = 100
    min_report_samples: int = 5
    display_window: int = 50

    # Device readiness
    device_poll_interval_sec: float = 0.5
    device_max_attempts: int = 60

    def __post_init__(self) -> None:
        if self.fft_size < 32 or self.fft_size & (self.fft_size - 1):
            raise ConfigError(f"fft_size must be a power of two >= 32, got {self.fft_size}")
        if not 0.0 <= self.smoothing_time_constant <= 1.0:
            raise ConfigError("smoothing_time_constant must be within [0, 1]")
        if self.min_decibels >= self.max_decibels:
            raise ConfigError("min_decibels must be below max_decibels")
        if self.max_history < 1:
            raise ConfigError("max_history must be >= 1")

    @property
    def frame_length(self) -> int:
        """Samples per time-domain sequence and bins per frequency sequence."""
        return self.fft_size // 2

    @property
    def frame_interval_sec(self) -> float:
        """Delay between two frame loop ticks."""
        return 1.0 / self.frame_rate_hz

    @property
    def sample_interval_sec(self) -> float:
        return self.sample_interval_ms / 1000.0

    @property
    def device_timeout_sec(self) -> float:
        """Hard ceiling for the device-ready wait."""
        return self.device_poll_interval_sec * self.device_max_attempts

    def with_overrides(self, **overrides: Any) -> "AnalyzerConfig":
        return replace(self, **overrides)


def _config_from_mapping(data: Dict[str, Any]) -> AnalyzerConfig:
    known = {f.name for f in fields(AnalyzerConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
    return AnalyzerConfig(**data)


def load_config(path: Optional[str]) -> AnalyzerConfig:
    """Load an AnalyzerConfig from YAML; missing path or empty file gives defaults."""
    if not path:
        return AnalyzerConfig()
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise ConfigError(f"Cannot read config {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Config root must be a mapping, got {type(data).__name__}")
    section = data.get("analyzer", data) or {}
    return _config_from_mapping(section)


def save_config(path: str, config: AnalyzerConfig) -> None:
    with open(path, "w", encoding="utf-8") as handle:
        yaml.safe_dump({"analyzer": asdict(config)}, handle, sort_keys=False)
