"""Audio capture, framing and per-frame feature extraction."""

from voice_quality.audio.config import AnalyzerConfig, load_config
from voice_quality.audio.features import (
    compute_clarity,
    compute_pace,
    compute_pitch,
    compute_volume,
)
from voice_quality.audio.frames import AnalyserNode, AudioFrame
from voice_quality.audio.source import FrameSource, StreamHandle, wait_for_device

__all__ = [
    "AnalyzerConfig",
    "AnalyserNode",
    "AudioFrame",
    "FrameSource",
    "StreamHandle",
    "compute_clarity",
    "compute_pace",
    "compute_pitch",
    "compute_volume",
    "load_config",
    "wait_for_device",
]
