"""Voice quality engine - frame source, feature extractors, sample collector, report."""

from voice_quality.analysis import AnalysisReport, InsufficientData, MetricSample, generate_report
from voice_quality.audio import AnalyzerConfig, StreamHandle
from voice_quality.pipeline import EvaluationSession, LifecycleState, VoiceQualityAnalyzer

__all__ = [
    "AnalysisReport",
    "AnalyzerConfig",
    "EvaluationSession",
    "InsufficientData",
    "LifecycleState",
    "MetricSample",
    "StreamHandle",
    "VoiceQualityAnalyzer",
    "generate_report",
]
