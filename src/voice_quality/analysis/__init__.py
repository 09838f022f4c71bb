"""Sample collection and report generation."""

from voice_quality.analysis.collector import MetricSample, SampleCollector
from voice_quality.analysis.report import (
    AnalysisReport,
    InsufficientData,
    ScoreCard,
    generate_report,
    live_scores,
)

__all__ = [
    "AnalysisReport",
    "InsufficientData",
    "MetricSample",
    "SampleCollector",
    "ScoreCard",
    "generate_report",
    "live_scores",
]
