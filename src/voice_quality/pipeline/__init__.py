"""Analyzer lifecycle and session orchestration."""

from voice_quality.pipeline.analyzer import LifecycleState, VoiceQualityAnalyzer
from voice_quality.pipeline.session import EvaluationSession

__all__ = ["EvaluationSession", "LifecycleState", "VoiceQualityAnalyzer"]
