"""Composite voice quality report.

Scoring:
  clarity, volume, pace  = mean raw value clamped to 0-100
  tone                   = (mean pitch - 70) / 2.1 clamped, 0 without pitch
                           (maps 70-280 Hz onto 0-100)
  overall                = round(0.35 clarity + 0.25 volume + 0.25 pace + 0.15 tone)

Bands: >= 80 Excellent, >= 65 Good, >= 50 Fair, else Needs Significant Improvement.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import ClassVar, Dict, Optional, Sequence, Tuple, Union

from voice_quality.analysis.collector import MetricSample

MIN_REPORT_SAMPLES = 5
DISPLAY_WINDOW = 50
NOMINAL_SAMPLE_SECONDS = 0.2

WEIGHTS: Dict[str, float] = {
    "clarity": 0.35,
    "volume": 0.25,
    "pace": 0.25,
    "tone": 0.15,
}

TONE_PITCH_FLOOR_HZ = 70.0
TONE_HZ_PER_POINT = 2.1

# (minimum overall score, band, long-form summary)
ASSESSMENT_BANDS: Tuple[Tuple[int, str, str], ...] = (
    (80, "Excellent", "Excellent - Highly suitable for call center role"),
    (65, "Good", "Good - Suitable for call center role with minor improvements"),
    (50, "Fair", "Fair - Needs improvement in some areas"),
    (0, "Needs Significant Improvement", "Needs Significant Improvement"),
)

log = logging.getLogger(__name__)


def _clamp(value: float) -> float:
    return min(100.0, max(0.0, value))


def round_half_up(value: float) -> int:
    """Round halves away from zero, unlike the built-in round()."""
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def tone_score(avg_pitch: float) -> float:
    if avg_pitch <= 0:
        return 0.0
    return _clamp((avg_pitch - TONE_PITCH_FLOOR_HZ) / TONE_HZ_PER_POINT)


def assessment_for(overall_score: int) -> Tuple[str, str]:
    """(band, summary) for an overall score."""
    for minimum, band, summary in ASSESSMENT_BANDS:
        if overall_score >= minimum:
            return band, summary
    return ASSESSMENT_BANDS[-1][1], ASSESSMENT_BANDS[-1][2]


@dataclass(frozen=True)
class ScoreCard:
    """Normalized 0-100 scores for the four metrics."""

    TARGETS: ClassVar[Dict[str, int]] = {"clarity": 85, "volume": 70, "tone": 80, "pace": 75}

    clarity: float
    volume: float
    tone: float
    pace: float

    @classmethod
    def from_samples(cls, samples: Sequence[MetricSample]) -> "ScoreCard":
        averages = _averages(samples)
        return cls(
            clarity=_clamp(averages["clarity"]),
            volume=_clamp(averages["volume"]),
            tone=tone_score(averages["pitch"]),
            pace=_clamp(averages["pace"]),
        )

    @property
    def overall(self) -> int:
        return round_half_up(
            WEIGHTS["clarity"] * self.clarity
            + WEIGHTS["volume"] * self.volume
            + WEIGHTS["pace"] * self.pace
            + WEIGHTS["tone"] * self.tone
        )


def _averages(samples: Sequence[MetricSample]) -> Dict[str, float]:
    n = len(samples)
    if n == 0:
        return {"pitch": 0.0, "volume": 0.0, "clarity": 0.0, "pace": 0.0}
    return {
        "pitch": sum(s.pitch for s in samples) / n,
        "volume": sum(s.volume for s in samples) / n,
        "clarity": sum(s.clarity for s in samples) / n,
        "pace": sum(s.pace for s in samples) / n,
    }


@dataclass(frozen=True)
class InsufficientData:
    """Returned instead of a report when the history is too short."""

    sample_count: int
    required_samples: int = MIN_REPORT_SAMPLES

    ok: ClassVar[bool] = False

    def to_dict(self) -> dict:
        return {
            "status": "insufficient_data",
            "sampleCount": self.sample_count,
            "requiredSamples": self.required_samples,
        }


@dataclass(frozen=True)
class AnalysisReport:
    overall_score: int
    clarity_score: int
    volume_score: int
    tone_score: int
    pace_score: int
    avg_pitch: float
    avg_volume: float
    avg_clarity: float
    avg_pace: float
    assessment: str
    summary: str
    strengths: Tuple[str, ...]
    recommendations: Tuple[str, ...]
    sample_count: int
    duration_seconds: float

    ok: ClassVar[bool] = True

    def to_dict(self) -> dict:
        """Persisted JSON shape expected by the storage side."""
        return {
            "overallScore": self.overall_score,
            "clarityScore": self.clarity_score,
            "volumeScore": self.volume_score,
            "toneScore": self.tone_score,
            "paceScore": self.pace_score,
            "avgPitch": f"{self.avg_pitch:.1f}",
            "avgVolume": f"{self.avg_volume:.1f}",
            "avgClarity": f"{self.avg_clarity:.1f}",
            "avgPace": f"{self.avg_pace:.1f}",
            "assessment": self.assessment,
            "strengths": list(self.strengths),
            "recommendations": list(self.recommendations),
            "sampleCount": self.sample_count,
            "duration": f"{self.duration_seconds:.1f}",
        }


ReportResult = Union[AnalysisReport, InsufficientData]


def _feedback(scores: ScoreCard) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
    strengths = []
    recommendations = []

    if scores.clarity >= 80:
        strengths.append("Excellent voice clarity")
    elif scores.clarity < 60:
        recommendations.append("Work on articulation and pronunciation for clearer speech")

    if scores.volume >= 60:
        strengths.append("Good vocal projection")
    elif scores.volume < 50:
        recommendations.append("Speak louder and project voice more confidently")

    if 40 <= scores.pace <= 70:
        strengths.append("Well-paced speech delivery")
    elif scores.pace < 30:
        recommendations.append("Increase speaking pace slightly for better engagement")
    elif scores.pace > 80:
        recommendations.append("Slow down slightly to ensure clarity")

    if 30 <= scores.tone <= 70:
        strengths.append("Appropriate vocal tone")
    elif scores.tone < 20:
        recommendations.append("Consider varying pitch for more engaging delivery")

    return tuple(strengths), tuple(recommendations)


def generate_report(
    history: Sequence[MetricSample],
    min_samples: int = MIN_REPORT_SAMPLES,
    logger: Optional[logging.Logger] = None,
) -> ReportResult:
    """Build the report over the whole history. Never mutates history."""
    logger = logger or log
    samples = tuple(history)
    if len(samples) < min_samples:
        logger.warning("report_insufficient_data samples=%d required=%d", len(samples), min_samples)
        return InsufficientData(sample_count=len(samples), required_samples=min_samples)

    averages = _averages(samples)
    scores = ScoreCard.from_samples(samples)
    overall = scores.overall
    band, summary = assessment_for(overall)
    strengths, recommendations = _feedback(scores)

    report = AnalysisReport(
        overall_score=overall,
        clarity_score=round_half_up(scores.clarity),
        volume_score=round_half_up(scores.volume),
        tone_score=round_half_up(scores.tone),
        pace_score=round_half_up(scores.pace),
        avg_pitch=averages["pitch"],
        avg_volume=averages["volume"],
        avg_clarity=averages["clarity"],
        avg_pace=averages["pace"],
        assessment=band,
        summary=summary,
        strengths=strengths,
        recommendations=recommendations,
        sample_count=len(samples),
        duration_seconds=len(samples) * NOMINAL_SAMPLE_SECONDS,
    )
    logger.info(
        "report_generated overall=%d clarity=%d volume=%d tone=%d pace=%d avg_pitch=%.1f samples=%d",
        report.overall_score,
        report.clarity_score,
        report.volume_score,
        report.tone_score,
        report.pace_score,
        report.avg_pitch,
        report.sample_count,
    )
    return report


def live_scores(
    history: Sequence[MetricSample],
    window: int = DISPLAY_WINDOW,
    min_samples: int = MIN_REPORT_SAMPLES,
) -> Optional[ScoreCard]:
    """Scores over the most recent window samples for live display.

    None until min_samples are available.
    """
    if len(history) < min_samples:
        return None
    return ScoreCard.from_samples(tuple(history)[-window:])
