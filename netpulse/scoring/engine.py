"""Quality Scoring Engine — metric values to a 0-100 score and A-F grade.

Each metric maps to a fraction of its penalty budget through a
four-segment piecewise-linear curve:

    value <= good             0
    good  .. fair             0    -> 33%
    fair  .. poor             33%  -> 75%
    poor  .. critical         75%  -> 100%
    value >  critical         100%

Penalties are scaled by the profile weight and subtracted from 100.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional

from ..exceptions import UnknownProfileError
from ..metrics import METRICS
from .profiles import DEFAULT_PROFILE, PROFILES, ScoreProfile
from .thresholds import THRESHOLDS, MetricThresholds

FAIR_FRACTION = 0.33
POOR_FRACTION = 0.75

GRADE_BANDS = (
    (90, "A", "Excellent"),
    (80, "B", "Good"),
    (65, "C", "Fair"),
    (45, "D", "Poor"),
)

ISSUE_MESSAGES = {
    "latency": "High latency ({value:.1f}ms). Check your connection or try a wired connection.",
    "jitter": "High jitter ({value:.1f}ms). Your connection is unstable.",
    "packet_loss": "Packet loss ({value:.1f}%). Check physical connections.",
    "dns": "Slow DNS resolution ({value:.1f}ms). Consider switching to 1.1.1.1 or 8.8.8.8.",
    "bufferbloat": "Bufferbloat detected ({value:.1f}ms). Consider enabling SQM/QoS on your router.",
}


@dataclass(frozen=True)
class MetricPenalty:
    value: float
    penalty: float
    status: str

    def to_dict(self) -> dict:
        return {"value": self.value, "penalty": self.penalty, "status": self.status}


@dataclass(frozen=True)
class QualityScore:
    score: float
    grade: str
    label: str
    profile: str
    breakdown: dict[str, MetricPenalty] = field(default_factory=dict)
    primary_issue: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "grade": self.grade,
            "label": self.label,
            "profile": self.profile,
            "breakdown": {metric: p.to_dict() for metric, p in self.breakdown.items()},
            "primary_issue": self.primary_issue,
        }


def metric_status(value: float, thresholds: MetricThresholds) -> str:
    if value <= thresholds.good:
        return "good"
    if value <= thresholds.fair:
        return "fair"
    if value <= thresholds.poor:
        return "poor"
    return "critical"


def calculate_penalty(value: float, thresholds: MetricThresholds) -> float:
    """Unweighted penalty for one metric value."""
    t = thresholds
    if value <= t.good:
        return 0.0
    if value <= t.fair:
        position = (value - t.good) / (t.fair - t.good)
        return position * FAIR_FRACTION * t.max_penalty
    if value <= t.poor:
        position = (value - t.fair) / (t.poor - t.fair)
        return (FAIR_FRACTION + position * (POOR_FRACTION - FAIR_FRACTION)) * t.max_penalty
    if value <= t.critical:
        position = (value - t.poor) / (t.critical - t.poor)
        return (POOR_FRACTION + position * (1 - POOR_FRACTION)) * t.max_penalty
    return float(t.max_penalty)


def score_to_grade(score: float) -> str:
    for floor, grade, _ in GRADE_BANDS:
        if score >= floor:
            return grade
    return "F"


def score_to_label(score: float) -> str:
    for floor, _, label in GRADE_BANDS:
        if score >= floor:
            return label
    return "Failing"


def compute_quality_score(
    metrics: Mapping[str, Optional[float]],
    profile: ScoreProfile = DEFAULT_PROFILE,
) -> QualityScore:
    """Score a set of metric values under a weighting profile.

    Missing metrics count as zero penalty with status "good", so a probe
    with no data scores the same as a perfect one.
    """
    if profile not in PROFILES:
        raise UnknownProfileError(f"unknown scoring profile: {profile}")
    weights = PROFILES[profile]

    breakdown: dict[str, MetricPenalty] = {}
    total_penalty = 0.0
    worst_penalty = 0.0
    worst_metric: Optional[str] = None

    for metric in METRICS:
        value = metrics.get(metric)
        if value is None:
            breakdown[metric] = MetricPenalty(value=0.0, penalty=0.0, status="good")
            continue

        value = float(value)
        thresholds = THRESHOLDS[metric]
        weighted = calculate_penalty(value, thresholds) * weights[metric]
        breakdown[metric] = MetricPenalty(value=value, penalty=weighted, status=metric_status(value, thresholds))
        total_penalty += weighted

        if weighted > worst_penalty:
            worst_penalty = weighted
            worst_metric = metric

    score = max(0.0, min(100.0, 100.0 - total_penalty))
    primary_issue = (
        ISSUE_MESSAGES[worst_metric].format(value=breakdown[worst_metric].value)
        if worst_metric is not None
        else None
    )

    return QualityScore(
        score=score,
        grade=score_to_grade(score),
        label=score_to_label(score),
        profile=profile,
        breakdown=breakdown,
        primary_issue=primary_issue,
    )
