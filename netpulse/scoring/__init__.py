"""Connection quality scoring."""

from .engine import MetricPenalty, QualityScore, compute_quality_score
from .profiles import PROFILES
from .service import score_probe
from .thresholds import THRESHOLDS, MetricThresholds
