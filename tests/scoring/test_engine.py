"""Tests for the Quality Scoring Engine."""

from typing import get_args

import pytest

from netpulse.exceptions import UnknownProfileError
from netpulse.scoring.engine import (
    calculate_penalty,
    compute_quality_score,
    metric_status,
    score_to_grade,
    score_to_label,
)
from netpulse.scoring.profiles import DEFAULT_PROFILE, PROFILES, ScoreProfile
from netpulse.scoring.thresholds import THRESHOLDS

LATENCY = THRESHOLDS["latency"]


class TestPenaltyCurve:
    def test_at_or_below_good_is_free(self):
        assert calculate_penalty(30.0, LATENCY) == 0.0
        assert calculate_penalty(5.0, LATENCY) == 0.0

    def test_segment_breakpoints(self):
        assert calculate_penalty(80.0, LATENCY) == pytest.approx(0.33 * 30)
        assert calculate_penalty(200.0, LATENCY) == pytest.approx(0.75 * 30)
        assert calculate_penalty(500.0, LATENCY) == pytest.approx(30.0)

    def test_beyond_critical_is_capped(self):
        assert calculate_penalty(5000.0, LATENCY) == 30.0

    def test_interpolates_within_segment(self):
        # halfway between good and fair
        assert calculate_penalty(55.0, LATENCY) == pytest.approx(0.165 * 30)

    def test_monotonic(self):
        values = [0, 10, 30, 31, 60, 80, 150, 200, 350, 500, 800]
        penalties = [calculate_penalty(v, LATENCY) for v in values]
        assert penalties == sorted(penalties)

    def test_status_bands(self):
        assert metric_status(30.0, LATENCY) == "good"
        assert metric_status(80.0, LATENCY) == "fair"
        assert metric_status(200.0, LATENCY) == "poor"
        assert metric_status(500.0, LATENCY) == "critical"


class TestGrades:
    @pytest.mark.parametrize("score,grade,label", [
        (100, "A", "Excellent"),
        (90, "A", "Excellent"),
        (89.9, "B", "Good"),
        (80, "B", "Good"),
        (65, "C", "Fair"),
        (45, "D", "Poor"),
        (44.9, "F", "Failing"),
        (0, "F", "Failing"),
    ])
    def test_grade_bands(self, score, grade, label):
        assert score_to_grade(score) == grade
        assert score_to_label(score) == label


class TestComputeQualityScore:
    def test_perfect_connection(self):
        result = compute_quality_score(
            {"latency": 30.0, "jitter": 2.0, "packet_loss": 0.0, "dns": 20.0, "bufferbloat": 10.0}
        )
        assert result.score == 100.0
        assert result.grade == "A"
        assert result.primary_issue is None
        assert result.breakdown["latency"].status == "good"
        assert result.breakdown["latency"].penalty == 0.0

    def test_critical_latency_takes_full_budget(self):
        result = compute_quality_score({"latency": 500.0})

        assert result.breakdown["latency"].penalty == pytest.approx(30.0)
        assert result.breakdown["latency"].status == "critical"
        assert result.score == pytest.approx(70.0)
        assert result.grade == "C"
        assert result.primary_issue == (
            "High latency (500.0ms). Check your connection or try a wired connection."
        )

    def test_missing_metrics_count_as_good(self):
        result = compute_quality_score({})
        assert result.score == 100.0
        assert all(p.status == "good" for p in result.breakdown.values())

    def test_profile_weights_apply(self):
        metrics = {"latency": 500.0}
        assert compute_quality_score(metrics, "gaming").score == pytest.approx(55.0)
        assert compute_quality_score(metrics, "streaming").score == pytest.approx(85.0)

    def test_score_clamped_to_zero(self):
        worst = {"latency": 900.0, "jitter": 900.0, "packet_loss": 90.0, "dns": 9000.0, "bufferbloat": 9000.0}
        result = compute_quality_score(worst, "gaming")
        assert result.score == 0.0
        assert result.grade == "F"

    def test_primary_issue_is_worst_weighted_metric(self):
        result = compute_quality_score({"latency": 100.0, "packet_loss": 8.0})
        assert result.primary_issue.startswith("Packet loss (8.0%)")

    def test_unknown_profile(self):
        with pytest.raises(UnknownProfileError):
            compute_quality_score({"latency": 30.0}, "esports")

    def test_to_dict(self):
        data = compute_quality_score({"latency": 500.0}).to_dict()
        assert data["breakdown"]["latency"] == {"value": 500.0, "penalty": 30.0, "status": "critical"}
        assert data["profile"] == "general"


class TestProfiles:
    def test_profile_type_matches_weight_table(self):
        assert set(get_args(ScoreProfile)) == set(PROFILES)
        assert DEFAULT_PROFILE in PROFILES

    def test_every_profile_weights_every_metric(self):
        for weights in PROFILES.values():
            assert set(weights) == set(THRESHOLDS)
