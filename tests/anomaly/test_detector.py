"""Tests for the Anomaly Detector — sigma rules, absolute floors, skip cases."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from netpulse.anomaly.baseline import BaselineBucket, BaselineEngine, BaselineSnapshot
from netpulse.anomaly.detector import (
    DetectionEngine,
    classify_severity,
    evaluate_value,
    find_candidates,
)
from netpulse.anomaly.lifecycle import LifecycleSummary
from netpulse.store.contracts import RecentRollup

TUESDAY_21 = datetime(2026, 3, 3, 21, 0, tzinfo=timezone.utc)


def _snapshot(*buckets):
    return BaselineSnapshot({b.key: b for b in buckets}, computed_at=TUESDAY_21)


def _bucket(metric="latency", mean=22.0, stddev=3.0, sample_count=20, probe_id="probe-a", how=45):
    return BaselineBucket(probe_id, metric, how, mean, stddev, sample_count)


def _rollup(bucket_time, probe_id="probe-a", how=45, **values):
    return RecentRollup(probe_id=probe_id, bucket_time=bucket_time, hour_of_week=how, values=values)


class TestEvaluateValue:
    def test_significant_but_below_floor_is_ignored(self):
        snapshot = _snapshot(_bucket())
        # 40ms is six sigma away from 22ms but under the 50ms latency floor.
        assert evaluate_value(snapshot, "probe-a", "latency", 45, 40.0, TUESDAY_21) is None

    def test_severe_candidate_above_floor(self):
        snapshot = _snapshot(_bucket())
        candidate = evaluate_value(snapshot, "probe-a", "latency", 45, 55.0, TUESDAY_21)

        assert candidate is not None
        assert candidate.severity == "severe"
        assert candidate.expected_value == 22.0
        assert candidate.actual_value == 55.0
        assert candidate.key == ("probe-a", "latency")

    def test_within_two_sigma_is_ignored(self):
        snapshot = _snapshot(_bucket(mean=100.0, stddev=10.0))
        assert evaluate_value(snapshot, "probe-a", "latency", 45, 120.0, TUESDAY_21) is None

    def test_too_few_samples_skipped(self):
        snapshot = _snapshot(_bucket(sample_count=3))
        assert evaluate_value(snapshot, "probe-a", "latency", 45, 500.0, TUESDAY_21) is None

    def test_zero_stddev_skipped(self):
        snapshot = _snapshot(_bucket(stddev=0.0))
        assert evaluate_value(snapshot, "probe-a", "latency", 45, 500.0, TUESDAY_21) is None

    def test_missing_bucket_and_null_value_skipped(self):
        snapshot = _snapshot(_bucket())
        assert evaluate_value(snapshot, "probe-a", "latency", 46, 500.0, TUESDAY_21) is None
        assert evaluate_value(snapshot, "probe-b", "latency", 45, 500.0, TUESDAY_21) is None
        assert evaluate_value(snapshot, "probe-a", "latency", 45, None, TUESDAY_21) is None

    def test_packet_loss_floor(self):
        snapshot = _snapshot(_bucket(metric="packet_loss", mean=0.1, stddev=0.1))
        assert evaluate_value(snapshot, "probe-a", "packet_loss", 45, 0.9, TUESDAY_21) is None
        assert evaluate_value(snapshot, "probe-a", "packet_loss", 45, 3.0, TUESDAY_21) is not None


class TestClassifySeverity:
    def test_bands(self):
        assert classify_severity(65.0, 40.0, 10.0) == "mild"
        assert classify_severity(75.0, 40.0, 10.0) == "moderate"
        assert classify_severity(85.0, 40.0, 10.0) == "severe"

    def test_boundaries_are_exclusive(self):
        # exactly 3 sigma stays mild, exactly 4 sigma stays moderate
        assert classify_severity(70.0, 40.0, 10.0) == "mild"
        assert classify_severity(80.0, 40.0, 10.0) == "moderate"


class TestFindCandidates:
    def test_checks_every_metric_oldest_first(self):
        snapshot = _snapshot(_bucket(), _bucket(metric="dns", mean=30.0, stddev=5.0))
        later = _rollup(TUESDAY_21 + timedelta(minutes=5), latency=60.0)
        earlier = _rollup(TUESDAY_21, latency=58.0, dns=250.0, jitter=90.0)

        candidates = find_candidates(snapshot, [later, earlier])

        assert [(c.metric, c.bucket_time) for c in candidates] == [
            ("latency", TUESDAY_21),
            ("dns", TUESDAY_21),
            ("latency", TUESDAY_21 + timedelta(minutes=5)),
        ]


class TestDetectionEngine:
    def _engine(self, rollups=None, lifecycle=None):
        store = AsyncMock()
        store.get_recent_rollups = AsyncMock(return_value=rollups or [])
        baseline_engine = MagicMock(spec=BaselineEngine)
        return DetectionEngine(store, baseline_engine, lifecycle, window_minutes=10), store, baseline_engine

    @pytest.mark.asyncio
    async def test_skips_cycle_without_baselines(self):
        lifecycle = AsyncMock()
        engine, store, _ = self._engine(lifecycle=lifecycle)

        result = await engine.run_cycle(now=TUESDAY_21)

        assert result is None
        store.get_recent_rollups.assert_not_awaited()
        lifecycle.reconcile.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_detect_reads_trailing_window(self):
        engine, store, _ = self._engine(rollups=[_rollup(TUESDAY_21, latency=55.0)])
        engine.swap_snapshot(_snapshot(_bucket()))

        now = TUESDAY_21 + timedelta(minutes=8)
        candidates = await engine.detect(now=now)

        store.get_recent_rollups.assert_awaited_once_with(now - timedelta(minutes=10))
        assert len(candidates) == 1

    @pytest.mark.asyncio
    async def test_run_cycle_hands_candidates_to_lifecycle(self):
        lifecycle = AsyncMock()
        lifecycle.reconcile = AsyncMock(return_value=LifecycleSummary(opened=1))
        engine, _, _ = self._engine(rollups=[_rollup(TUESDAY_21, latency=55.0)], lifecycle=lifecycle)
        engine.swap_snapshot(_snapshot(_bucket()))

        summary = await engine.run_cycle(now=TUESDAY_21)

        assert summary.opened == 1
        (candidates,), kwargs = lifecycle.reconcile.call_args
        assert [c.actual_value for c in candidates] == [55.0]
        assert kwargs["now"] == TUESDAY_21

    @pytest.mark.asyncio
    async def test_run_cycle_requires_lifecycle(self):
        engine, _, _ = self._engine()
        engine.swap_snapshot(_snapshot(_bucket()))
        with pytest.raises(RuntimeError):
            await engine.run_cycle(now=TUESDAY_21)

    @pytest.mark.asyncio
    async def test_refresh_swaps_snapshot_whole(self):
        engine, _, baseline_engine = self._engine()
        fresh = _snapshot(_bucket())
        baseline_engine.compute = AsyncMock(return_value=fresh)
        old = engine.snapshot

        await engine.refresh_baselines(now=TUESDAY_21)

        assert engine.snapshot is fresh
        assert engine.swap_snapshot(old) is fresh
        engine.reset()
        assert not engine.snapshot
