"""Anomaly Detector — compares recent rollups against the learned baseline.

``DetectionEngine`` owns the current baseline snapshot. Refreshing swaps
the snapshot reference in a single assignment, and each detection pass
reads the reference once, so a pass never sees a half-built baseline.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Iterable, Optional

from ..metrics import METRICS, utcnow
from ..store.contracts import MetricsStore, RecentRollup
from ..utils.logging import get_logger
from .baseline import BaselineEngine, BaselineSnapshot

if TYPE_CHECKING:
    from .lifecycle import AnomalyLifecycleManager, LifecycleSummary

logger = get_logger("anomaly.detector")

# Absolute floors: values at or below these are never flagged, however
# unusual they are statistically.
MINIMUM_CONCERN = {
    "latency": 50.0,      # ms
    "jitter": 10.0,       # ms
    "packet_loss": 1.0,   # percent
    "dns": 100.0,         # ms
    "bufferbloat": 50.0,  # ms
}

MIN_BASELINE_SAMPLES = 4
CANDIDATE_SIGMA = 2.0
MODERATE_SIGMA = 3.0
SEVERE_SIGMA = 4.0


@dataclass(frozen=True)
class AnomalyCandidate:
    probe_id: str
    metric: str
    bucket_time: datetime
    expected_value: float
    actual_value: float
    severity: str
    hour_of_week: int

    @property
    def key(self) -> tuple[str, str]:
        return (self.probe_id, self.metric)


def classify_severity(value: float, mean: float, stddev: float) -> str:
    deviation = abs(value - mean)
    if deviation > SEVERE_SIGMA * stddev:
        return "severe"
    if deviation > MODERATE_SIGMA * stddev:
        return "moderate"
    return "mild"


def evaluate_value(
    snapshot: BaselineSnapshot,
    probe_id: str,
    metric: str,
    hour_of_week: int,
    value: Optional[float],
    bucket_time: datetime,
) -> Optional[AnomalyCandidate]:
    """Return a candidate if ``value`` is both significant and above the floor.

    Missing baseline, too few samples, zero stddev and null values are
    skipped silently.
    """
    if value is None:
        return None
    bucket = snapshot.get(probe_id, metric, hour_of_week)
    if bucket is None or bucket.sample_count < MIN_BASELINE_SAMPLES:
        return None
    if bucket.stddev == 0:
        return None

    deviation = abs(value - bucket.mean)
    if deviation <= CANDIDATE_SIGMA * bucket.stddev or value <= MINIMUM_CONCERN[metric]:
        return None

    return AnomalyCandidate(
        probe_id=probe_id,
        metric=metric,
        bucket_time=bucket_time,
        expected_value=bucket.mean,
        actual_value=value,
        severity=classify_severity(value, bucket.mean, bucket.stddev),
        hour_of_week=hour_of_week,
    )


def find_candidates(snapshot: BaselineSnapshot, rollups: Iterable[RecentRollup]) -> list[AnomalyCandidate]:
    """Check every metric of every rollup; candidates come out oldest bucket first."""
    candidates = []
    for rollup in sorted(rollups, key=lambda r: r.bucket_time):
        for metric in METRICS:
            candidate = evaluate_value(
                snapshot,
                rollup.probe_id,
                metric,
                rollup.hour_of_week,
                rollup.values.get(metric),
                rollup.bucket_time,
            )
            if candidate is not None:
                candidates.append(candidate)
    return candidates


class DetectionEngine:
    """Holds the current baseline snapshot and runs detection cycles."""

    def __init__(
        self,
        store: MetricsStore,
        baseline_engine: BaselineEngine,
        lifecycle: Optional["AnomalyLifecycleManager"] = None,
        window_minutes: int = 10,
    ):
        self._store = store
        self._baseline_engine = baseline_engine
        self._lifecycle = lifecycle
        self.window = timedelta(minutes=window_minutes)
        self._snapshot = BaselineSnapshot.empty()

    @property
    def snapshot(self) -> BaselineSnapshot:
        return self._snapshot

    def swap_snapshot(self, snapshot: BaselineSnapshot) -> BaselineSnapshot:
        """Replace the current snapshot and return the previous one."""
        previous, self._snapshot = self._snapshot, snapshot
        return previous

    def reset(self) -> None:
        self._snapshot = BaselineSnapshot.empty()

    async def refresh_baselines(self, now: Optional[datetime] = None) -> BaselineSnapshot:
        """Recompute the baseline and swap it in once complete."""
        snapshot = await self._baseline_engine.compute(now)
        self.swap_snapshot(snapshot)
        return snapshot

    async def detect(self, now: Optional[datetime] = None) -> list[AnomalyCandidate]:
        """Run one detection pass over the trailing window."""
        snapshot = self._snapshot
        now = now or utcnow()
        rollups = await self._store.get_recent_rollups(now - self.window)
        candidates = find_candidates(snapshot, rollups)
        logger.debug("detection_pass", rollups=len(rollups), candidates=len(candidates))
        return candidates

    async def run_cycle(self, now: Optional[datetime] = None) -> Optional["LifecycleSummary"]:
        """Detect and reconcile. Skips while no baseline is available."""
        if not self._snapshot:
            logger.info("anomaly_detection_skipped", reason="no_baselines")
            return None
        if self._lifecycle is None:
            raise RuntimeError("DetectionEngine.run_cycle requires a lifecycle manager")

        now = now or utcnow()
        candidates = await self.detect(now)
        summary = await self._lifecycle.reconcile(candidates, now=now)
        if summary.opened:
            logger.info(
                "anomalies_created",
                created=summary.opened,
                candidates=len(candidates),
            )
        return summary
