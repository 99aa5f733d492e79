"""Baseline Engine — learns normal behavior per (probe, metric, hour-of-week).

Each run recomputes every bucket from the trailing rollup window and returns
a new immutable ``BaselineSnapshot``. Snapshots are never patched in place;
holders swap the reference in one assignment.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional

import numpy as np

from ..metrics import METRICS, utcnow
from ..store.contracts import HourOfWeekAggregate, MetricsStore, RecentRollup
from ..utils.logging import get_logger

logger = get_logger("anomaly.baseline")

BaselineKey = tuple[str, str, int]


@dataclass(frozen=True)
class BaselineBucket:
    probe_id: str
    metric: str
    hour_of_week: int
    mean: float
    stddev: float
    sample_count: int

    @property
    def key(self) -> BaselineKey:
        return (self.probe_id, self.metric, self.hour_of_week)


class BaselineSnapshot:
    """Read-only map of (probe_id, metric, hour_of_week) -> BaselineBucket."""

    __slots__ = ("_buckets", "computed_at")

    def __init__(self, buckets: Mapping[BaselineKey, BaselineBucket] | None = None,
                 computed_at: Optional[datetime] = None):
        self._buckets = MappingProxyType(dict(buckets or {}))
        self.computed_at = computed_at

    @classmethod
    def empty(cls) -> "BaselineSnapshot":
        return cls()

    def get(self, probe_id: str, metric: str, hour_of_week: int) -> Optional[BaselineBucket]:
        return self._buckets.get((probe_id, metric, hour_of_week))

    def __len__(self) -> int:
        return len(self._buckets)

    def __iter__(self) -> Iterator[BaselineBucket]:
        return iter(self._buckets.values())

    def __bool__(self) -> bool:
        return bool(self._buckets)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BaselineSnapshot):
            return NotImplemented
        return dict(self._buckets) == dict(other._buckets)

    def __hash__(self):
        return hash(frozenset(self._buckets.items()))


def summarize_rollups(rollups: Iterable[RecentRollup]) -> list[HourOfWeekAggregate]:
    """Population mean/stddev of rollup values grouped by (probe, hour-of-week).

    Null values are left out of a metric's statistics; ``sample_count`` is
    the number of rollups in the group.
    """
    groups: dict[tuple[str, int], list[RecentRollup]] = defaultdict(list)
    for rollup in rollups:
        groups[(rollup.probe_id, rollup.hour_of_week)].append(rollup)

    aggregates = []
    for (probe_id, how), rows in sorted(groups.items()):
        means: dict[str, Optional[float]] = {}
        stddevs: dict[str, Optional[float]] = {}
        for metric in METRICS:
            values = np.array(
                [r.values.get(metric) for r in rows if r.values.get(metric) is not None],
                dtype=np.float64,
            )
            if values.size == 0:
                means[metric] = None
                stddevs[metric] = None
            else:
                means[metric] = float(values.mean())
                stddevs[metric] = float(values.std(ddof=0))
        aggregates.append(HourOfWeekAggregate(
            probe_id=probe_id,
            hour_of_week=how,
            means=means,
            stddevs=stddevs,
            sample_count=len(rows),
        ))
    return aggregates


def build_snapshot(aggregates: Iterable[HourOfWeekAggregate],
                   computed_at: Optional[datetime] = None) -> BaselineSnapshot:
    """Expand per-hour aggregates into one bucket per metric.

    Buckets below the detector's minimum sample count are still emitted.
    Metrics with no values in the window produce no bucket.
    """
    buckets: dict[BaselineKey, BaselineBucket] = {}
    for agg in aggregates:
        for metric in METRICS:
            mean = agg.means.get(metric)
            if mean is None:
                continue
            bucket = BaselineBucket(
                probe_id=agg.probe_id,
                metric=metric,
                hour_of_week=agg.hour_of_week,
                mean=float(mean),
                stddev=float(agg.stddevs.get(metric) or 0.0),
                sample_count=int(agg.sample_count),
            )
            buckets[bucket.key] = bucket
    return BaselineSnapshot(buckets, computed_at=computed_at)


class BaselineEngine:
    """Computes baseline snapshots from the trailing rollup window."""

    def __init__(self, store: MetricsStore, window_weeks: int = 4):
        self._store = store
        self.window = timedelta(weeks=window_weeks)

    async def compute(self, now: Optional[datetime] = None) -> BaselineSnapshot:
        """Full recompute over the trailing window."""
        now = now or utcnow()
        aggregates = await self._store.get_hour_of_week_aggregates(now - self.window)
        snapshot = build_snapshot(aggregates, computed_at=now)
        logger.info(
            "baselines_computed",
            buckets=len(snapshot),
            hour_groups=len(aggregates),
            window_days=self.window.days,
        )
        return snapshot
