"""Collaborator contracts consumed by the detection and alerting core.

The core never talks to a database directly. It depends on these abstract
stores; ``store.sql.SqlStore`` is the shipped implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class HourOfWeekAggregate:
    """Population statistics of rollup values for one (probe, hour-of-week)."""

    probe_id: str
    hour_of_week: int
    means: dict[str, Optional[float]]
    stddevs: dict[str, Optional[float]]
    sample_count: int


@dataclass(frozen=True)
class RecentRollup:
    """One 5-minute rollup row tagged with its hour-of-week."""

    probe_id: str
    bucket_time: datetime
    hour_of_week: int
    values: dict[str, Optional[float]] = field(default_factory=dict)


@dataclass(frozen=True)
class LiveAggregate:
    value: Optional[float]
    sample_count: int


@dataclass(frozen=True)
class NewAnomaly:
    probe_id: str
    metric: str
    started_at: datetime
    expected_value: float
    actual_value: float
    severity: str
    day_of_week: int
    hour_of_day: int
    description: str


@dataclass(frozen=True)
class AnomalyRecord:
    id: str
    probe_id: str
    metric: str
    started_at: datetime
    ended_at: Optional[datetime]
    expected_value: float
    actual_value: float
    severity: str
    day_of_week: Optional[int]
    hour_of_day: Optional[int]
    description: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    @property
    def key(self) -> tuple[str, str]:
        return (self.probe_id, self.metric)


@dataclass(frozen=True)
class AlertConfigRecord:
    id: str
    probe_id: Optional[str]
    metric: str
    threshold: float
    comparison: str
    duration_min: int
    channel: str
    channel_config: dict = field(default_factory=dict)
    is_active: bool = True


class MetricsStore(ABC):
    """Read access to measurement rollups and live aggregates."""

    @abstractmethod
    async def get_hour_of_week_aggregates(self, since: datetime) -> list[HourOfWeekAggregate]:
        """Statistics of rollups newer than ``since`` grouped by (probe, hour-of-week)."""

    @abstractmethod
    async def get_recent_rollups(self, since: datetime) -> list[RecentRollup]:
        """Rollups newer than ``since``, oldest bucket first."""

    @abstractmethod
    async def get_live_aggregate(
        self,
        metric: str,
        duration_min: int,
        probe_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> LiveAggregate:
        """AVG or MAX of raw samples over the last ``duration_min`` minutes."""

    @abstractmethod
    async def get_window_averages(
        self, probe_id: str, start: datetime, end: datetime
    ) -> Optional[dict[str, Optional[float]]]:
        """Per-metric averages of raw samples in [start, end], or None if there are none."""


class AnomalyStore(ABC):
    """Persisted anomaly records. Every write is a single atomic commit."""

    @abstractmethod
    async def find_open_anomaly(self, probe_id: str, metric: str) -> Optional[AnomalyRecord]:
        """Return the open anomaly for the key; raise OpenAnomalyConflictError if several exist."""

    @abstractmethod
    async def list_open_anomalies(self) -> list[AnomalyRecord]:
        ...

    @abstractmethod
    async def create_anomaly(self, anomaly: NewAnomaly) -> AnomalyRecord:
        ...

    @abstractmethod
    async def update_anomaly(self, anomaly_id: str, *, actual_value: float, severity: str) -> None:
        ...

    @abstractmethod
    async def close_anomaly(self, anomaly_id: str, ended_at: datetime) -> None:
        ...

    @abstractmethod
    async def list_closed_anomalies(self, since: datetime) -> list[AnomalyRecord]:
        """Closed anomalies recorded after ``since``."""


class AlertConfigStore(ABC):
    """Alert configurations owned by an external CRUD layer."""

    @abstractmethod
    async def list_active_alert_configs(self) -> list[AlertConfigRecord]:
        ...
