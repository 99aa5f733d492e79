"""Persistence collaborator: abstract contracts and the SQLAlchemy reference store."""

from .contracts import (
    AlertConfigRecord,
    AlertConfigStore,
    AnomalyRecord,
    AnomalyStore,
    HourOfWeekAggregate,
    LiveAggregate,
    MetricsStore,
    NewAnomaly,
    RecentRollup,
)
