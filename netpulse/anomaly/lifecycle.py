"""Anomaly Lifecycle Manager — reconciles detection candidates with stored anomalies.

Per (probe, metric) key there are two states, open and closed:

    closed --candidates--> open      (create)
    open   --candidates--> open      (extend: worst-seen value wins)
    open   --no candidates--> closed (close: condition ended)

``next_transition`` decides the move for one key; the manager applies it
with exactly one store write.
"""

from __future__ import annotations

import enum
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from ..metrics import DAY_NAMES, split_hour_of_week, utcnow
from ..store.contracts import AnomalyRecord, AnomalyStore, NewAnomaly
from ..utils.event_bus import EventBus
from ..utils.logging import get_logger
from .detector import AnomalyCandidate

logger = get_logger("anomaly.lifecycle")


class Transition(str, enum.Enum):
    OPEN = "open"
    EXTEND = "extend"
    CLOSE = "close"
    NONE = "none"


def next_transition(
    open_anomaly: Optional[AnomalyRecord],
    candidates: Sequence[AnomalyCandidate],
) -> Transition:
    """Decide the lifecycle move for one (probe, metric) key in this cycle."""
    if candidates:
        return Transition.EXTEND if open_anomaly is not None else Transition.OPEN
    if open_anomaly is not None:
        return Transition.CLOSE
    return Transition.NONE


def worst_candidate(candidates: Sequence[AnomalyCandidate]) -> AnomalyCandidate:
    return max(candidates, key=lambda c: c.actual_value)


def describe_anomaly(metric: str, expected: float, actual: float, day_of_week: int, hour_of_day: int) -> str:
    ratio = actual / expected if expected else float("inf")
    return f"{metric} {ratio:.1f}x higher than normal for {DAY_NAMES[day_of_week]} {hour_of_day}:00"


def new_anomaly_from(candidates: Sequence[AnomalyCandidate]) -> NewAnomaly:
    """Build the record for a freshly opened anomaly.

    ``started_at`` comes from the earliest candidate, values from the latest.
    """
    earliest = min(candidates, key=lambda c: c.bucket_time)
    latest = max(candidates, key=lambda c: c.bucket_time)
    day_of_week, hour_of_day = split_hour_of_week(latest.hour_of_week)
    return NewAnomaly(
        probe_id=latest.probe_id,
        metric=latest.metric,
        started_at=earliest.bucket_time,
        expected_value=latest.expected_value,
        actual_value=latest.actual_value,
        severity=latest.severity,
        day_of_week=day_of_week,
        hour_of_day=hour_of_day,
        description=describe_anomaly(
            latest.metric, latest.expected_value, latest.actual_value, day_of_week, hour_of_day
        ),
    )


@dataclass
class LifecycleSummary:
    opened: int = 0
    extended: int = 0
    closed: int = 0

    def as_dict(self) -> dict:
        return {"opened": self.opened, "extended": self.extended, "closed": self.closed}


class AnomalyLifecycleManager:
    """Applies open/extend/close transitions against an AnomalyStore."""

    def __init__(self, store: AnomalyStore, event_bus: Optional[EventBus] = None):
        self._store = store
        self._event_bus = event_bus

    async def reconcile(
        self,
        candidates: Sequence[AnomalyCandidate],
        now: Optional[datetime] = None,
    ) -> LifecycleSummary:
        """Run one lifecycle cycle for a detection pass's candidates."""
        now = now or utcnow()
        summary = LifecycleSummary()

        groups: "OrderedDict[tuple[str, str], list[AnomalyCandidate]]" = OrderedDict()
        for candidate in candidates:
            groups.setdefault(candidate.key, []).append(candidate)

        for (probe_id, metric), items in groups.items():
            open_anomaly = await self._store.find_open_anomaly(probe_id, metric)
            await self._apply(next_transition(open_anomaly, items), open_anomaly, items, now, summary)

        for open_anomaly in await self._store.list_open_anomalies():
            if open_anomaly.key in groups:
                continue
            await self._apply(next_transition(open_anomaly, ()), open_anomaly, (), now, summary)

        logger.debug("lifecycle_reconciled", **summary.as_dict())
        return summary

    async def _apply(
        self,
        transition: Transition,
        open_anomaly: Optional[AnomalyRecord],
        items: Sequence[AnomalyCandidate],
        now: datetime,
        summary: LifecycleSummary,
    ) -> None:
        if transition is Transition.OPEN:
            record = await self._store.create_anomaly(new_anomaly_from(items))
            summary.opened += 1
            logger.info(
                "anomaly_opened",
                anomaly_id=record.id,
                probe_id=record.probe_id,
                metric=record.metric,
                severity=record.severity,
                description=record.description,
            )
            self._publish("opened", record)

        elif transition is Transition.EXTEND:
            worst = worst_candidate(items)
            summary.extended += 1
            # Ratchet: a calmer bucket never lowers the recorded worst value.
            if worst.actual_value <= open_anomaly.actual_value:
                return
            await self._store.update_anomaly(
                open_anomaly.id, actual_value=worst.actual_value, severity=worst.severity
            )
            logger.info(
                "anomaly_extended",
                anomaly_id=open_anomaly.id,
                probe_id=open_anomaly.probe_id,
                metric=open_anomaly.metric,
                actual_value=worst.actual_value,
                severity=worst.severity,
            )

        elif transition is Transition.CLOSE:
            await self._store.close_anomaly(open_anomaly.id, now)
            summary.closed += 1
            logger.info(
                "anomaly_closed",
                anomaly_id=open_anomaly.id,
                probe_id=open_anomaly.probe_id,
                metric=open_anomaly.metric,
            )
            self._publish("closed", open_anomaly, ended_at=now)

    def _publish(self, action: str, record: AnomalyRecord, ended_at: Optional[datetime] = None) -> None:
        if self._event_bus is None:
            return
        self._event_bus.publish("anomaly", {
            "action": action,
            "anomaly_id": record.id,
            "probe_id": record.probe_id,
            "metric": record.metric,
            "severity": record.severity,
            "expected_value": record.expected_value,
            "actual_value": record.actual_value,
            "started_at": record.started_at.isoformat(),
            "ended_at": ended_at.isoformat() if ended_at else None,
            "description": record.description,
        })
