"""Alert Evaluator — checks live aggregates against user alert configs.

Cooldown state lives on the evaluator instance: one entry per alert
config, holding the time it last fired. The scheduler never runs two
evaluations at once, so the map needs no lock.
"""

import asyncio
import operator
from datetime import datetime, timedelta
from typing import Awaitable, Optional

from ..metrics import METRIC_AGGREGATION, utcnow
from ..notifications.dispatcher import NotificationDispatcher
from ..notifications.schemas import CHANNEL_SCHEMAS, parse_channel_config
from ..store.contracts import AlertConfigRecord, AlertConfigStore, MetricsStore
from ..utils.event_bus import EventBus
from ..utils.logging import get_logger

logger = get_logger("alerting.evaluator")

COMPARATORS = {
    "gt": operator.gt,
    "lt": operator.lt,
    "gte": operator.ge,
    "lte": operator.le,
}


def compare_values(actual: float, threshold: float, comparison: str) -> bool:
    """Apply a comparison operator; unknown operators never breach."""
    compare = COMPARATORS.get(comparison)
    return bool(compare(actual, threshold)) if compare else False


def format_alert_message(config: AlertConfigRecord, value: float) -> str:
    return (
        f"{config.metric} {config.comparison} {config.threshold} "
        f"for {config.duration_min} minutes (current: {value:.2f})"
    )


class AlertEvaluator:
    """Evaluates active alert configs and dispatches notifications on breach."""

    def __init__(
        self,
        alert_store: AlertConfigStore,
        metrics_store: MetricsStore,
        dispatcher: NotificationDispatcher,
        event_bus: Optional[EventBus] = None,
        cooldown_minutes: int = 30,
    ):
        self._alert_store = alert_store
        self._metrics_store = metrics_store
        self._dispatcher = dispatcher
        self._event_bus = event_bus
        self.cooldown = timedelta(minutes=cooldown_minutes)
        self._cooldowns: dict[str, datetime] = {}

    def is_in_cooldown(self, config_id: str, now: Optional[datetime] = None) -> bool:
        last_fired = self._cooldowns.get(config_id)
        if last_fired is None:
            return False
        return (now or utcnow()) - last_fired < self.cooldown

    def last_fired(self, config_id: str) -> Optional[datetime]:
        return self._cooldowns.get(config_id)

    def reset(self) -> None:
        """Forget all cooldowns."""
        self._cooldowns.clear()

    def _prune_cooldowns(self, now: datetime) -> None:
        expired = [k for k, fired in self._cooldowns.items() if now - fired >= self.cooldown]
        for k in expired:
            del self._cooldowns[k]

    async def evaluate(self, now: Optional[datetime] = None) -> int:
        """Run one evaluation pass. Returns the number of alerts fired."""
        now = now or utcnow()
        self._prune_cooldowns(now)
        configs = await self._alert_store.list_active_alert_configs()

        dispatches: list[tuple[AlertConfigRecord, Awaitable[bool]]] = []
        for config in configs:
            try:
                dispatch = await self._evaluate_config(config, now)
            except Exception as exc:
                logger.error("alert_evaluation_failed", alert_id=config.id, metric=config.metric, error=str(exc))
                continue
            if dispatch is not None:
                dispatches.append((config, dispatch))

        if dispatches:
            results = await asyncio.gather(*(d for _, d in dispatches), return_exceptions=True)
            for (config, _), result in zip(dispatches, results):
                if isinstance(result, BaseException):
                    logger.error("alert_dispatch_failed", alert_id=config.id, error=str(result))
                elif not result:
                    logger.warning("alert_notification_not_delivered", alert_id=config.id, channel=config.channel)
            logger.info("alerts_fired", fired=len(dispatches), evaluated=len(configs))

        return len(dispatches)

    async def _evaluate_config(self, config: AlertConfigRecord, now: datetime) -> Optional[Awaitable[bool]]:
        """Return the pending dispatch if this config breaches, else None."""
        if self.is_in_cooldown(config.id, now):
            return None

        if config.metric not in METRIC_AGGREGATION:
            logger.warning("alert_unknown_metric", alert_id=config.id, metric=config.metric)
            return None

        channel_config = None
        if config.channel in CHANNEL_SCHEMAS:
            channel_config = parse_channel_config(config.channel, config.channel_config)

        aggregate = await self._metrics_store.get_live_aggregate(
            config.metric, config.duration_min, probe_id=config.probe_id, now=now
        )
        if aggregate.sample_count == 0 or aggregate.value is None:
            return None

        if not compare_values(aggregate.value, config.threshold, config.comparison):
            return None

        self._cooldowns[config.id] = now
        message = format_alert_message(config, aggregate.value)
        logger.info(
            "alert_fired",
            alert_id=config.id,
            probe_id=config.probe_id,
            metric=config.metric,
            value=aggregate.value,
            threshold=config.threshold,
            channel=config.channel,
        )

        if self._event_bus is not None:
            self._event_bus.publish("alert", {
                "alert_id": config.id,
                "probe_id": config.probe_id,
                "metric": config.metric,
                "threshold": config.threshold,
                "current_value": aggregate.value,
                "message": message,
                "fired_at": now.isoformat(),
            })

        return self._dispatcher.send_alert(
            config, aggregate.value, message, fired_at=now, channel_config=channel_config
        )
