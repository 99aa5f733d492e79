"""NetPulse runtime: wires the stores, engines and scheduled jobs together.

All long-lived state (baseline snapshot, alert cooldowns, event bus) hangs
off one ``NetPulseRuntime`` instance; nothing is process-global.
"""

from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from .alerting.evaluator import AlertEvaluator
from .anomaly.baseline import BaselineEngine
from .anomaly.detector import DetectionEngine
from .anomaly.lifecycle import AnomalyLifecycleManager
from .anomaly.patterns import PatternRecognizer, RecurringPattern
from .config import NetPulseConfig
from .database import close_engine, create_engine, create_session_factory, create_tables
from .jobs.scheduler import JobScheduler
from .metrics import utcnow
from .notifications.dispatcher import NotificationDispatcher
from .store.sql import SqlStore
from .utils.event_bus import EventBus
from .utils.logging import get_logger

logger = get_logger("netpulse.runtime")

JOB_ROLLUP_REFRESH = "rollup-refresh"
JOB_BASELINE = "baseline-compute"
JOB_ANOMALY = "anomaly-detect"
JOB_PATTERNS = "pattern-detect"
JOB_ALERTS = "alert-evaluate"


class NetPulseRuntime:
    """Owns every component of the detection and alerting core."""

    def __init__(
        self,
        config: NetPulseConfig,
        engine: Optional[AsyncEngine] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.config = config
        self._owns_engine = engine is None and session_factory is None
        if self._owns_engine:
            engine = create_engine(config)
        self.engine = engine
        self.session_factory = session_factory or create_session_factory(self.engine)

        self.event_bus = EventBus()
        self.store = SqlStore(self.session_factory, timeout=config.db_timeout_seconds, event_bus=self.event_bus)

        self.baseline_engine = BaselineEngine(self.store, window_weeks=config.baseline_window_weeks)
        self.lifecycle = AnomalyLifecycleManager(self.store, event_bus=self.event_bus)
        self.detection = DetectionEngine(
            self.store,
            self.baseline_engine,
            self.lifecycle,
            window_minutes=config.detection_window_minutes,
        )
        self.patterns = PatternRecognizer(
            self.store,
            window_weeks=config.pattern_window_weeks,
            min_occurrences=config.pattern_min_occurrences,
        )
        self.dispatcher = NotificationDispatcher(
            smtp_settings=config.smtp_settings,
            timeout=config.notification_timeout_seconds,
        )
        self.alerts = AlertEvaluator(
            self.store,
            self.store,
            self.dispatcher,
            event_bus=self.event_bus,
            cooldown_minutes=config.alert_cooldown_minutes,
        )

        self.scheduler = JobScheduler()
        self.scheduler.register(JOB_ROLLUP_REFRESH, config.rollup_refresh_interval, self.run_rollup_refresh)
        self.scheduler.register(JOB_BASELINE, config.baseline_interval, self.run_baseline_compute)
        self.scheduler.register(JOB_ANOMALY, config.anomaly_detect_interval, self.run_anomaly_detection)
        self.scheduler.register(JOB_PATTERNS, config.pattern_detect_interval, self.run_pattern_detection)
        self.scheduler.register(JOB_ALERTS, config.alert_evaluate_interval, self.run_alert_evaluation)

    # ------------------------------------------------------------------
    # Job bodies
    # ------------------------------------------------------------------

    async def run_rollup_refresh(self) -> int:
        since = utcnow() - timedelta(minutes=self.config.rollup_lookback_minutes)
        return await self.store.refresh_rollups(since)

    async def run_baseline_compute(self) -> None:
        logger.info("baseline_compute_starting", window_weeks=self.config.baseline_window_weeks)
        await self.detection.refresh_baselines()

    async def run_anomaly_detection(self) -> None:
        await self.detection.run_cycle()

    async def run_pattern_detection(self) -> list[RecurringPattern]:
        return await self.patterns.recognize()

    async def run_alert_evaluation(self) -> int:
        return await self.alerts.evaluate()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def prepare(self) -> None:
        """Create any missing tables on an engine this runtime owns or was given."""
        if self.engine is not None:
            await create_tables(self.engine)

    async def start(self) -> None:
        """Create tables, start the event bus, compute a first baseline, start timers."""
        await self.prepare()
        await self.event_bus.start()

        await self.scheduler.run_job(JOB_ROLLUP_REFRESH)
        if not await self.scheduler.run_job(JOB_BASELINE):
            logger.error("initial_baseline_failed")

        await self.scheduler.start()
        logger.info("netpulse_started", app=self.config.app_name)

    async def stop(self) -> None:
        logger.info("netpulse_shutting_down")
        await self.scheduler.stop()
        await self.event_bus.stop()
        if self._owns_engine and self.engine is not None:
            await close_engine(self.engine)
