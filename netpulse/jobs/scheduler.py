"""Job scheduler — independent periodic tasks with overlap prevention.

Every registered job gets its own timer loop. A tick that finds the job's
previous run still in flight is skipped and logged, never queued. A
failing run is logged and its running flag cleared, so the next tick
proceeds normally.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from ..metrics import utcnow
from ..utils.logging import get_logger

logger = get_logger("jobs.scheduler")


@dataclass
class ScheduledJob:
    name: str
    interval: float
    task: Callable[[], Awaitable[Any]]
    running: bool = False
    runs: int = 0
    skips: int = 0
    failures: int = 0
    last_run: Optional[datetime] = None
    last_error: Optional[str] = None


class JobScheduler:
    """Runs registered coroutines on fixed intervals."""

    def __init__(self) -> None:
        self._jobs: dict[str, ScheduledJob] = {}
        self._loops: dict[str, asyncio.Task] = {}
        self._inflight: set[asyncio.Task] = set()
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def register(self, name: str, interval_seconds: float, task: Callable[[], Awaitable[Any]]) -> ScheduledJob:
        if name in self._jobs:
            raise ValueError(f"job already registered: {name}")
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        job = ScheduledJob(name=name, interval=interval_seconds, task=task)
        self._jobs[name] = job
        logger.info("job_registered", job=name, interval_seconds=interval_seconds)
        if self._started:
            self._loops[name] = asyncio.create_task(self._job_loop(job))
        return job

    async def run_job(self, name: str) -> bool:
        """Run a job once now. Returns False if it was skipped or failed."""
        job = self._jobs[name]
        if job.running:
            job.skips += 1
            logger.info("job_skipped_already_running", job=name)
            return False

        job.running = True
        job.last_run = utcnow()
        start = time.monotonic()
        try:
            await job.task()
            job.runs += 1
            job.last_error = None
            logger.info("job_completed", job=name, duration_ms=round((time.monotonic() - start) * 1000, 1))
            return True
        except asyncio.CancelledError:
            logger.warning("job_cancelled", job=name)
            raise
        except Exception as exc:
            job.failures += 1
            job.last_error = str(exc) or type(exc).__name__
            logger.error("job_failed", job=name, error=job.last_error)
            return False
        finally:
            job.running = False

    def trigger(self, name: str) -> asyncio.Task:
        """Start a run in the background without waiting for it."""
        task = asyncio.create_task(self.run_job(name))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _job_loop(self, job: ScheduledJob) -> None:
        while True:
            try:
                await asyncio.sleep(job.interval)
                self.trigger(job.name)
            except asyncio.CancelledError:
                break

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        for name, job in self._jobs.items():
            self._loops[name] = asyncio.create_task(self._job_loop(job))
        logger.info("scheduler_started", jobs=list(self._jobs))

    async def stop(self, timeout: float = 30.0) -> None:
        """Stop timers, give in-flight runs ``timeout`` seconds, then abandon them."""
        self._started = False
        for task in self._loops.values():
            task.cancel()
        if self._loops:
            await asyncio.gather(*self._loops.values(), return_exceptions=True)
        self._loops.clear()

        pending = set(self._inflight)
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=timeout)
            for task in still_running:
                task.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)
                logger.warning("scheduler_abandoned_runs", count=len(still_running))
        logger.info("scheduler_stopped")

    def get_job_status(self) -> list[dict]:
        return [
            {
                "name": job.name,
                "interval_seconds": job.interval,
                "running": job.running,
                "runs": job.runs,
                "skips": job.skips,
                "failures": job.failures,
                "last_run": job.last_run.isoformat() if job.last_run else None,
                "last_error": job.last_error,
            }
            for job in self._jobs.values()
        ]
