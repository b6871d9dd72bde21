"""
Fixed-interval cycle scheduler.

Ticks are anchored to a persisted reference time, so restarts and the
public countdown agree on when the next cycle runs:

    next = anchor + k * interval, smallest k with next > now
"""

import asyncio
import math
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog

from buyback.core.config import Settings
from buyback.core.exceptions import ConfigurationError, CycleInProgressError
from buyback.pipeline.orchestrator import CycleOrchestrator
from buyback.repositories import ConfigRepository


logger = structlog.get_logger(__name__)


def compute_next_tick(anchor: datetime, interval_seconds: int, now: datetime) -> datetime:
    """First tick strictly after `now`. Before the anchor, the anchor itself."""
    if now < anchor:
        return anchor
    elapsed = (now - anchor).total_seconds()
    k = math.floor(elapsed / interval_seconds) + 1
    return anchor + timedelta(seconds=k * interval_seconds)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SchedulerStatus(Enum):
    """Status of the cycle scheduler."""
    STOPPED = "stopped"
    WAITING = "waiting"
    PROCESSING = "processing"
    ERROR = "error"


@dataclass
class SchedulerStats:
    """Statistics for scheduler operations."""
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    skipped_triggers: int = 0
    last_outcome: Optional[str] = None
    last_error: Optional[str] = None
    uptime_start: Optional[datetime] = None


class CycleScheduler:
    """
    Runs the orchestrator every `cycle_interval_seconds`.

    A configuration error halts the loop and leaves the scheduler in
    ERROR; any other failure is logged and the next tick runs as usual.
    """

    def __init__(
        self,
        orchestrator: CycleOrchestrator,
        config_repository: ConfigRepository,
        config: Settings,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.orchestrator = orchestrator
        self.config_repository = config_repository
        self.enabled = config.scheduler_enabled
        self.interval = config.cycle_interval_seconds
        self.run_on_startup = config.run_cycle_on_startup
        self.startup_delay = config.startup_delay_seconds
        self.clock = clock
        self.sleep = sleep

        self.status = SchedulerStatus.STOPPED
        self.stats = SchedulerStats(uptime_start=clock())
        self._should_stop = False
        self._scheduler_task: Optional[asyncio.Task] = None
        self.logger = logger.bind(service="cycle_scheduler")

    async def start(self):
        """Start the scheduler loop as a background task."""
        if not self.enabled:
            self.logger.info("Cycle scheduler is disabled")
            return

        if self.status not in (SchedulerStatus.STOPPED, SchedulerStatus.ERROR):
            self.logger.warning("Scheduler already running", current_status=self.status.value)
            return

        self._should_stop = False
        self.status = SchedulerStatus.WAITING
        self._scheduler_task = asyncio.create_task(self._scheduler_loop())
        self.logger.info("Cycle scheduler started", interval=self.interval)

    async def stop(self):
        """Stop the scheduler loop."""
        self._should_stop = True

        if self._scheduler_task and not self._scheduler_task.done():
            self._scheduler_task.cancel()
            try:
                await self._scheduler_task
            except asyncio.CancelledError:
                pass

        if self.status != SchedulerStatus.ERROR:
            self.status = SchedulerStatus.STOPPED
        self.logger.info("Cycle scheduler stopped")

    async def _scheduler_loop(self):
        """Main scheduler loop."""
        self.logger.info("Scheduler loop started")

        try:
            anchor = await self.config_repository.ensure_cycle_anchor(self.clock())

            if self.run_on_startup:
                await self.sleep(self.startup_delay)
                await self.run_once("startup")

            while not self._should_stop:
                now = self.clock()
                self.stats.next_run = compute_next_tick(anchor, self.interval, now)
                await self.sleep((self.stats.next_run - now).total_seconds())
                if self._should_stop:
                    break
                await self.run_once("scheduler")

        except asyncio.CancelledError:
            self.logger.info("Scheduler loop cancelled")
            raise
        except Exception as e:
            self.status = SchedulerStatus.ERROR
            self.stats.last_error = str(e)
            self.logger.error("Scheduler loop crashed", error=str(e))
            return

        self.logger.info("Scheduler loop stopped", status=self.status.value)

    async def run_once(self, trigger: str) -> bool:
        """Run one cycle. Returns False once the scheduler has been halted."""
        self.status = SchedulerStatus.PROCESSING
        self.stats.total_runs += 1
        self.stats.last_run = self.clock()

        try:
            report = await self.orchestrator.run_cycle(trigger=trigger)
        except CycleInProgressError:
            self.stats.skipped_triggers += 1
            self.logger.info("Tick skipped: a cycle is already running")
        except ConfigurationError as e:
            self.stats.failed_runs += 1
            self.stats.last_error = e.message
            self.status = SchedulerStatus.ERROR
            self._should_stop = True
            self.logger.critical("Scheduler halted: configuration error", error=e.message)
            return False
        except Exception as e:
            self.stats.failed_runs += 1
            self.stats.last_error = str(e)
            self.logger.error("Scheduled cycle failed", error=str(e))
        else:
            self.stats.last_outcome = report.outcome.value if report.outcome else None
            if report.success:
                self.stats.successful_runs += 1
            else:
                self.stats.failed_runs += 1
                self.stats.last_error = report.error

        self.status = SchedulerStatus.WAITING
        return True

    async def health_check(self) -> Dict[str, Any]:
        uptime_seconds = (self.clock() - self.stats.uptime_start).total_seconds()
        return {
            "status": self.status.value,
            "enabled": self.enabled,
            "healthy": self.status != SchedulerStatus.ERROR,
            "uptime_seconds": uptime_seconds,
            "scheduler_stats": asdict(self.stats),
            "configuration": {"interval_seconds": self.interval},
            "next_run_in_seconds": (
                (self.stats.next_run - self.clock()).total_seconds()
                if self.stats.next_run else None
            ),
        }

    def get_status(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "enabled": self.enabled,
            "next_run": self.stats.next_run.isoformat() if self.stats.next_run else None,
            "total_runs": self.stats.total_runs,
            "successful_runs": self.stats.successful_runs,
            "failed_runs": self.stats.failed_runs,
            "last_error": self.stats.last_error,
        }
