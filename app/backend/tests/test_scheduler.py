"""
Test the fixed-interval scheduler and its persisted anchor.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from buyback.core.exceptions import ConfigurationError, CycleInProgressError
from buyback.pipeline.types import CycleOutcome, CyclePhase, CycleReport
from buyback.scheduler import CycleScheduler, SchedulerStatus, compute_next_tick

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_next_tick_before_anchor():
    assert compute_next_tick(T0, 1200, T0 - timedelta(minutes=5)) == T0


def test_next_tick_is_strictly_after_now():
    """Exactly on a tick, the following tick is next."""
    assert compute_next_tick(T0, 1200, T0) == T0 + timedelta(seconds=1200)
    assert compute_next_tick(T0, 1200, T0 + timedelta(seconds=1200)) == T0 + timedelta(seconds=2400)


def test_next_tick_after_downtime():
    """Ticks missed while down are not replayed."""
    now = T0 + timedelta(hours=5, seconds=30)
    assert compute_next_tick(T0, 1200, now) == T0 + timedelta(seconds=1200 * 16)


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start
        self.delays = []

    def __call__(self) -> datetime:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.delays.append(seconds)
        self.now += timedelta(seconds=seconds)


class ScriptedOrchestrator:
    """Returns (or raises) the scripted items in order, then stops the scheduler."""

    def __init__(self, script):
        self.script = list(script)
        self.triggers = []
        self.scheduler = None

    async def run_cycle(self, trigger: str = "scheduler"):
        self.triggers.append(trigger)
        item = self.script.pop(0)
        if not self.script:
            self.scheduler._should_stop = True
        if isinstance(item, Exception):
            raise item
        return item


def _report(phase=CyclePhase.COMPLETED, outcome=CycleOutcome.DISTRIBUTED):
    return CycleReport(cycle_id="c", phase=phase, outcome=outcome)


def _scheduler(settings, repos, orchestrator, clock):
    scheduler = CycleScheduler(orchestrator, repos.config, settings, clock=clock, sleep=clock.sleep)
    orchestrator.scheduler = scheduler
    return scheduler


@pytest.mark.asyncio
async def test_loop_runs_on_interval(settings, repos):
    clock = FakeClock(T0)
    orchestrator = ScriptedOrchestrator([_report(), _report()])
    scheduler = _scheduler(settings, repos, orchestrator, clock)

    await scheduler._scheduler_loop()

    assert clock.delays == [1200, 1200]
    assert orchestrator.triggers == ["scheduler", "scheduler"]
    assert scheduler.stats.successful_runs == 2
    assert await repos.config.get_cycle_anchor() == T0


@pytest.mark.asyncio
async def test_loop_resumes_from_stored_anchor(settings, repos):
    """After a restart the next tick follows the stored anchor."""
    await repos.config.ensure_cycle_anchor(T0 - timedelta(seconds=500))
    clock = FakeClock(T0)
    scheduler = _scheduler(settings, repos, ScriptedOrchestrator([_report()]), clock)

    await scheduler._scheduler_loop()

    assert clock.delays == [700]


@pytest.mark.asyncio
async def test_startup_run(settings_factory, repos):
    settings = settings_factory(run_cycle_on_startup=True, startup_delay_seconds=5)
    clock = FakeClock(T0)
    orchestrator = ScriptedOrchestrator([_report(), _report()])
    scheduler = _scheduler(settings, repos, orchestrator, clock)

    await scheduler._scheduler_loop()

    assert clock.delays[0] == 5
    assert orchestrator.triggers == ["startup", "scheduler"]


@pytest.mark.asyncio
async def test_configuration_error_halts(settings, repos):
    clock = FakeClock(T0)
    orchestrator = ScriptedOrchestrator([ConfigurationError("TOKEN_MINT is not configured"), _report()])
    scheduler = _scheduler(settings, repos, orchestrator, clock)

    await scheduler._scheduler_loop()

    assert scheduler.status == SchedulerStatus.ERROR
    assert orchestrator.triggers == ["scheduler"]
    assert scheduler.stats.last_error == "TOKEN_MINT is not configured"
    assert (await scheduler.health_check())["healthy"] is False


@pytest.mark.asyncio
async def test_other_failures_keep_the_loop_alive(settings, repos):
    clock = FakeClock(T0)
    orchestrator = ScriptedOrchestrator([
        RuntimeError("database is locked"),
        CycleInProgressError("c"),
        _report(CyclePhase.FAILED, CycleOutcome.CONVERSION_FAILED),
        _report(),
    ])
    scheduler = _scheduler(settings, repos, orchestrator, clock)

    await scheduler._scheduler_loop()

    assert len(orchestrator.triggers) == 4
    assert scheduler.stats.failed_runs == 2
    assert scheduler.stats.skipped_triggers == 1
    assert scheduler.stats.successful_runs == 1
    assert scheduler.stats.last_outcome == "distributed"
    assert scheduler.status == SchedulerStatus.WAITING


@pytest.mark.asyncio
async def test_start_and_stop(settings_factory, repos):
    settings = settings_factory(scheduler_enabled=True)
    blocker = asyncio.Event()

    async def wait_forever(seconds):
        await blocker.wait()

    scheduler = CycleScheduler(ScriptedOrchestrator([]), repos.config, settings, sleep=wait_forever)

    await scheduler.start()
    assert scheduler.status == SchedulerStatus.WAITING
    await asyncio.sleep(0.05)

    await scheduler.stop()
    assert scheduler.status == SchedulerStatus.STOPPED
    assert scheduler.get_status()["enabled"] is True


@pytest.mark.asyncio
async def test_disabled_scheduler_does_not_start(settings, repos):
    scheduler = CycleScheduler(ScriptedOrchestrator([]), repos.config, settings)

    await scheduler.start()

    assert scheduler.status == SchedulerStatus.STOPPED
    assert scheduler._scheduler_task is None
