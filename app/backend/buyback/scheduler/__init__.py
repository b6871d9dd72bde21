"""Background scheduling of buyback cycles."""

from .cycle_scheduler import CycleScheduler, SchedulerStatus, SchedulerStats, compute_next_tick

__all__ = ["CycleScheduler", "SchedulerStatus", "SchedulerStats", "compute_next_tick"]
