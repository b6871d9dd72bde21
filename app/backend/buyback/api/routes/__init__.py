"""API routes package."""

from . import activity, countdown, cycles, holders, stats, trigger

__all__ = ["activity", "countdown", "cycles", "holders", "stats", "trigger"]
