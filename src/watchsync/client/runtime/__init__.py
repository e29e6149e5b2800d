"""Event loop plumbing: schedulers, coordinator channel, runtime queue."""

from .scheduler import AsyncioScheduler, ManualScheduler, Scheduler, TimerGroup

__all__ = ["AsyncioScheduler", "ManualScheduler", "Scheduler", "TimerGroup"]
