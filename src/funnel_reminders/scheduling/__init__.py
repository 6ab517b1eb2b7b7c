"""Time-based triggering of reminder kinds."""

from funnel_reminders.scheduling.driver import SchedulerDriver, build_trigger

__all__ = [
    "SchedulerDriver",
    "build_trigger",
]
