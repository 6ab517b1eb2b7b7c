"""Scheduled jobs that are not calendar reminders."""

from funnel_reminders.jobs.motivational import MotivationalJob

__all__ = ["MotivationalJob"]
