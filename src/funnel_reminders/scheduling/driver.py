# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "apscheduler>=3.10,<4",
#   "pytz>=2024.1",
# ]
# ///
"""
Scheduler Driver - fires reminder kinds on their cadence or cron.

Every reminder kind is registered as one APScheduler job on an
AsyncIOScheduler. Window kinds run on an interval of their polling cadence,
cron kinds (daily08h, motivational) on a crontab evaluated in their
timezone. Jobs are non-overlapping: ``max_instances=1`` with ``coalesce=True``
means a tick that arrives while the previous run of the same kind is still
going is dropped, never run concurrently.

Usage:
    driver = SchedulerDriver(jobs, motivational=motivational_job)
    driver.start()
    ...
    await driver.run_now("24h")
    driver.shutdown()
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from funnel_reminders.core.models import PollReport
from funnel_reminders.jobs.motivational import MotivationalJob
from funnel_reminders.reminders.dispatcher import ReminderJob

logger = logging.getLogger(__name__)

MISFIRE_GRACE_SECONDS = 60


def build_trigger(cron: Optional[str], cadence_minutes: Optional[int], tz_name: str):
    """Cron wins when both are set."""
    if cron:
        return CronTrigger.from_crontab(cron, timezone=pytz.timezone(tz_name))
    if not cadence_minutes:
        raise ValueError("a job needs a cron expression or a polling cadence")
    return IntervalTrigger(minutes=cadence_minutes, timezone=pytz.UTC)


class SchedulerDriver:
    """
    Owns the AsyncIOScheduler and the registered jobs.

    Attributes:
        jobs: ReminderJob per kind name.
        motivational: Optional daily motivational job.
        scheduler: Underlying APScheduler instance.
        stats: Per-job counters (runs, failures, messages sent).
    """

    def __init__(
        self,
        jobs: list[ReminderJob],
        motivational: Optional[MotivationalJob] = None,
        motivational_cron: Optional[str] = None,
        motivational_timezone: str = "UTC",
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.jobs: dict[str, ReminderJob] = {job.name: job for job in jobs}
        self.motivational = motivational
        self.motivational_cron = motivational_cron
        self.motivational_timezone = motivational_timezone
        self.scheduler = scheduler or AsyncIOScheduler(timezone=pytz.UTC)
        self.stats: dict[str, dict[str, Any]] = {}
        self._registered = False

    def _job_stats(self, name: str) -> dict[str, Any]:
        return self.stats.setdefault(
            name, {"runs": 0, "failures": 0, "sent": 0, "last_run": None, "last_error": None}
        )

    def register(self) -> None:
        """Add one scheduler job per reminder kind (and the motivational job)."""
        for name, job in self.jobs.items():
            kind = job.kind
            trigger = build_trigger(kind.cron, kind.polling_cadence_minutes, kind.timezone or "UTC")
            self.scheduler.add_job(
                self.run_now,
                trigger,
                args=[name],
                id=name,
                name=f"reminder:{name}",
                max_instances=1,
                coalesce=True,
                replace_existing=True,
                misfire_grace_time=MISFIRE_GRACE_SECONDS,
            )
            logger.info("Registered reminder kind %s (%s)", name, trigger)

        if self.motivational is not None and self.motivational_cron:
            trigger = build_trigger(self.motivational_cron, None, self.motivational_timezone)
            self.scheduler.add_job(
                self.run_motivational,
                trigger,
                id=MotivationalJob.name,
                name=MotivationalJob.name,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
                misfire_grace_time=MISFIRE_GRACE_SECONDS,
            )
            logger.info("Registered motivational job (%s)", trigger)
        self._registered = True

    def start(self) -> None:
        if not self._registered:
            self.register()
        self.scheduler.start()
        logger.info("Scheduler started with %d job(s)", len(self.scheduler.get_jobs()))

    def shutdown(self, wait: bool = False) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Scheduler stopped")

    def pause(self, name: Optional[str] = None) -> None:
        """Pause one job by kind name, or every job."""
        if name is None:
            self.scheduler.pause()
        else:
            self.scheduler.pause_job(name)

    def resume(self, name: Optional[str] = None) -> None:
        if name is None:
            self.scheduler.resume()
        else:
            self.scheduler.resume_job(name)

    def scheduled_jobs(self) -> list[dict[str, Any]]:
        """Registered jobs with their next fire time, for status output."""
        return [
            {"id": job.id, "name": job.name, "next_run_time": getattr(job, "next_run_time", None)}
            for job in self.scheduler.get_jobs()
        ]

    async def run_now(self, name: str) -> Optional[PollReport]:
        """
        Run one poll of a reminder kind.

        A failing poll is logged and counted instead of raised, so the
        scheduler keeps the job for its next tick.
        """
        job = self.jobs.get(name)
        if job is None:
            raise KeyError(f"unknown reminder kind: {name!r}")

        stats = self._job_stats(name)
        stats["runs"] += 1
        stats["last_run"] = datetime.now(timezone.utc)
        try:
            report = await job.run()
        except Exception as e:
            stats["failures"] += 1
            stats["last_error"] = str(e)
            logger.exception("[%s] Poll failed", name)
            return None

        stats["sent"] += report.sent_count
        if report.error:
            stats["failures"] += 1
            stats["last_error"] = report.error
        return report

    async def run_motivational(self) -> bool:
        if self.motivational is None:
            return False
        stats = self._job_stats(MotivationalJob.name)
        stats["runs"] += 1
        stats["last_run"] = datetime.now(timezone.utc)
        try:
            sent = await self.motivational.run()
        except Exception as e:
            stats["failures"] += 1
            stats["last_error"] = str(e)
            logger.exception("Motivational job failed")
            return False
        if sent:
            stats["sent"] += 1
        return sent

    def total_sent(self) -> int:
        return sum(s["sent"] for s in self.stats.values())
