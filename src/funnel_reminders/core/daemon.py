"""
Reminder Daemon - wires the collaborators together and keeps the scheduler alive.

Startup order: ledger, calendar reader, messenger, dispatcher, reminder jobs,
optional motivational job, scheduler. Shutdown reverses it and prints a
session summary.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from datetime import datetime
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from funnel_reminders.core.config import MEMORY_LEDGER_URL, NotifierConfig
from funnel_reminders.integrations.gemini import GeminiWriter
from funnel_reminders.integrations.google_calendar import GoogleCalendarReader
from funnel_reminders.integrations.whatsapp import EvolutionWhatsAppClient, LoggingMessenger
from funnel_reminders.jobs.motivational import MotivationalJob
from funnel_reminders.reminders.dispatcher import CalendarReader, Messenger, ReminderDispatcher, ReminderJob
from funnel_reminders.reminders.ledger import ReminderLedger, open_ledger
from funnel_reminders.scheduling.driver import SchedulerDriver

logger = logging.getLogger(__name__)
console = Console()

STATUS_INTERVAL_SECONDS = 60 * 30


class ReminderDaemon:
    """
    Long-running reminder service.

    Attributes:
        config: Validated configuration.
        dry_run: Log messages instead of sending them.
        ledger: Deduplication ledger (Postgres or in-memory).
        reader: Calendar reader; injectable for tests.
        messenger: Outbound messenger; injectable for tests.
        driver: Scheduler driver, created by initialize().
    """

    def __init__(
        self,
        config: NotifierConfig,
        dry_run: bool = False,
        reader: Optional[CalendarReader] = None,
        messenger: Optional[Messenger] = None,
        ledger: Optional[ReminderLedger] = None,
    ):
        self.config = config
        self.dry_run = dry_run
        self.reader = reader
        self.messenger = messenger
        self.ledger = ledger
        self.dispatcher: Optional[ReminderDispatcher] = None
        self.driver: Optional[SchedulerDriver] = None
        self.running = False
        self.started_at: Optional[datetime] = None

    async def initialize(self) -> None:
        """Build every collaborator. Raises ConfigError/LedgerError on bad setup."""
        console.print("[bold blue]Initializing Reminder Daemon...[/bold blue]")

        if self.ledger is None:
            # dry runs never write to the real ledger
            url = MEMORY_LEDGER_URL if self.dry_run else self.config.database_url
            self.ledger = await open_ledger(url)
        kind_of_ledger = type(self.ledger).__name__
        console.print(f"  [green]✓[/green] Ledger ready ({kind_of_ledger})")

        if self.reader is None:
            self.reader = GoogleCalendarReader(self.config.calendar)
        console.print(f"  [green]✓[/green] Calendar reader ready ({self.config.calendar.calendar_id})")

        if self.messenger is None:
            if self.dry_run:
                self.messenger = LoggingMessenger()
            else:
                self.messenger = EvolutionWhatsAppClient(self.config.whatsapp)
        mode = "dry-run" if self.dry_run else self.config.whatsapp.default_instance
        console.print(f"  [green]✓[/green] Messenger ready ({mode})")

        self.dispatcher = ReminderDispatcher(self.config, self.ledger, self.messenger)
        jobs = [ReminderJob(kind, self.reader, self.dispatcher) for kind in self.config.enabled_kinds()]
        console.print(f"  [green]✓[/green] Reminder kinds: {', '.join(j.name for j in jobs) or 'none'}")

        motivational = None
        settings = self.config.motivational
        if settings is not None and settings.enabled:
            writer = GeminiWriter(settings.gemini_api_key, model=settings.model)
            motivational = MotivationalJob(settings, self.config.whatsapp, writer, self.messenger)
            console.print(f"  [green]✓[/green] Motivational message enabled ({settings.cron})")

        self.driver = SchedulerDriver(
            jobs,
            motivational=motivational,
            motivational_cron=settings.cron if motivational else None,
            motivational_timezone=(settings.timezone if motivational else None) or self.config.timezone,
        )
        self.driver.register()
        console.print("  [green]✓[/green] Scheduler jobs registered")

    def _create_status_table(self) -> Table:
        table = Table(title="Reminder Status")
        table.add_column("Job")
        table.add_column("Runs", justify="right")
        table.add_column("Sent", justify="right")
        table.add_column("Failures", justify="right")
        table.add_column("Last error")
        for name, stats in sorted(self.driver.stats.items()):
            table.add_row(
                name,
                str(stats["runs"]),
                str(stats["sent"]),
                str(stats["failures"]),
                (stats["last_error"] or "")[:60],
            )
        return table

    async def run(self) -> None:
        """Start the scheduler and block until stopped."""
        self.running = True
        self.started_at = datetime.now()
        self.driver.start()

        console.print(Panel.fit(
            "[bold green]Reminder Daemon Started[/bold green]\n"
            "Press Ctrl+C to stop",
            title="Status"
        ))

        last_status = datetime.now()
        try:
            while self.running:
                if (datetime.now() - last_status).total_seconds() >= STATUS_INTERVAL_SECONDS:
                    console.print(self._create_status_table())
                    last_status = datetime.now()
                await asyncio.sleep(1)
        except asyncio.CancelledError:
            console.print("\n[yellow]Shutdown requested...[/yellow]")
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        """Stop the scheduler and release connections."""
        self.running = False
        console.print("[yellow]Shutting down...[/yellow]")

        if self.driver:
            self.driver.shutdown()

        close = getattr(self.messenger, "close", None)
        if close is not None:
            try:
                await close()
            except Exception as e:
                console.print(f"[yellow]Warning: Error closing messenger: {e}[/yellow]")

        if self.ledger:
            try:
                await self.ledger.close()
                console.print("[green]Ledger connections closed[/green]")
            except Exception as e:
                console.print(f"[yellow]Warning: Error closing ledger: {e}[/yellow]")

        stats = self.driver.stats if self.driver else {}
        uptime = str(datetime.now() - self.started_at).split(".")[0] if self.started_at else "0:00:00"
        console.print(Panel.fit(
            f"[bold]Final Stats[/bold]\n"
            f"Uptime: {uptime}\n"
            f"Polls Run: {sum(s['runs'] for s in stats.values())}\n"
            f"Messages Sent: {sum(s['sent'] for s in stats.values())}\n"
            f"Failures: {sum(s['failures'] for s in stats.values())}",
            title="Session Summary"
        ))


async def serve(config: NotifierConfig, dry_run: bool = False) -> None:
    """Run the daemon until SIGINT/SIGTERM."""
    daemon = ReminderDaemon(config, dry_run=dry_run)

    loop = asyncio.get_running_loop()

    def signal_handler():
        daemon.running = False

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await daemon.initialize()
        await daemon.run()
    except Exception as e:
        console.print(f"[red bold]Fatal error: {e}[/red bold]")
        raise
