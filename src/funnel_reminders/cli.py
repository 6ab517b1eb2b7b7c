"""
Command line entry point.

Usage:
    funnel-reminders run                      # long-running daemon
    funnel-reminders run --dry-run            # log messages instead of sending
    funnel-reminders poll 24h [--dry-run]     # one poll of one kind, then exit
    funnel-reminders migrate                  # apply ledger migrations
    funnel-reminders confirm-booking --event-id abc --client-name "Ana" \\
        --phone 5531988887777 --responsible "Carlos" --start 2026-03-10T14:00:00-03:00
    funnel-reminders validate-config

Exit codes:
    0: success
    1: runtime failure (calendar, gateway, database)
    2: invalid configuration or arguments
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from rich.console import Console
from rich.table import Table

from funnel_reminders import __version__
from funnel_reminders.core.config import NotifierConfig, load_config
from funnel_reminders.core.daemon import ReminderDaemon, serve
from funnel_reminders.core.errors import ConfigError, LedgerError
from funnel_reminders.core.logs import setup_logging
from funnel_reminders.core.models import BookingConfirmation, DispatchOutcome
from funnel_reminders.database.migrations import run_migrations
from funnel_reminders.integrations.whatsapp import EvolutionWhatsAppClient
from funnel_reminders.reminders.booking import send_booking_confirmation
from funnel_reminders.reminders.ledger import InMemoryReminderLedger

console = Console()

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="funnel-reminders",
        description="Meeting reminders from Google Calendar to WhatsApp",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", type=Path, default=None, help="JSON config file")
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        help="Logging level (default: LOG_LEVEL env or INFO)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    run_p = sub.add_parser("run", help="Run the scheduler daemon")
    run_p.add_argument("--dry-run", action="store_true", help="Log messages instead of sending")

    poll_p = sub.add_parser("poll", help="Run a single poll of one reminder kind")
    poll_p.add_argument("kind", help="Reminder kind, e.g. 30m, 1h, 24h, daily08h")
    poll_p.add_argument("--dry-run", action="store_true", help="Log messages instead of sending")

    sub.add_parser("migrate", help="Apply pending ledger migrations")

    book_p = sub.add_parser("confirm-booking", help="Send a booking confirmation to a client")
    book_p.add_argument("--event-id", default=None, help="Calendar event id (enables deduplication)")
    book_p.add_argument("--client-name", required=True)
    book_p.add_argument("--phone", required=True, help="Client phone, any formatting")
    book_p.add_argument("--responsible", required=True, help="Responsible team member")
    book_p.add_argument("--start", required=True, type=datetime.fromisoformat, help="ISO-8601 start")
    book_p.add_argument("--city", default=None)
    book_p.add_argument("--dry-run", action="store_true", help="Log the message instead of sending")

    check_p = sub.add_parser("validate-config", help="Check configuration and report missing settings")
    check_p.add_argument(
        "--check-connectivity", action="store_true", help="Also ping the WhatsApp gateway"
    )
    return parser


def _print_config_table(config: NotifierConfig) -> None:
    table = Table(title="Reminder Kinds")
    table.add_column("Kind", style="cyan")
    table.add_column("Horizon")
    table.add_column("Window (min)")
    table.add_column("Trigger")
    table.add_column("Audience")
    table.add_column("Template")
    table.add_column("Enabled")
    for kind in config.reminders:
        window = f"{kind.window_min}..{kind.window_max}" if kind.horizon == "window" else "local day"
        trigger = f"cron {kind.cron}" if kind.cron else f"every {kind.polling_cadence_minutes} min"
        table.add_row(
            kind.kind,
            kind.horizon,
            window,
            trigger,
            kind.audience,
            kind.template,
            "[green]yes[/green]" if kind.enabled else "[dim]no[/dim]",
        )
    console.print(table)


async def _gateway_online(config: NotifierConfig) -> bool:
    async with EvolutionWhatsAppClient(config.whatsapp) as client:
        return await client.check_online()


def cmd_validate_config(config: NotifierConfig, check_connectivity: bool = False) -> int:
    _print_config_table(config)
    problems = config.missing_settings()
    if check_connectivity and config.whatsapp.base_url:
        if asyncio.run(_gateway_online(config)):
            console.print(f"  [green]✓[/green] WhatsApp gateway reachable at {config.whatsapp.base_url}")
        else:
            problems.append(f"WhatsApp gateway not reachable at {config.whatsapp.base_url}")
    if problems:
        console.print("[bold red]Configuration incomplete:[/bold red]")
        for problem in problems:
            console.print(f"  [red]✗[/red] {problem}")
        return EXIT_CONFIG
    console.print("[bold green]Configuration OK[/bold green]")
    return EXIT_OK


async def cmd_poll(config: NotifierConfig, kind: str, dry_run: bool) -> int:
    try:
        config.get_kind(kind)
    except KeyError:
        known = ", ".join(k.kind for k in config.reminders)
        console.print(f"[red]Unknown reminder kind {kind!r} (known: {known})[/red]")
        return EXIT_CONFIG

    config.ensure_ready(need_messaging=not dry_run, need_ledger=not dry_run)
    daemon = ReminderDaemon(config, dry_run=dry_run)
    try:
        await daemon.initialize()
        if kind not in daemon.driver.jobs:
            console.print(f"[yellow]Reminder kind {kind} is disabled[/yellow]")
            return EXIT_CONFIG
        report = await daemon.driver.run_now(kind)
    finally:
        await daemon.shutdown()

    if report is None or report.error:
        return EXIT_FAILURE
    table = Table(title=f"Poll {kind}")
    table.add_column("Outcome")
    table.add_column("Events", justify="right")
    for outcome, count in sorted(report.outcomes.items(), key=lambda item: item[0].value):
        table.add_row(outcome.value, str(count))
    console.print(table)
    return EXIT_OK


async def cmd_migrate(config: NotifierConfig) -> int:
    applied = await run_migrations(config.database_url)
    if applied:
        console.print(f"[bold green]Applied {len(applied)} migration(s):[/bold green] {', '.join(applied)}")
    else:
        console.print("[dim]No pending migrations[/dim]")
    return EXIT_OK


async def cmd_confirm_booking(config: NotifierConfig, args: argparse.Namespace) -> int:
    booking = BookingConfirmation(
        event_id=args.event_id,
        client_name=args.client_name,
        client_phone=args.phone,
        responsible_name=args.responsible,
        start=args.start,
        city=args.city,
    )
    need_ledger = booking.event_id is not None and not args.dry_run
    config.ensure_ready(need_messaging=not args.dry_run, need_ledger=need_ledger, need_calendar=False)

    # confirmations without an event id never touch the ledger
    ledger = None if need_ledger else InMemoryReminderLedger()
    daemon = ReminderDaemon(config, dry_run=args.dry_run, reader=_NoCalendar(), ledger=ledger)
    try:
        await daemon.initialize()
        outcome = await send_booking_confirmation(booking, daemon.dispatcher)
    finally:
        await daemon.shutdown()

    console.print(f"Booking confirmation: [bold]{outcome.value}[/bold]")
    if outcome in (DispatchOutcome.SENT, DispatchOutcome.ALREADY_SENT, DispatchOutcome.UNCONFIRMED):
        return EXIT_OK
    return EXIT_FAILURE


class _NoCalendar:
    """Calendar stand-in for commands that never read events."""

    async def fetch(self, time_min, time_max):
        return []


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, console=console)

    try:
        config = load_config(args.config)
        if args.command == "validate-config":
            return cmd_validate_config(config, args.check_connectivity)
        if args.command == "run":
            config.ensure_ready(need_messaging=not args.dry_run, need_ledger=not args.dry_run)
            asyncio.run(serve(config, dry_run=args.dry_run))
            return EXIT_OK
        if args.command == "poll":
            return asyncio.run(cmd_poll(config, args.kind, args.dry_run))
        if args.command == "migrate":
            return asyncio.run(cmd_migrate(config))
        if args.command == "confirm-booking":
            return asyncio.run(cmd_confirm_booking(config, args))
    except ConfigError as e:
        console.print(f"[bold red]Configuration error:[/bold red]\n{e}")
        return EXIT_CONFIG
    except LedgerError as e:
        console.print(f"[bold red]Database error:[/bold red] {e}")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        return EXIT_OK
    return EXIT_CONFIG


def run() -> None:
    sys.exit(main())
