"""
Reminder Dispatcher - fetch, evaluate, deduplicate, send, record.

One ReminderJob exists per reminder kind. Each run pulls the calendar snapshot
for the kind's horizon and walks the events sequentially; every event moves
through not_due -> due_unsent -> due_sent, where the last step requires a send
followed by a ledger write.

Policy is send-then-mark:
- gateway unavailable (nothing delivered): ledger untouched, next poll retries.
- delivery unconfirmed (maybe delivered): ledger marked anyway, no retry.
- ledger write fails after a confirmed send: reported as sent_unrecorded; the
  next poll may send again.
A duplicate is preferred over a silent loss only when the ledger itself fails.

Usage:
    dispatcher = ReminderDispatcher(config, ledger, messenger)
    job = ReminderJob(config.get_kind("24h"), reader, dispatcher)
    report = await job.run()
    print(report.sent_count)
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Protocol

from funnel_reminders.core.config import NotifierConfig, ReminderKindConfig
from funnel_reminders.core.errors import CalendarFetchError, LedgerError, MessagingUnavailable
from funnel_reminders.core.models import CalendarEvent, DispatchOutcome, PollReport
from funnel_reminders.integrations.whatsapp import normalize_recipient
from funnel_reminders.reminders.extraction import extract_fields
from funnel_reminders.reminders.ledger import ReminderLedger
from funnel_reminders.reminders.templates import MessageContext, render
from funnel_reminders.reminders.window import (
    Clock,
    fetch_bounds,
    in_local_day,
    is_eligible,
    local_day_bounds,
    local_today,
    minutes_until,
    utc_now,
)

logger = logging.getLogger(__name__)


class CalendarReader(Protocol):
    async def fetch(self, time_min: datetime, time_max: datetime) -> list[CalendarEvent]: ...


class Messenger(Protocol):
    async def send(self, instance: str, recipient_id: str, text: str) -> dict: ...


class ReminderDispatcher:
    """
    Sends one reminder and records it in the ledger.

    Attributes:
        config: Service configuration (display timezone, program name,
            internal recipient, recipient suffix).
        ledger: Deduplication ledger shared by every kind.
        messenger: Outbound messaging collaborator.
    """

    def __init__(self, config: NotifierConfig, ledger: ReminderLedger, messenger: Messenger):
        self.config = config
        self.ledger = ledger
        self.messenger = messenger

    async def deliver(
        self,
        *,
        event_id: str,
        occurrence_key: str,
        kind: str,
        instance: str,
        recipient: str,
        text: str,
        checked: bool = False,
        record: bool = True,
    ) -> DispatchOutcome:
        """
        Send ``text`` unless the ledger already has the key, then mark it.

        Args:
            event_id: Stable event identifier.
            occurrence_key: Start-time key of the concrete occurrence.
            kind: Reminder kind, part of the ledger key.
            instance: Gateway instance to send through.
            recipient: Phone-like recipient; normalized here before sending.
            text: Rendered message body.
            checked: The caller already looked the key up in the ledger.
            record: Use the ledger at all. Off for one-off messages that have
                no stable event id.

        Returns:
            The DispatchOutcome for this attempt.
        """
        if record and not checked:
            try:
                if await self.ledger.has_sent(event_id, occurrence_key, kind):
                    logger.debug("[%s] %s already sent, skipping", kind, event_id)
                    return DispatchOutcome.ALREADY_SENT
            except LedgerError as e:
                logger.error("[%s] Ledger lookup failed for %s, deferring: %s", kind, event_id, e)
                return DispatchOutcome.DEFERRED

        try:
            recipient_id = normalize_recipient(recipient, self.config.whatsapp.recipient_suffix)
        except ValueError as e:
            logger.warning("[%s] Unusable recipient for %s: %s", kind, event_id, e)
            return DispatchOutcome.SKIPPED_MISSING_FIELD

        confirmed = True
        try:
            await self.messenger.send(instance, recipient_id, text)
        except MessagingUnavailable as e:
            logger.warning("[%s] Gateway unavailable for %s, will retry next poll: %s", kind, event_id, e)
            return DispatchOutcome.DEFERRED
        except Exception as e:
            confirmed = False
            logger.warning(
                "[%s] Send for %s not confirmed, marking as sent to avoid duplicates: %s",
                kind, event_id, e,
            )

        if not record:
            return DispatchOutcome.SENT if confirmed else DispatchOutcome.UNCONFIRMED

        try:
            await self.ledger.mark_sent(event_id, occurrence_key, kind)
        except Exception as e:
            logger.error("[%s] Sent %s but could not record it in the ledger: %s", kind, event_id, e)
            return DispatchOutcome.SENT_UNRECORDED if confirmed else DispatchOutcome.UNCONFIRMED

        return DispatchOutcome.SENT if confirmed else DispatchOutcome.UNCONFIRMED

    def _recipient_for(self, kind: ReminderKindConfig, phone: Optional[str]) -> Optional[str]:
        if kind.audience == "internal":
            return self.config.internal_recipient
        return phone

    async def dispatch_event(
        self,
        event: CalendarEvent,
        kind: ReminderKindConfig,
        now: datetime,
    ) -> DispatchOutcome:
        """Resolve recipient and content for a due event and deliver it."""
        occurrence_key = event.occurrence_key
        try:
            if await self.ledger.has_sent(event.id, occurrence_key, kind.kind):
                return DispatchOutcome.ALREADY_SENT
        except LedgerError as e:
            logger.error("[%s] Ledger lookup failed for %s, deferring: %s", kind.kind, event.id, e)
            return DispatchOutcome.DEFERRED

        fields = extract_fields(event)
        recipient = self._recipient_for(kind, fields.phone)
        if not recipient:
            logger.warning(
                "[%s] No recipient for event %s (%r), skipping", kind.kind, event.id, event.summary
            )
            return DispatchOutcome.SKIPPED_MISSING_FIELD

        details = dict(event.metadata)
        if event.location:
            details.setdefault("address", event.location)
        ctx = MessageContext(
            start=event.start,
            timezone=kind.timezone or self.config.timezone,
            program_name=self.config.program_name,
            client_name=fields.client_name or "Cliente",
            responsible_name=fields.responsible_name or "Responsável",
            phone=fields.phone,
            minutes_until=minutes_until(event.start, now),
            details=details,
        )
        text = render(kind.template, ctx)

        return await self.deliver(
            event_id=event.id,
            occurrence_key=occurrence_key,
            kind=kind.kind,
            instance=kind.instance or self.config.whatsapp.default_instance,
            recipient=recipient,
            text=text,
            checked=True,
        )


class ReminderJob:
    """
    One reminder kind: its horizon, its eligibility test and its poll loop body.

    Attributes:
        kind: Validated kind configuration.
        reader: Calendar snapshot reader.
        dispatcher: Shared dispatcher (ledger + messenger).
        clock: Returns the current UTC instant; injectable for tests.
    """

    def __init__(
        self,
        kind: ReminderKindConfig,
        reader: CalendarReader,
        dispatcher: ReminderDispatcher,
        clock: Clock = utc_now,
    ):
        self.kind = kind
        self.reader = reader
        self.dispatcher = dispatcher
        self.clock = clock

    @property
    def name(self) -> str:
        return self.kind.kind

    def horizon(self, now: datetime) -> tuple[datetime, datetime]:
        if self.kind.horizon == "local_day":
            return local_day_bounds(local_today(now, self.kind.timezone), self.kind.timezone)
        return fetch_bounds(self.kind.window, now)

    def is_due(self, event: CalendarEvent, now: datetime, bounds: tuple[datetime, datetime]) -> bool:
        if self.kind.horizon == "local_day":
            return in_local_day(event, bounds)
        return is_eligible(event, self.kind.window, now)

    async def run(self) -> PollReport:
        """
        Poll once.

        A calendar failure leaves the ledger untouched and is reported in
        ``PollReport.error``; the next poll retries while the event is still
        inside its window.
        """
        now = self.clock()
        report = PollReport(kind=self.name, started_at=now)
        bounds = self.horizon(now)

        try:
            events = await self.reader.fetch(*bounds)
        except CalendarFetchError as e:
            report.error = str(e)
            logger.error("[%s] Calendar fetch failed, nothing sent this poll: %s", self.name, e)
            return report

        report.fetched = len(events)
        for event in events:
            if event.all_day:
                outcome = DispatchOutcome.SKIPPED_ALL_DAY
            elif not self.is_due(event, now, bounds):
                outcome = DispatchOutcome.NOT_DUE
            else:
                try:
                    outcome = await self.dispatcher.dispatch_event(event, self.kind, now)
                except Exception as e:
                    # one bad event must not cost the rest of the poll
                    logger.exception("[%s] Dispatch of %s failed, deferring: %s", self.name, event.id, e)
                    outcome = DispatchOutcome.DEFERRED
            logger.debug("[%s] %s (%s): %s", self.name, event.id, event.occurrence_key, outcome.value)
            report.record(outcome)

        logger.info(
            "[%s] Poll done: fetched=%d sent=%d already=%d skipped=%d deferred=%d",
            self.name,
            report.fetched,
            report.sent_count,
            report.count(DispatchOutcome.ALREADY_SENT),
            report.count(DispatchOutcome.SKIPPED_MISSING_FIELD),
            report.count(DispatchOutcome.DEFERRED),
        )
        return report
