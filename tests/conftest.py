"""Shared fakes and fixtures: fixed clock, in-memory calendar, recording messenger."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from funnel_reminders.core.config import NotifierConfig, ReminderKindConfig
from funnel_reminders.core.errors import CalendarFetchError, LedgerError
from funnel_reminders.core.models import CalendarEvent
from funnel_reminders.reminders.dispatcher import ReminderDispatcher, ReminderJob
from funnel_reminders.reminders.ledger import InMemoryReminderLedger

T0 = datetime(2026, 3, 10, 17, 0, tzinfo=timezone.utc)  # 14:00 in Sao Paulo
CLIENT_PHONE = "5531988887777"
INTERNAL_PHONE = "5531900000000"


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeCalendar:
    """Serves events starting in [time_min, time_max); can fail the next N fetches."""

    def __init__(self, events: Optional[list[CalendarEvent]] = None):
        self.events = list(events or [])
        self.fail_next = 0
        self.calls: list[tuple[datetime, datetime]] = []

    async def fetch(self, time_min: datetime, time_max: datetime) -> list[CalendarEvent]:
        self.calls.append((time_min, time_max))
        if self.fail_next:
            self.fail_next -= 1
            raise CalendarFetchError("calendar unreachable")
        return [e for e in self.events if e.all_day or time_min <= e.start < time_max]


class RecordingMessenger:
    """Records sends; raises ``error`` instead when set."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.sent: list[tuple[str, str, str]] = []
        self.attempts = 0

    async def send(self, instance: str, recipient_id: str, text: str) -> dict:
        self.attempts += 1
        if self.error is not None:
            raise self.error
        self.sent.append((instance, recipient_id, text))
        return {"key": {"id": f"msg-{len(self.sent)}"}}


class FailingWriteLedger(InMemoryReminderLedger):
    """Lookups work, writes fail."""

    async def mark_sent(self, event_id: str, occurrence_key: str, kind: str) -> bool:
        raise LedgerError("database is read-only")


def make_event(
    event_id: str = "evt-1",
    start: datetime = T0,
    phone: Optional[str] = CLIENT_PHONE,
    client: str = "Ana Souza",
    responsible: str = "Carlos",
    **kwargs,
) -> CalendarEvent:
    metadata = {"client_name": client, "responsible_name": responsible}
    if phone:
        metadata["client_phone"] = phone
    return CalendarEvent(id=event_id, start=start, summary=f"Reunião com {client}", metadata=metadata, **kwargs)


@pytest.fixture
def config() -> NotifierConfig:
    return NotifierConfig(
        database_url="memory://",
        internal_recipient=INTERNAL_PHONE,
        whatsapp={"base_url": "http://evolution.test", "api_key": "secret"},
    )


@pytest.fixture
def kind_30m() -> ReminderKindConfig:
    return ReminderKindConfig(
        kind="30m", window_min=29, window_max=31, polling_cadence_minutes=2,
        template="client_1h", timezone="America/Sao_Paulo", instance="testedesafio",
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def calendar() -> FakeCalendar:
    return FakeCalendar()


@pytest.fixture
def messenger() -> RecordingMessenger:
    return RecordingMessenger()


@pytest.fixture
def ledger() -> InMemoryReminderLedger:
    return InMemoryReminderLedger()


@pytest.fixture
def dispatcher(config, ledger, messenger) -> ReminderDispatcher:
    return ReminderDispatcher(config, ledger, messenger)


@pytest.fixture
def job_30m(kind_30m, calendar, dispatcher, clock) -> ReminderJob:
    return ReminderJob(kind_30m, calendar, dispatcher, clock=clock)
