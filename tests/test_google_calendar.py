"""Calendar snapshot reader against a mocked googleapiclient service."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from conftest import T0
from funnel_reminders.core.config import CalendarSettings
from funnel_reminders.core.errors import CalendarFetchError
from funnel_reminders.integrations.google_calendar import GoogleCalendarReader, event_from_item


def _service(*pages: dict) -> MagicMock:
    service = MagicMock()
    service.events.return_value.list.return_value.execute.side_effect = list(pages)
    return service


def _timed(event_id: str, start: str, **extra) -> dict:
    return {"id": event_id, "start": {"dateTime": start}, "end": {"dateTime": start}, **extra}


def test_event_from_timed_item_keeps_instant_and_metadata():
    item = _timed(
        "abc",
        "2026-03-10T14:00:00-03:00",
        summary="Reunião com Ana",
        location="Rua A, 10",
        extendedProperties={"private": {"client_phone": "5531988887777"}},
    )

    event = event_from_item(item)

    assert event.start == T0
    assert not event.all_day
    assert event.location == "Rua A, 10"
    assert event.metadata == {"client_phone": "5531988887777"}
    assert event.occurrence_key == "2026-03-10T17:00:00+00:00"


def test_event_from_all_day_item_gets_midnight_utc():
    event = event_from_item({"id": "holiday", "start": {"date": "2026-03-10"}, "end": {"date": "2026-03-11"}})

    assert event.all_day
    assert event.start == datetime(2026, 3, 10, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "item",
    [
        {"start": {"dateTime": "2026-03-10T14:00:00Z"}},
        {"id": "no-start", "start": {}},
        {"id": "garbage", "start": {"dateTime": "not a date"}},
    ],
)
def test_unusable_items_are_dropped(item):
    assert event_from_item(item) is None


async def test_fetch_pages_through_all_results():
    service = _service(
        {"items": [_timed("a", "2026-03-10T17:00:00Z")], "nextPageToken": "p2"},
        {"items": [_timed("b", "2026-03-10T17:01:00Z")]},
    )
    reader = GoogleCalendarReader(CalendarSettings(calendar_id="sales@example.com"), service=service)

    events = await reader.fetch(T0 - timedelta(minutes=1), T0 + timedelta(minutes=5))

    assert [e.id for e in events] == ["a", "b"]
    calls = service.events.return_value.list.call_args_list
    assert len(calls) == 2
    assert calls[0].kwargs["calendarId"] == "sales@example.com"
    assert calls[0].kwargs["singleEvents"] is True
    assert calls[0].kwargs["timeMin"] == "2026-03-10T16:59:00Z"
    assert calls[0].kwargs["pageToken"] is None
    assert calls[1].kwargs["pageToken"] == "p2"


async def test_fetch_drops_events_starting_outside_the_window():
    # Google matches by overlap, so a meeting already in progress can come back
    service = _service({"items": [
        _timed("running", "2026-03-10T16:00:00Z"),
        _timed("inside", "2026-03-10T17:00:00Z"),
        _timed("at-max", "2026-03-10T17:05:00Z"),
        {"id": "allday", "start": {"date": "2026-03-10"}},
    ]})
    reader = GoogleCalendarReader(CalendarSettings(), service=service)

    events = await reader.fetch(T0, T0 + timedelta(minutes=5))

    assert [e.id for e in events] == ["inside", "allday"]


async def test_fetch_failure_is_wrapped():
    service = MagicMock()
    service.events.return_value.list.return_value.execute.side_effect = OSError("network down")
    reader = GoogleCalendarReader(CalendarSettings(), service=service)

    with pytest.raises(CalendarFetchError, match="network down"):
        await reader.fetch(T0, T0 + timedelta(minutes=5))


async def test_fetch_rejects_naive_or_inverted_bounds():
    reader = GoogleCalendarReader(CalendarSettings(), service=_service())

    with pytest.raises(ValueError):
        await reader.fetch(T0.replace(tzinfo=None), T0)
    with pytest.raises(ValueError):
        await reader.fetch(T0, T0 - timedelta(minutes=1))


async def test_missing_credentials_is_a_fetch_error():
    reader = GoogleCalendarReader(CalendarSettings())

    with pytest.raises(CalendarFetchError, match="not configured"):
        await reader.fetch(T0, T0 + timedelta(minutes=5))
