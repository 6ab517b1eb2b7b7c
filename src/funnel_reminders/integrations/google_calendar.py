# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "google-api-python-client>=2.0.0",
#   "google-auth>=2.0.0",
# ]
# ///
"""
Calendar Snapshot Reader - read-only view of the shared Google Calendar.

Lists every event whose start falls in [time_min, time_max) and normalizes it
into CalendarEvent. Recurring events are expanded by Google (singleEvents),
so each returned id is one concrete occurrence. All-day events get a
synthetic midnight-UTC start and ``all_day=True``.

Authentication uses a service account that has read access to the calendar.

Usage:
    from funnel_reminders.integrations.google_calendar import GoogleCalendarReader

    reader = GoogleCalendarReader(config.calendar)
    events = await reader.fetch(time_min, time_max)
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, time, timezone
from typing import Any, Optional

from funnel_reminders.core.config import CalendarSettings
from funnel_reminders.core.errors import CalendarFetchError
from funnel_reminders.core.models import CalendarEvent

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]
TOKEN_URI = "https://oauth2.googleapis.com/token"


def _to_rfc3339(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_instant(raw: dict) -> tuple[Optional[datetime], bool]:
    """
    Parse a Google ``start``/``end`` object.

    Returns:
        (instant, all_day). Instant is None when the object carries neither
        dateTime nor date.
    """
    if not raw:
        return None, False
    if raw.get("dateTime"):
        value = datetime.fromisoformat(raw["dateTime"].replace("Z", "+00:00"))
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value, False
    if raw.get("date"):
        day = date.fromisoformat(raw["date"])
        return datetime.combine(day, time.min, tzinfo=timezone.utc), True
    return None, False


def event_from_item(item: dict) -> Optional[CalendarEvent]:
    """Convert one Google event resource. Returns None for unusable items."""
    event_id = item.get("id")
    try:
        start, all_day = _parse_instant(item.get("start") or {})
        end, _ = _parse_instant(item.get("end") or {})
    except ValueError:
        logger.debug("Dropping event %s with unparseable start/end", event_id)
        return None
    if not event_id or start is None:
        logger.debug("Dropping event without id or start: id=%s", event_id)
        return None

    private = (item.get("extendedProperties") or {}).get("private") or {}
    return CalendarEvent(
        id=event_id,
        start=start,
        end=end,
        all_day=all_day,
        summary=item.get("summary") or "",
        description=item.get("description") or "",
        location=item.get("location"),
        metadata={k: str(v) for k, v in private.items() if v is not None},
    )


class GoogleCalendarReader:
    """
    Pages through Google Calendar events for a UTC window.

    Attributes:
        settings: Calendar id, service account credentials and page size.
        _service: googleapiclient Resource, built lazily unless injected.
    """

    def __init__(self, settings: CalendarSettings, service: Any = None):
        self.settings = settings
        self._service = service

    def _build_service(self) -> Any:
        from google.oauth2 import service_account
        from googleapiclient.discovery import build

        if not (self.settings.service_account_email and self.settings.service_account_private_key):
            raise CalendarFetchError(
                "Google Calendar not configured. "
                "Set GOOGLE_CALENDAR_EMAIL and GOOGLE_CALENDAR_PRIVATE_KEY."
            )
        creds = service_account.Credentials.from_service_account_info(
            {
                "type": "service_account",
                "client_email": self.settings.service_account_email,
                "private_key": self.settings.service_account_private_key,
                "token_uri": TOKEN_URI,
            },
            scopes=SCOPES,
        )
        return build("calendar", "v3", credentials=creds, cache_discovery=False)

    @property
    def service(self) -> Any:
        if self._service is None:
            self._service = self._build_service()
        return self._service

    def _list_all(self, time_min: datetime, time_max: datetime) -> list[dict]:
        items: list[dict] = []
        page_token: Optional[str] = None
        while True:
            response = (
                self.service.events()
                .list(
                    calendarId=self.settings.calendar_id,
                    timeMin=_to_rfc3339(time_min),
                    timeMax=_to_rfc3339(time_max),
                    singleEvents=True,
                    orderBy="startTime",
                    maxResults=self.settings.page_size,
                    pageToken=page_token,
                )
                .execute()
            )
            items.extend(response.get("items", []))
            page_token = response.get("nextPageToken")
            if not page_token:
                return items

    async def fetch(self, time_min: datetime, time_max: datetime) -> list[CalendarEvent]:
        """
        Fetch every event starting in [time_min, time_max).

        Args:
            time_min: Inclusive lower bound, timezone-aware.
            time_max: Exclusive upper bound, timezone-aware.

        Returns:
            Normalized events from all pages, in provider order.

        Raises:
            ValueError: If a bound is naive or the range is inverted.
            CalendarFetchError: On any network, auth or API failure.
        """
        if time_min.tzinfo is None or time_max.tzinfo is None:
            raise ValueError("fetch bounds must be timezone-aware")
        if time_max < time_min:
            raise ValueError(f"time_max {time_max} is before time_min {time_min}")

        try:
            items = await asyncio.to_thread(self._list_all, time_min, time_max)
        except CalendarFetchError:
            raise
        except Exception as e:
            raise CalendarFetchError(f"listing events failed: {e}") from e

        events = []
        for item in items:
            event = event_from_item(item)
            if event is None:
                continue
            # Google matches on overlap; timed events must also start inside the window
            if time_min <= event.start < time_max or event.all_day:
                events.append(event)
        logger.debug(
            "Fetched %d event(s) between %s and %s", len(events), time_min.isoformat(), time_max.isoformat()
        )
        return events
