"""
Pydantic models for the reminder service.

Calendar events are read-only snapshots of the shared sales calendar. Everything
the reminder subsystem persists is a ReminderRecord in the deduplication ledger.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class CalendarEvent(BaseModel):
    """
    A single concrete calendar occurrence.

    Recurring events are expanded by the calendar provider (singleEvents=True)
    before they reach this model, so ``id`` is unique per occurrence.
    """
    id: str
    start: datetime  # absolute instant, always timezone-aware (UTC if naive)
    end: Optional[datetime] = None
    all_day: bool = False  # date-only event, start is synthetic midnight UTC
    summary: str = ""
    description: str = ""
    location: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)  # extendedProperties.private

    @field_validator("start", "end")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def occurrence_key(self) -> str:
        """UTC ISO-8601 start, distinguishing reschedules of the same event id."""
        return self.start.astimezone(timezone.utc).isoformat(timespec="seconds")


class ReminderWindow(BaseModel):
    """
    Eligibility policy for one reminder kind.

    Bounds are inclusive and measured in whole minutes until start at
    evaluation time. The cadence must not exceed the window width, otherwise
    an event can cross the whole window between two polls.
    """
    kind: str
    min_offset_minutes: int
    max_offset_minutes: int
    polling_cadence_minutes: int = Field(gt=0)

    @field_validator("max_offset_minutes")
    @classmethod
    def bounds_ordered(cls, v: int, info) -> int:
        lower = info.data.get("min_offset_minutes")
        if lower is not None and v < lower:
            raise ValueError(f"window max ({v}) must be >= window min ({lower})")
        return v

    @field_validator("polling_cadence_minutes")
    @classmethod
    def cadence_fits_window(cls, v: int, info) -> int:
        lower = info.data.get("min_offset_minutes")
        upper = info.data.get("max_offset_minutes")
        if lower is not None and upper is not None and (upper - lower) < v:
            raise ValueError(
                f"polling cadence ({v} min) is wider than the window "
                f"[{lower}, {upper}]; reminders would be skipped"
            )
        return v


class ReminderRecord(BaseModel):
    """A ledger row. Created once at dispatch, never updated or deleted."""
    event_id: str
    occurrence_key: str
    kind: str
    sent_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.event_id, self.occurrence_key, self.kind)


class DispatchOutcome(str, Enum):
    """What happened to one event during one poll of one kind."""
    SENT = "sent"
    ALREADY_SENT = "already_sent"
    NOT_DUE = "not_due"
    SKIPPED_ALL_DAY = "skipped_all_day"
    SKIPPED_MISSING_FIELD = "skipped_missing_field"
    DEFERRED = "deferred"  # nothing delivered, retried on the next poll
    UNCONFIRMED = "unconfirmed"  # may have been delivered, not retried
    SENT_UNRECORDED = "sent_unrecorded"  # delivered, ledger write failed


class PollReport(BaseModel):
    """Result of one invocation of a reminder kind."""
    kind: str
    started_at: datetime
    fetched: int = 0
    outcomes: dict[DispatchOutcome, int] = Field(default_factory=dict)
    error: Optional[str] = None  # set when the calendar fetch failed

    def record(self, outcome: DispatchOutcome) -> None:
        self.outcomes[outcome] = self.outcomes.get(outcome, 0) + 1

    def count(self, outcome: DispatchOutcome) -> int:
        return self.outcomes.get(outcome, 0)

    @property
    def sent_count(self) -> int:
        """Messages handed to the gateway (confirmed or not)."""
        return (
            self.count(DispatchOutcome.SENT)
            + self.count(DispatchOutcome.UNCONFIRMED)
            + self.count(DispatchOutcome.SENT_UNRECORDED)
        )


class ExtractedFields(BaseModel):
    """Recipient and display fields resolved for one event."""
    client_name: Optional[str] = None
    responsible_name: Optional[str] = None
    phone: Optional[str] = None  # digits only
    used_fallback: bool = False  # at least one field came from free text


class BookingConfirmation(BaseModel):
    """Data needed to confirm a freshly booked meeting to the client."""
    event_id: Optional[str] = None
    client_name: str
    client_phone: str
    responsible_name: str
    start: datetime
    city: Optional[str] = None

    @field_validator("start")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def occurrence_key(self) -> str:
        return self.start.astimezone(timezone.utc).isoformat(timespec="seconds")
