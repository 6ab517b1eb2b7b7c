"""Core models, configuration and the long-running daemon."""

from funnel_reminders.core.config import NotifierConfig, ReminderKindConfig, load_config
from funnel_reminders.core.errors import (
    CalendarFetchError,
    ConfigError,
    DeliveryUnconfirmed,
    LedgerError,
    MessagingError,
    MessagingUnavailable,
)
from funnel_reminders.core.models import (
    BookingConfirmation,
    CalendarEvent,
    DispatchOutcome,
    ExtractedFields,
    PollReport,
    ReminderRecord,
    ReminderWindow,
)

__all__ = [
    "NotifierConfig",
    "ReminderKindConfig",
    "load_config",
    "CalendarFetchError",
    "ConfigError",
    "DeliveryUnconfirmed",
    "LedgerError",
    "MessagingError",
    "MessagingUnavailable",
    "BookingConfirmation",
    "CalendarEvent",
    "DispatchOutcome",
    "ExtractedFields",
    "PollReport",
    "ReminderRecord",
    "ReminderWindow",
]
