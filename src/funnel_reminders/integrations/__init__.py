"""External service integrations (Google Calendar, Evolution WhatsApp, Gemini)."""

from funnel_reminders.integrations.gemini import GeminiWriter
from funnel_reminders.integrations.google_calendar import GoogleCalendarReader
from funnel_reminders.integrations.whatsapp import (
    EvolutionWhatsAppClient,
    LoggingMessenger,
    normalize_recipient,
)

__all__ = [
    "GeminiWriter",
    "GoogleCalendarReader",
    "EvolutionWhatsAppClient",
    "LoggingMessenger",
    "normalize_recipient",
]
