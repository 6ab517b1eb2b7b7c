"""
Funnel Reminders - meeting reminders over WhatsApp for a sales funnel calendar.

Polls the shared Google Calendar on a per-kind cadence, picks the meetings whose
start falls inside each reminder window, and sends every reminder kind at most
once per meeting occurrence, tracked in a Postgres deduplication ledger.
"""

__version__ = "1.0.0"
