"""
Recipient and display-name extraction for calendar events.

Structured fields written by the booking step into the event's private
extended properties are authoritative. Free-text parsing of the summary and
description is a migration path for events booked before those fields existed;
every time it fires a warning names the event, so the remaining legacy events
can be found and fixed.
"""
import logging
import re
from typing import Optional

from funnel_reminders.core.models import CalendarEvent, ExtractedFields

logger = logging.getLogger(__name__)

CLIENT_NAME_KEYS = ("client_name", "clienteNome")
CLIENT_PHONE_KEYS = ("client_phone", "clienteNumero")
RESPONSIBLE_NAME_KEYS = ("responsible_name", "chefeNome")

SUMMARY_CLIENT_RE = re.compile(r"(?:Reuni[aã]o\s+com|Meeting\s+with)\s+(.+)", re.IGNORECASE)
RESPONSIBLE_RE = re.compile(
    r"(?:chefe|coordenador|consultor|responsible)\s*[:\-]\s*([^\n]+)", re.IGNORECASE
)
# exactly 12-13 digits: country code + area code + subscriber number
PHONE_RE = re.compile(r"(?<!\d)\d{12,13}(?!\d)")
NAME_SUFFIX_RE = re.compile(r"\s[-–—|]\s|[-–—|]")


def _first(metadata: dict[str, str], keys: tuple[str, ...]) -> Optional[str]:
    for key in keys:
        value = (metadata.get(key) or "").strip()
        if value:
            return value
    return None


def _cut_suffix(raw: str) -> str:
    raw = raw.strip()
    name = NAME_SUFFIX_RE.split(raw)[0].strip()
    return name or raw


def client_name_from_summary(summary: str) -> Optional[str]:
    """'Reunião com Ana - Loja X' -> 'Ana'. Unmatched summaries are used whole."""
    summary = (summary or "").strip()
    if not summary:
        return None
    match = SUMMARY_CLIENT_RE.search(summary)
    if not match:
        return summary
    return _cut_suffix(match.group(1))


def responsible_from_description(description: str) -> Optional[str]:
    match = RESPONSIBLE_RE.search(description or "")
    if not match:
        return None
    return _cut_suffix(match.group(1))


def phone_from_description(description: str) -> Optional[str]:
    match = PHONE_RE.search(description or "")
    return match.group(0) if match else None


def digits_only(value: str) -> str:
    return re.sub(r"\D", "", value or "")


def extract_fields(event: CalendarEvent) -> ExtractedFields:
    """
    Resolve client name, responsible name and phone for an event.

    Returns:
        ExtractedFields; any field may be None when neither source has it.
    """
    fields = ExtractedFields(
        client_name=_first(event.metadata, CLIENT_NAME_KEYS),
        responsible_name=_first(event.metadata, RESPONSIBLE_NAME_KEYS),
        phone=None,
    )
    structured_phone = _first(event.metadata, CLIENT_PHONE_KEYS)
    if structured_phone:
        fields.phone = digits_only(structured_phone) or None

    fallbacks = []
    if fields.client_name is None:
        fields.client_name = client_name_from_summary(event.summary)
        if fields.client_name:
            fallbacks.append("client_name")
    if fields.responsible_name is None:
        fields.responsible_name = responsible_from_description(event.description)
        if fields.responsible_name:
            fallbacks.append("responsible_name")
    if fields.phone is None:
        fields.phone = phone_from_description(event.description)
        if fields.phone:
            fallbacks.append("phone")

    if fallbacks:
        fields.used_fallback = True
        logger.warning(
            "Event %s has no structured %s; parsed from free text",
            event.id,
            ", ".join(fallbacks),
        )
    return fields
