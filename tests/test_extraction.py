"""Structured metadata first, free-text fallback second."""

from __future__ import annotations

import logging

import pytest

from conftest import T0
from funnel_reminders.core.models import CalendarEvent
from funnel_reminders.reminders.extraction import (
    client_name_from_summary,
    extract_fields,
    phone_from_description,
    responsible_from_description,
)


def test_structured_metadata_wins(caplog):
    event = CalendarEvent(
        id="e1",
        start=T0,
        summary="Reunião com Outro Nome",
        description="Chefe: Outro\n553100000000",
        metadata={"clienteNome": "Ana", "clienteNumero": "+55 (31) 98888-7777", "chefeNome": "Carlos"},
    )

    with caplog.at_level(logging.WARNING):
        fields = extract_fields(event)

    assert fields.client_name == "Ana"
    assert fields.phone == "5531988887777"
    assert fields.responsible_name == "Carlos"
    assert not fields.used_fallback
    assert caplog.records == []


def test_free_text_fallback_is_logged(caplog):
    event = CalendarEvent(
        id="legacy-1",
        start=T0,
        summary="Reunião com Bruno Lima - Padaria Central",
        description="Cliente: Bruno\nTelefone: 5531977776666\nChefe: Marina Alves",
    )

    with caplog.at_level(logging.WARNING):
        fields = extract_fields(event)

    assert fields.client_name == "Bruno Lima"
    assert fields.phone == "5531977776666"
    assert fields.responsible_name == "Marina Alves"
    assert fields.used_fallback
    assert "legacy-1" in caplog.text


@pytest.mark.parametrize(
    "description, phone",
    [
        ("tel 553198888777", "553198888777"),  # 12 digits
        ("tel 5531988887777", "5531988887777"),  # 13 digits
        ("tel 31988887777", None),  # 11 digits
        ("tel 55319888877771", None),  # 14 digits
        ("tel +55 31 98888-7777", None),  # formatted, not one digit run
        ("", None),
    ],
)
def test_phone_needs_twelve_or_thirteen_digits(description, phone):
    assert phone_from_description(description) == phone


@pytest.mark.parametrize(
    "summary, name",
    [
        ("Reunião com Ana", "Ana"),
        ("Reuniao com Ana | Loja X", "Ana"),
        ("Meeting with John Smith - Acme", "John Smith"),
        ("Ana Souza", "Ana Souza"),
        ("", None),
    ],
)
def test_client_name_from_summary(summary, name):
    assert client_name_from_summary(summary) == name


def test_responsible_from_description():
    assert responsible_from_description("Consultor - Pedro Alves\nmais texto") == "Pedro Alves"
    assert responsible_from_description("sem responsável") is None


def test_missing_everything_leaves_fields_empty():
    fields = extract_fields(CalendarEvent(id="e2", start=T0))
    assert fields.client_name is None
    assert fields.phone is None
    assert fields.responsible_name is None
