"""Message bodies render local time for display only."""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import T0
from funnel_reminders.reminders.templates import MessageContext, format_short_time, render


def _ctx(**kwargs) -> MessageContext:
    defaults = dict(
        start=T0,
        timezone="America/Sao_Paulo",
        program_name="Desafio Empreendedor",
        client_name="Ana",
        responsible_name="Carlos",
    )
    defaults.update(kwargs)
    return MessageContext(**defaults)


def test_client_24h_uses_local_date_and_time():
    text = render("client_24h", _ctx())

    assert "Oi, Ana!" in text
    assert "*Carlos*" in text
    assert "10/03/2026 às 14:00" in text


def test_client_1h():
    assert "começa daqui a 1 hora" in render("client_1h", _ctx())


def test_client_daily():
    assert "agendada para hoje às 14:00" in render("client_daily", _ctx())


@pytest.mark.parametrize("minutes, expected", [(0, "14h"), (30, "14h30"), (5, "14h05")])
def test_short_time(minutes, expected):
    assert format_short_time(_ctx(start=T0 + timedelta(minutes=minutes))) == expected


def test_briefing_includes_only_known_details():
    ctx = _ctx(
        phone="5531988887777",
        minutes_until=29,
        details={"empresaNome": "Padaria Central", "cidadeOpcional": "BH", "faturamento": "50k"},
    )

    lines = render("briefing", ctx).splitlines()

    assert lines[0] == "Dentro de 29 minutos reuniao com Ana (Padaria Central – BH)"
    assert "⏰ 14h" in lines
    assert "📞 5531988887777" in lines
    assert "💰 Faturamento: 50k" in lines
    assert not any(line.startswith("📍") for line in lines)


def test_booking_confirmation_mentions_city():
    text = render("booking_confirmation", _ctx(city="Belo Horizonte"))
    assert "*confirmada* no dia 10/03/2026 às 14:00 em Belo Horizonte." in text


def test_unknown_template():
    with pytest.raises(KeyError):
        render("weekly", _ctx())
