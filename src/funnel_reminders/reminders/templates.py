"""
Message bodies for every reminder kind.

Local dates and times are rendered here for display only. Eligibility is always
decided on absolute instants in the window evaluator.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

import pytz


@dataclass
class MessageContext:
    """Everything a template may reference."""
    start: datetime
    timezone: str
    program_name: str
    client_name: str = "Cliente"
    responsible_name: str = "Responsável"
    phone: Optional[str] = None
    minutes_until: Optional[int] = None
    city: Optional[str] = None
    details: dict[str, str] = field(default_factory=dict)  # event metadata

    @property
    def local_start(self) -> datetime:
        return self.start.astimezone(pytz.timezone(self.timezone))


def format_local_date(ctx: MessageContext) -> str:
    return ctx.local_start.strftime("%d/%m/%Y")


def format_local_time(ctx: MessageContext) -> str:
    return ctx.local_start.strftime("%H:%M")


def format_short_time(ctx: MessageContext) -> str:
    """14h for whole hours, 14h30 otherwise."""
    local = ctx.local_start
    if local.minute == 0:
        return f"{local.hour}h"
    return f"{local.hour}h{local.minute:02d}"


def _briefing(ctx: MessageContext) -> str:
    d = ctx.details
    company = d.get("empresaNome") or d.get("company")
    city = ctx.city or d.get("cidadeOpcional") or d.get("city")
    address = d.get("endereco") or d.get("address")
    referrer = d.get("referidoPor") or d.get("referred_by")
    employees = d.get("funcionarios") or d.get("employees")
    revenue = d.get("faturamento") or d.get("revenue")
    notes = d.get("observacoes") or d.get("notes")
    instagram = d.get("instagram")

    minutes = ctx.minutes_until if ctx.minutes_until is not None else 30
    top = f"Dentro de {minutes} minutos reuniao com {ctx.client_name}"
    if company:
        top += f" ({company} – {city})" if city else f" ({company})"

    lines = [
        top,
        f"⏰ {format_short_time(ctx)}",
        f"📞 {ctx.phone}" if ctx.phone else "",
        f"📍 {address}" if address else "",
        f"🔗 Referido por: {referrer}" if referrer else "",
        f"👥 {employees}" if employees else "",
        f"💰 Faturamento: {revenue}" if revenue else "",
        f"💬 {notes}" if notes else "",
        f"🔗 Instagram: {instagram}" if instagram else "",
    ]
    return "\n".join(line for line in lines if line)


def _client_1h(ctx: MessageContext) -> str:
    return (
        f"⏰ Oi, {ctx.client_name}! Sua reunião do *{ctx.program_name}* com o "
        f"*{ctx.responsible_name}* começa daqui a 1 hora.\n"
        f"📅 {format_local_date(ctx)} às {format_local_time(ctx)}"
    )


def _client_24h(ctx: MessageContext) -> str:
    return (
        f"👋 Oi, {ctx.client_name}! Passando só pra te lembrar que amanhã você tem "
        f"sua reunião do *{ctx.program_name}* com o *{ctx.responsible_name}*.\n"
        f"📅 {format_local_date(ctx)} às {format_local_time(ctx)}"
    )


def _client_daily(ctx: MessageContext) -> str:
    return (
        f"📌 Oi, {ctx.client_name}! Passando para lembrar que sua reunião sobre o "
        f"*{ctx.program_name}* com *{ctx.responsible_name}* está agendada para hoje "
        f"às {format_local_time(ctx)}."
    )


def _booking_confirmation(ctx: MessageContext) -> str:
    where = f" em {ctx.city}" if ctx.city else ""
    return (
        f"Oi, {ctx.client_name}! Tudo bem?\n\n"
        f"Sua reunião sobre o *{ctx.program_name}* com *{ctx.responsible_name}* foi "
        f"*confirmada* no dia {format_local_date(ctx)} às {format_local_time(ctx)}{where}."
    )


TEMPLATES: dict[str, Callable[[MessageContext], str]] = {
    "briefing": _briefing,
    "client_1h": _client_1h,
    "client_24h": _client_24h,
    "client_daily": _client_daily,
    "booking_confirmation": _booking_confirmation,
}


def render(template: str, ctx: MessageContext) -> str:
    """Render a named template. Raises KeyError for unknown names."""
    return TEMPLATES[template](ctx)
