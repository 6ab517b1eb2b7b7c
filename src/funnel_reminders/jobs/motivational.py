"""
Daily motivational message.

Asks the generative-text model for a short leadership message addressed to
the team lead and sends it over WhatsApp. Not tied to calendar events, so no
ledger: a failed generation simply sends nothing that day.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

from funnel_reminders.core.config import MotivationalSettings, WhatsAppSettings
from funnel_reminders.integrations.whatsapp import normalize_recipient
from funnel_reminders.reminders.dispatcher import Messenger

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2
BACKOFF_SECONDS = 0.5


class TextWriter(Protocol):
    async def write(self, prompt: str) -> str: ...


def capitalize_name(name: str) -> str:
    return " ".join(part[:1].upper() + part[1:].lower() for part in name.split())


def build_prompt(person_name: str) -> str:
    target = capitalize_name(person_name)
    return (
        "Escreva em português-BR uma mensagem curta (2 a 3 frases) de liderança e "
        f"encorajamento para iniciar o dia de {target}. Use referências sutis a John "
        "Maxwell, Winston Churchill e Salomão (Provérbios), sem citações literais longas. "
        "Conecte a mensagem a foco, coragem e sabedoria aplicadas ao trabalho. Seja humano "
        "e prático. Sem hashtags. No máximo 1 emoji. Responda APENAS com a mensagem final, "
        "sem títulos ou explicações."
    )


class MotivationalJob:
    """
    Generates and sends the daily message.

    Attributes:
        settings: Recipient, person name, instance and model.
        writer: Generative-text collaborator.
        messenger: Outbound messaging collaborator.
    """

    name = "motivational"

    def __init__(
        self,
        settings: MotivationalSettings,
        whatsapp: WhatsAppSettings,
        writer: TextWriter,
        messenger: Messenger,
        backoff_seconds: float = BACKOFF_SECONDS,
    ):
        self.settings = settings
        self.whatsapp = whatsapp
        self.writer = writer
        self.messenger = messenger
        self.backoff_seconds = backoff_seconds

    async def _generate(self) -> Optional[str]:
        prompt = build_prompt(self.settings.person_name)
        last_error: Optional[Exception] = None
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                text = (await self.writer.write(prompt)).strip()
                if text:
                    return text
                last_error = ValueError("empty response from model")
            except Exception as e:
                last_error = e
            if attempt < MAX_ATTEMPTS:
                await asyncio.sleep(self.backoff_seconds * attempt)
        logger.error("Could not generate motivational message: %s", last_error)
        return None

    async def run(self) -> bool:
        """Returns True when a message was handed to the gateway."""
        if not self.settings.recipient:
            logger.warning("Motivational message has no recipient configured, skipping")
            return False

        text = await self._generate()
        if text is None:
            return False

        recipient = normalize_recipient(self.settings.recipient, self.whatsapp.recipient_suffix)
        instance = self.settings.instance or self.whatsapp.default_instance
        await self.messenger.send(instance, recipient, text)
        logger.info("Motivational message sent to %s", recipient)
        return True
