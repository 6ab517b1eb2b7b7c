"""Daily motivational message: generation retries and delivery."""

from __future__ import annotations

from conftest import RecordingMessenger
from funnel_reminders.core.config import MotivationalSettings, WhatsAppSettings
from funnel_reminders.jobs.motivational import MotivationalJob, build_prompt


class ScriptedWriter:
    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts: list[str] = []

    async def write(self, prompt: str) -> str:
        self.prompts.append(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def _job(writer, messenger, recipient="55 31 97777-6666") -> MotivationalJob:
    settings = MotivationalSettings(enabled=True, recipient=recipient, person_name="gustavo", instance="lider")
    return MotivationalJob(settings, WhatsAppSettings(), writer, messenger, backoff_seconds=0)


def test_prompt_names_the_person():
    assert "iniciar o dia de Gustavo Henrique" in build_prompt("GUSTAVO henrique")


async def test_sends_generated_text():
    messenger = RecordingMessenger()
    writer = ScriptedWriter("  Bom dia! Coragem e foco.  ")

    assert await _job(writer, messenger).run() is True
    assert messenger.sent == [("lider", "5531977776666@c.us", "Bom dia! Coragem e foco.")]


async def test_retries_once_then_sends():
    messenger = RecordingMessenger()
    writer = ScriptedWriter(RuntimeError("quota"), "Bom dia!")

    assert await _job(writer, messenger).run() is True
    assert len(writer.prompts) == 2


async def test_sends_nothing_when_generation_keeps_failing():
    messenger = RecordingMessenger()
    writer = ScriptedWriter(RuntimeError("quota"), "   ")

    assert await _job(writer, messenger).run() is False
    assert messenger.attempts == 0


async def test_no_recipient_skips():
    messenger = RecordingMessenger()
    writer = ScriptedWriter("Bom dia!")

    assert await _job(writer, messenger, recipient=None).run() is False
    assert writer.prompts == []
