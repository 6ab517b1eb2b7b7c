# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "httpx>=0.27.0",
# ]
# ///
"""
WhatsApp messaging over the Evolution API gateway.

Failures are split by whether the message could have been delivered:
MessagingUnavailable when it certainly was not (connection refused, error
status), DeliveryUnconfirmed when the request went out but the answer was lost.
The reminder dispatcher relies on that split to decide whether to mark the
ledger.

Example:
    >>> async with EvolutionWhatsAppClient(config.whatsapp) as client:
    ...     await client.send("testedesafio", normalize_recipient("55 31 98888-7777"), "Oi!")
"""

from __future__ import annotations

import logging
import re
from typing import Optional

import httpx

from funnel_reminders.core.config import WhatsAppSettings
from funnel_reminders.core.errors import DeliveryUnconfirmed, MessagingUnavailable

logger = logging.getLogger(__name__)


def normalize_recipient(raw: str, suffix: str = "@c.us") -> str:
    """
    Turn a phone-like string into a gateway recipient id.

    Examples:
        >>> normalize_recipient("+55 (31) 98888-7777")
        '5531988887777@c.us'
        >>> normalize_recipient("5531988887777@c.us")
        '5531988887777@c.us'
    """
    value = (raw or "").strip()
    if suffix and value.endswith(suffix):
        value = value[: -len(suffix)]
    digits = re.sub(r"\D", "", value)
    if not digits:
        raise ValueError(f"recipient has no digits: {raw!r}")
    return f"{digits}{suffix}"


class EvolutionWhatsAppClient:
    """
    Sends text messages through an Evolution API instance.

    Attributes:
        settings: Base URL, API key and timeouts.
        _client: httpx.AsyncClient, owned unless injected.
    """

    def __init__(self, settings: WhatsAppSettings, client: Optional[httpx.AsyncClient] = None):
        if not settings.base_url:
            raise ValueError("EVOLUTION_API_URL is not configured")
        self.settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.timeout_seconds)

    async def __aenter__(self) -> "EvolutionWhatsAppClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "apikey": self.settings.api_key or ""}

    async def send(self, instance: str, recipient_id: str, text: str) -> dict:
        """
        Send a text message without link previews.

        Args:
            instance: Evolution instance name.
            recipient_id: Normalized recipient (see normalize_recipient).
            text: Message body.

        Returns:
            Decoded JSON response from the gateway.

        Raises:
            MessagingUnavailable: Nothing was delivered; safe to retry.
            DeliveryUnconfirmed: The message may have been delivered.
        """
        url = f"{self.settings.base_url}/message/sendText/{instance}"
        body = {"number": recipient_id, "text": text, "linkPreview": False}
        logger.debug("[%s] Sending %d chars to %s", instance, len(text), recipient_id)

        try:
            response = await self._client.post(url, json=body, headers=self._headers)
        except (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout) as e:
            raise MessagingUnavailable(f"[{instance}] gateway unreachable: {e}") from e
        except (httpx.ReadTimeout, httpx.WriteTimeout, httpx.RemoteProtocolError, httpx.ReadError) as e:
            raise DeliveryUnconfirmed(f"[{instance}] no confirmation from gateway: {e}") from e

        if response.is_error:
            raise MessagingUnavailable(
                f"[{instance}] gateway answered {response.status_code}: {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError:
            data = {"raw": response.text}
        logger.info("[%s] Message sent to %s", instance, recipient_id)
        return data

    async def check_online(self) -> bool:
        """True if the gateway root answers without an error status."""
        try:
            response = await self._client.get(self.settings.base_url, headers=self._headers)
        except httpx.HTTPError as e:
            logger.warning("Evolution API unreachable: %s", e)
            return False
        return not response.is_error


class LoggingMessenger:
    """Messenger for dry runs: logs what would be sent and records it."""

    def __init__(self):
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, instance: str, recipient_id: str, text: str) -> dict:
        self.sent.append((instance, recipient_id, text))
        logger.info("[dry-run][%s] to %s:\n%s", instance, recipient_id, text)
        return {"dry_run": True}
