"""
Generative text via Gemini.

Thin wrapper around google-genai's async client; returns the stripped text
of a single generation.
"""
from typing import Optional

from google import genai


class GeminiWriter:
    """Generates short texts with a Gemini model."""

    def __init__(self, api_key: str, model: str = "gemini-2.0-flash", client: Optional[genai.Client] = None):
        self.model = model
        self._client = client or genai.Client(api_key=api_key)

    async def write(self, prompt: str) -> str:
        response = await self._client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
        )
        return (response.text or "").strip()
