"""Gemini API engine — text generation via the `google-genai` SDK."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass

from supportbot.engines.base import EngineResponse

logger = logging.getLogger(__name__)

# Highest quality first; later tiers are cheaper and have larger quotas.
DEFAULT_TIERS = [
    ("gemini-2.0-flash-exp", "pro"),
    ("gemini-1.5-flash", "flash"),
    ("gemini-1.5-flash-8b", "flash-lite"),
]


@dataclass
class GeminiAPIEngine:
    """Gemini Developer API. Reads GEMINI_API_KEY when no key is given."""

    api_key: str | None = None
    timeout: int = 60

    def __post_init__(self) -> None:
        from google import genai
        from google.genai import types

        self.api_key = self.api_key or os.environ.get("GEMINI_API_KEY")
        if not self.api_key:
            raise ValueError("GEMINI_API_KEY environment variable is required")

        self._client = genai.Client(
            api_key=self.api_key,
            http_options=types.HttpOptions(timeout=self.timeout * 1000),
        )

    @property
    def name(self) -> str:
        return "gemini_api"

    async def generate(self, prompt: str, *, model: str) -> EngineResponse:
        response = await asyncio.to_thread(
            self._client.models.generate_content,
            model=model,
            contents=prompt,
        )

        usage = getattr(response, "usage_metadata", None)
        return EngineResponse(
            text=response.text or "",
            model=model,
            input_tokens=getattr(usage, "prompt_token_count", None),
            output_tokens=getattr(usage, "candidates_token_count", None),
        )

    async def health_check(self) -> bool:
        try:
            response = await self.generate("ping", model=DEFAULT_TIERS[-1][0])
            return bool(response.text)
        except Exception as e:
            logger.warning("Gemini health check failed: %s", e)
            return False
