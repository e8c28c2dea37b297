"""Anthropic API engine — plain text completion via the `anthropic` SDK."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from supportbot.engines.base import EngineResponse

logger = logging.getLogger(__name__)

DEFAULT_TIERS = [
    ("claude-sonnet-4-5-20250929", "sonnet"),
    ("claude-3-5-haiku-latest", "haiku"),
]


@dataclass
class AnthropicAPIEngine:
    """Direct Anthropic API. The API key is read by the SDK from ANTHROPIC_API_KEY."""

    max_tokens: int = 1024
    timeout: int = 60

    def __post_init__(self) -> None:
        import anthropic

        self._client = anthropic.Anthropic(timeout=self.timeout)

    @property
    def name(self) -> str:
        return "anthropic_api"

    async def generate(self, prompt: str, *, model: str) -> EngineResponse:
        response = await asyncio.to_thread(
            self._client.messages.create,
            model=model,
            max_tokens=self.max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )

        text = response.content[0].text if response.content else ""
        usage = response.usage
        return EngineResponse(
            text=text,
            model=response.model,
            input_tokens=usage.input_tokens if usage else None,
            output_tokens=usage.output_tokens if usage else None,
        )

    async def health_check(self) -> bool:
        try:
            response = await self.generate("ping", model=DEFAULT_TIERS[-1][0])
            return bool(response.text)
        except Exception as e:
            logger.warning("Anthropic health check failed: %s", e)
            return False
