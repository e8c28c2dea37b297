"""Completion gateway — model-tier fallback in front of a completion engine.

Tiers are ordered highest quality first. A quota or rate-limit error moves the
cursor one tier down and retries; running out of tiers fails the request with
ServiceExhaustedError. Any other error propagates unchanged without touching
the cursor. A success on a degraded tier arms a deadline `cooldown` seconds
out; the first call after the deadline starts again from the top tier.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from supportbot.engines.base import Engine

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTIONS = """\
You are a helpful AI assistant for an architectural company's customer support.
Your role is to provide accurate, professional, and friendly responses to customer inquiries.

Guidelines:
- Use the provided knowledge base information when relevant
- If you don't have specific information, politely suggest contacting human support
- Keep responses concise but informative
- Maintain a professional yet friendly tone
- Focus on architectural services, pricing, processes, and general company information"""

DEFAULT_COOLDOWN = 60.0

QUOTA_STATUS_CODES = frozenset({429})
QUOTA_STATUSES = frozenset({"RESOURCE_EXHAUSTED", "RATE_LIMIT_EXCEEDED", "QUOTA_EXCEEDED"})
QUOTA_PHRASES = (
    "quota exceeded",
    "rate limit",
    "too many requests",
    "resource exhausted",
    "resource_exhausted",
    "rate_limit_exceeded",
    "quota_exceeded",
)


class GatewayError(Exception):
    """Base class for completion gateway failures."""


class ServiceExhaustedError(GatewayError):
    """Every model tier reported quota exhaustion."""


@dataclass(frozen=True)
class ModelTier:
    """One step of the fallback list: a model id plus a quality/cost label."""

    name: str
    label: str


@dataclass
class CompletionResult:
    text: str
    model_name: str
    tier_label: str
    metadata: dict = field(default_factory=dict)


def is_quota_error(exc: BaseException) -> bool:
    """True when exc signals rate limiting or usage-limit exhaustion.

    Structured fields exposed by the SDKs are checked first: google-genai
    APIError carries `code`/`status`, anthropic APIStatusError carries
    `status_code`. The message is matched as a last resort.
    """
    for attr in ("code", "status_code"):
        if getattr(exc, attr, None) in QUOTA_STATUS_CODES:
            return True

    status = getattr(exc, "status", None)
    if isinstance(status, str) and status.upper() in QUOTA_STATUSES:
        return True

    message = str(exc).lower()
    return any(phrase in message for phrase in QUOTA_PHRASES)


class CompletionGateway:
    """Owns the tier cursor for one engine. Construct once per process."""

    def __init__(
        self,
        engine: Engine,
        tiers: Sequence[ModelTier],
        *,
        cooldown: float = DEFAULT_COOLDOWN,
        clock: Callable[[], float] = time.monotonic,
        system_prompt: str = SYSTEM_INSTRUCTIONS,
    ) -> None:
        if not tiers:
            raise ValueError("At least one model tier is required")
        self.engine = engine
        self.tiers: tuple[ModelTier, ...] = tuple(tiers)
        self.cooldown = cooldown
        self.system_prompt = system_prompt
        self._clock = clock
        self.current_index = 0
        self.last_failure_time: float | None = None
        self._reset_due_at: float | None = None

    @property
    def current_tier(self) -> ModelTier:
        return self.tiers[self.current_index]

    # ── Tier transitions ──────────────────────────────────────

    def advance(self) -> bool:
        """Switch to the next cheaper tier. False when already at the last one."""
        if self.current_index >= len(self.tiers) - 1:
            return False
        self.current_index += 1
        logger.info("Switched to model tier: %s (%s)", self.current_tier.name, self.current_tier.label)
        return True

    def reset_to_top(self) -> None:
        self._reset_due_at = None
        if self.current_index > 0:
            self.current_index = 0
            logger.info("Reset to highest tier model: %s", self.current_tier.name)

    def _apply_due_reset(self) -> None:
        if self._reset_due_at is not None and self._clock() >= self._reset_due_at:
            self.reset_to_top()

    def _schedule_reset(self) -> None:
        if self._reset_due_at is None:
            self._reset_due_at = self._clock() + self.cooldown

    # ── Completion ────────────────────────────────────────────

    def build_prompt(self, prompt: str, context_text: str = "") -> str:
        parts = [self.system_prompt, "\n\n"]
        if context_text:
            parts.append(f"Relevant company information:\n{context_text}\n\n")
        parts.append(f"Customer question: {prompt}\n\nResponse:")
        return "".join(parts)

    async def complete(
        self,
        prompt: str,
        context_text: str = "",
        *,
        timeout: float | None = None,
    ) -> CompletionResult:
        """Generate a reply, falling back through tiers on quota errors."""
        self._apply_due_reset()
        full_prompt = self.build_prompt(prompt, context_text)

        # Each iteration either returns, raises, or advances the cursor.
        for _ in range(len(self.tiers)):
            tier = self.current_tier
            try:
                call = self.engine.generate(full_prompt, model=tier.name)
                response = await (asyncio.wait_for(call, timeout) if timeout is not None else call)
            except Exception as e:
                if not is_quota_error(e):
                    logger.error("Error with model %s: %s", tier.name, e)
                    raise
                logger.warning("Quota error with model %s: %s", tier.name, e)
                if not self.advance():
                    self.last_failure_time = time.time()
                    raise ServiceExhaustedError(
                        "All model tiers have reached their limits. Please try again later."
                    ) from e
                continue

            if self.current_index > 0:
                self._schedule_reset()
            return CompletionResult(
                text=response.text,
                model_name=tier.name,
                tier_label=tier.label,
                metadata={
                    "input_tokens": response.input_tokens,
                    "output_tokens": response.output_tokens,
                },
            )

        # Concurrent callers can move the cursor between iterations.
        self.last_failure_time = time.time()
        raise ServiceExhaustedError("All model tiers have reached their limits. Please try again later.")

    def status(self) -> dict:
        return {
            "current_model": self.current_tier.name,
            "current_tier": self.current_tier.label,
            "model_index": self.current_index,
            "total_tiers": len(self.tiers),
            "last_failure_time": self.last_failure_time,
        }
