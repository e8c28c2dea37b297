"""SupportBot orchestrator — knowledge context + completion gateway.

Responsibilities:
1. Validate the incoming customer message
2. Look up relevant knowledge entries and build a context block
3. Ask the completion gateway for a reply (with tier fallback)
4. Map failures to transport-neutral status codes for whatever front end calls us
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from supportbot.gateway import CompletionGateway, ModelTier, ServiceExhaustedError
from supportbot.knowledge.errors import (
    FormatError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from supportbot.knowledge.models import utc_timestamp
from supportbot.knowledge.store import KnowledgeStore

if TYPE_CHECKING:
    from supportbot.config import EngineConfig, SupportbotConfig
    from supportbot.connectors.base import IncomingMessage
    from supportbot.engines.base import Engine

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 3600


@dataclass
class ChatReply:
    """Reply to one customer message."""

    text: str
    session_id: str
    model_used: str
    tier: str
    knowledge_used: bool
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "response": self.text,
            "timestamp": self.timestamp,
            "sessionId": self.session_id,
            "modelUsed": self.model_used,
            "tier": self.tier,
            "knowledgeUsed": self.knowledge_used,
        }


class SupportBot:
    """Answers customer messages using the knowledge base as prompt context."""

    def __init__(
        self,
        store: KnowledgeStore,
        gateway: CompletionGateway,
        *,
        context_entries: int = 3,
        timeout: float | None = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.context_entries = context_entries
        self.timeout = timeout

    async def handle_message(self, msg: IncomingMessage) -> ChatReply:
        text = msg.text.strip() if isinstance(msg.text, str) else ""
        if not text:
            raise ValueError("Message is required and must be a non-empty string")

        session_id = msg.chat_id or uuid.uuid4().hex
        context = self.store.relevant_context(text, self.context_entries)

        result = await self.gateway.complete(text, context, timeout=self.timeout)
        logger.info(
            "Replied to %s (%s) via %s (%s), knowledge=%s",
            session_id,
            msg.connector_name or "direct",
            result.model_name,
            result.tier_label,
            bool(context),
        )
        return ChatReply(
            text=result.text,
            session_id=session_id,
            model_used=result.model_name,
            tier=result.tier_label,
            knowledge_used=bool(context),
            timestamp=utc_timestamp(),
        )


def error_response(exc: BaseException) -> tuple[int, dict]:
    """Map a store or gateway failure to (status code, JSON-ready body)."""
    body: dict = {"error": True, "timestamp": utc_timestamp()}

    if isinstance(exc, NotFoundError):
        return 404, {**body, "message": str(exc), "code": "NOT_FOUND"}
    if isinstance(exc, (ValidationError, ValueError)):
        return 400, {**body, "message": str(exc), "code": "INVALID_REQUEST"}
    if isinstance(exc, ServiceExhaustedError):
        return 503, {
            **body,
            "message": "AI service is temporarily unavailable due to usage limits. "
            "Please try again later.",
            "code": "SERVICE_UNAVAILABLE",
            "retryAfter": RETRY_AFTER_SECONDS,
        }
    if isinstance(exc, (FormatError, PersistenceError)):
        logger.error("Knowledge base failure: %s", exc)
        return 500, {**body, "message": "Knowledge base operation failed", "code": "STORAGE_ERROR"}

    logger.error("Unexpected error: %s", exc)
    return 500, {
        **body,
        "message": "An unexpected error occurred. Please try again.",
        "code": "INTERNAL_ERROR",
    }


# ── Wiring ────────────────────────────────────────────────────


def build_engine(config: EngineConfig) -> Engine:
    """Instantiate the engine named in config."""
    if config.name == "gemini_api":
        from supportbot.engines.gemini_api import GeminiAPIEngine

        return GeminiAPIEngine(timeout=config.timeout)
    if config.name == "anthropic_api":
        from supportbot.engines.anthropic_api import AnthropicAPIEngine

        return AnthropicAPIEngine(timeout=config.timeout)
    raise ValueError(f"Unknown engine '{config.name}'. Available: gemini_api, anthropic_api")


def build_supportbot(config: SupportbotConfig, engine: Engine | None = None) -> SupportBot:
    """Wire store, engine and gateway from configuration."""
    store = KnowledgeStore(
        config.knowledge.path,
        config.knowledge.backup_dir,
        max_snapshots=config.knowledge.max_snapshots,
    )
    gateway = CompletionGateway(
        engine or build_engine(config.engine),
        [ModelTier(name, label) for name, label in config.engine.tiers],
        cooldown=config.engine.cooldown,
    )
    return SupportBot(
        store,
        gateway,
        context_entries=config.knowledge.context_entries,
        timeout=config.engine.timeout,
    )
