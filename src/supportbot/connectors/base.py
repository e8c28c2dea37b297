"""Connector protocol and shared types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Coroutine, Protocol, runtime_checkable

if TYPE_CHECKING:
    from supportbot.core import ChatReply


@dataclass
class IncomingMessage:
    """A customer message received from any connector."""

    text: str
    chat_id: str = ""
    connector_name: str = ""


# Callback type: core.SupportBot.handle_message
MessageHandler = Callable[[IncomingMessage], Coroutine[None, None, "ChatReply"]]


@runtime_checkable
class Connector(Protocol):
    """Protocol that all input connectors must implement."""

    @property
    def name(self) -> str: ...

    async def start(self, handler: MessageHandler) -> None:
        """Start listening for messages. Call handler for each incoming message."""
        ...

    async def stop(self) -> None:
        """Gracefully stop the connector."""
        ...

    async def reply(self, chat_id: str, reply: "ChatReply") -> None:
        """Send a reply back to the given chat."""
        ...
