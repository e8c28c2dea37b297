"""Local CLI REPL connector for development and testing."""

from __future__ import annotations

import asyncio
import logging
import sys
import uuid
from typing import TYPE_CHECKING

from supportbot.connectors.base import IncomingMessage
from supportbot.core import error_response

if TYPE_CHECKING:
    from supportbot.connectors.base import MessageHandler
    from supportbot.core import ChatReply

logger = logging.getLogger(__name__)


class CLIConnector:
    """Interactive REPL connector — reads from stdin, writes to stdout."""

    def __init__(self) -> None:
        self._running = False
        self._chat_id = f"cli-{uuid.uuid4().hex[:8]}"

    @property
    def name(self) -> str:
        return "cli"

    async def start(self, handler: MessageHandler) -> None:
        self._running = True
        loop = asyncio.get_running_loop()

        print("Customer support assistant (type 'exit' or Ctrl+C to quit)")
        print("-" * 48)

        while self._running:
            try:
                line = await loop.run_in_executor(None, self._read_input)
            except (EOFError, KeyboardInterrupt):
                print("\nBye!")
                break

            if line is None or line.strip().lower() in ("exit", "quit"):
                print("Bye!")
                break

            text = line.strip()
            if not text:
                continue

            msg = IncomingMessage(
                text=text,
                chat_id=self._chat_id,
                connector_name=self.name,
            )

            try:
                reply = await handler(msg)
            except Exception as e:
                status, body = error_response(e)
                print(f"\n[{status}] {body['message']}", file=sys.stderr)
                continue
            await self.reply(self._chat_id, reply)

    def _read_input(self) -> str | None:
        try:
            sys.stdout.write("\nYou: ")
            sys.stdout.flush()
            raw = sys.stdin.buffer.readline()
            if not raw:
                return None
            return raw.decode("utf-8", errors="replace").rstrip("\n")
        except EOFError:
            return None

    async def stop(self) -> None:
        self._running = False

    async def reply(self, chat_id: str, reply: ChatReply) -> None:
        print(f"\nAssistant: {reply.text}")
        parts = [f"model: {reply.model_used}", f"tier: {reply.tier}"]
        if reply.knowledge_used:
            parts.append("knowledge base used")
        print(f"  [{' | '.join(parts)}]", file=sys.stderr)
