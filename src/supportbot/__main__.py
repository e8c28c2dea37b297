"""Entry point: python -m supportbot [chat|search|stats]

- No args / "chat":  Interactive CLI REPL against the configured engine
- "search <query>":  Rank knowledge entries for a query
- "stats":           Knowledge base statistics
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

from supportbot.config import load_config


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _run_cli() -> None:
    """Interactive CLI REPL mode."""
    config = load_config()
    _setup_logging(config.log_level)

    from supportbot.connectors.base import Connector
    from supportbot.connectors.cli import CLIConnector
    from supportbot.core import build_supportbot

    bot = build_supportbot(config)
    cli: Connector = CLIConnector()

    try:
        asyncio.run(cli.start(bot.handle_message))
    except KeyboardInterrupt:
        pass


def _run_search(query: str) -> None:
    config = load_config()
    _setup_logging(config.log_level)

    from supportbot.knowledge.store import KnowledgeStore

    store = KnowledgeStore(
        config.knowledge.path,
        config.knowledge.backup_dir,
        max_snapshots=config.knowledge.max_snapshots,
    )
    hits = store.search(query)
    if not hits:
        print(f"No entries match '{query}'")
        return
    for hit in hits:
        tags = f" [{', '.join(hit.entry.tags)}]" if hit.entry.tags else ""
        print(f"{hit.score:4d}  {hit.entry.key}{tags}  ({hit.entry.id})")


def _run_stats() -> None:
    config = load_config()
    _setup_logging(config.log_level)

    from supportbot.knowledge.store import KnowledgeStore

    store = KnowledgeStore(
        config.knowledge.path,
        config.knowledge.backup_dir,
        max_snapshots=config.knowledge.max_snapshots,
    )
    print(json.dumps(store.stats(), indent=2))


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else "chat"

    if cmd in ("chat", "repl"):
        _run_cli()
    elif cmd == "search" and len(sys.argv) > 2:
        _run_search(" ".join(sys.argv[2:]))
    elif cmd == "stats":
        _run_stats()
    else:
        print("Usage: python -m supportbot [chat|search <query>|stats]")
        print("  chat    — Interactive CLI REPL (default)")
        print("  search  — Rank knowledge entries for a query")
        print("  stats   — Knowledge base statistics")
        sys.exit(1)


if __name__ == "__main__":
    main()
