"""Configuration loading from environment variables and supportbot.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

from supportbot.engines import anthropic_api, gemini_api

_DEFAULT_KNOWLEDGE_FILE = Path("data") / "knowledge-base.json"
_CONFIG_FILENAME = "supportbot.toml"

_ENGINE_DEFAULT_TIERS = {
    "gemini_api": gemini_api.DEFAULT_TIERS,
    "anthropic_api": anthropic_api.DEFAULT_TIERS,
}


@dataclass
class EngineConfig:
    """Completion engine and its model-tier fallback list."""

    name: str = "gemini_api"
    tiers: list[tuple[str, str]] = field(default_factory=lambda: list(gemini_api.DEFAULT_TIERS))
    timeout: int = 60
    cooldown: float = 60.0


@dataclass
class KnowledgeConfig:
    """Knowledge base file locations and context size."""

    path: Path = _DEFAULT_KNOWLEDGE_FILE
    backup_dir: Path | None = None
    max_snapshots: int = 5
    context_entries: int = 3


@dataclass
class SupportbotConfig:
    """Top-level configuration."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    knowledge: KnowledgeConfig = field(default_factory=KnowledgeConfig)
    log_level: str = "INFO"


def parse_tiers(text: str) -> list[tuple[str, str]]:
    """Parse 'model:label,model:label'. A missing label defaults to the model name."""
    tiers = []
    for item in text.split(","):
        item = item.strip()
        if not item:
            continue
        name, _, label = item.partition(":")
        tiers.append((name.strip(), label.strip() or name.strip()))
    return tiers


def _tiers_from_file(items: list) -> list[tuple[str, str]]:
    tiers = []
    for item in items:
        if isinstance(item, dict):
            tiers.append((item["name"], item.get("label", item["name"])))
        else:
            tiers.append((str(item), str(item)))
    return tiers


def load_config(config_path: Path | None = None) -> SupportbotConfig:
    """Load configuration from environment variables and optional supportbot.toml.

    Priority: environment variables > supportbot.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.supportbot/
        for candidate in [
            Path.cwd() / _CONFIG_FILENAME,
            Path.home() / ".supportbot" / _CONFIG_FILENAME,
        ]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    engine_data = file_data.get("engine", {})
    knowledge_data = file_data.get("knowledge", {})

    engine_name = os.getenv("SUPPORTBOT_ENGINE", engine_data.get("name", "gemini_api"))
    if os.getenv("SUPPORTBOT_MODELS"):
        tiers = parse_tiers(os.environ["SUPPORTBOT_MODELS"])
    elif engine_data.get("tiers"):
        tiers = _tiers_from_file(engine_data["tiers"])
    else:
        tiers = list(_ENGINE_DEFAULT_TIERS.get(engine_name, gemini_api.DEFAULT_TIERS))

    backup_dir = os.getenv("SUPPORTBOT_BACKUP_DIR", knowledge_data.get("backup_dir"))

    config = SupportbotConfig(
        engine=EngineConfig(
            name=engine_name,
            tiers=tiers,
            timeout=int(os.getenv("SUPPORTBOT_TIMEOUT", engine_data.get("timeout", 60))),
            cooldown=float(os.getenv("SUPPORTBOT_COOLDOWN", engine_data.get("cooldown", 60.0))),
        ),
        knowledge=KnowledgeConfig(
            path=Path(
                os.getenv(
                    "SUPPORTBOT_KNOWLEDGE_FILE",
                    knowledge_data.get("path", str(_DEFAULT_KNOWLEDGE_FILE)),
                )
            ),
            backup_dir=Path(backup_dir) if backup_dir else None,
            max_snapshots=int(knowledge_data.get("max_snapshots", 5)),
            context_entries=int(
                os.getenv("SUPPORTBOT_CONTEXT_ENTRIES", knowledge_data.get("context_entries", 3))
            ),
        ),
        log_level=os.getenv("SUPPORTBOT_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config
