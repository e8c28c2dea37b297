"""Engine protocol and shared types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@dataclass
class EngineResponse:
    """Text generated by an engine for one prompt."""

    text: str
    model: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    metadata: dict = field(default_factory=dict)


@runtime_checkable
class Engine(Protocol):
    """Protocol that all completion backends must implement.

    SDK errors are raised unchanged so callers can tell quota exhaustion
    apart from request or configuration faults.
    """

    @property
    def name(self) -> str: ...

    async def generate(self, prompt: str, *, model: str) -> EngineResponse:
        """Generate a completion for prompt on the given model."""
        ...

    async def health_check(self) -> bool:
        """Check if the engine is available. Returns True if healthy."""
        ...
