"""Tests for the completion gateway and its tier fallback."""

from __future__ import annotations

import asyncio

import pytest

from supportbot.engines.base import EngineResponse
from supportbot.gateway import (
    CompletionGateway,
    ModelTier,
    ServiceExhaustedError,
    is_quota_error,
)

TIERS = [
    ModelTier("model-pro", "pro"),
    ModelTier("model-flash", "flash"),
    ModelTier("model-lite", "flash-lite"),
]


class QuotaError(Exception):
    """Shaped like google-genai's APIError for a 429."""

    def __init__(self, message: str = "429 RESOURCE_EXHAUSTED") -> None:
        super().__init__(message)
        self.code = 429
        self.status = "RESOURCE_EXHAUSTED"


class ScriptedEngine:
    """Engine that plays back a list of replies or exceptions."""

    def __init__(self, outcomes: list) -> None:
        self._outcomes = list(outcomes)
        self.calls: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return "scripted"

    async def generate(self, prompt: str, *, model: str) -> EngineResponse:
        self.calls.append((model, prompt))
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return EngineResponse(text=outcome, model=model)

    async def health_check(self) -> bool:
        return True

    @property
    def models(self) -> list[str]:
        return [model for model, _ in self.calls]


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def _gateway(engine: ScriptedEngine, clock: FakeClock) -> CompletionGateway:
    return CompletionGateway(engine, TIERS, cooldown=60, clock=clock)


class TestTransitions:
    def test_requires_tiers(self):
        with pytest.raises(ValueError):
            CompletionGateway(ScriptedEngine([]), [])

    def test_advance_until_last(self, clock: FakeClock):
        gateway = _gateway(ScriptedEngine([]), clock)
        assert gateway.advance() is True
        assert gateway.advance() is True
        assert gateway.advance() is False
        assert gateway.current_index == 2

    def test_reset_to_top(self, clock: FakeClock):
        gateway = _gateway(ScriptedEngine([]), clock)
        gateway.advance()
        gateway.reset_to_top()
        assert gateway.current_tier == TIERS[0]


class TestComplete:
    @pytest.mark.asyncio
    async def test_success_on_top_tier(self, clock: FakeClock):
        engine = ScriptedEngine(["Hello!"])
        result = await _gateway(engine, clock).complete("Hi")
        assert result.text == "Hello!"
        assert result.model_name == "model-pro"
        assert result.tier_label == "pro"

    @pytest.mark.asyncio
    async def test_falls_back_on_quota_errors(self, clock: FakeClock):
        engine = ScriptedEngine([QuotaError(), QuotaError(), "From lite"])
        gateway = _gateway(engine, clock)

        result = await gateway.complete("Hi")
        assert result.text == "From lite"
        assert result.tier_label == "flash-lite"
        assert engine.models == ["model-pro", "model-flash", "model-lite"]

    @pytest.mark.asyncio
    async def test_all_tiers_exhausted(self, clock: FakeClock):
        engine = ScriptedEngine([QuotaError(), QuotaError(), QuotaError()])
        gateway = _gateway(engine, clock)

        with pytest.raises(ServiceExhaustedError) as exc_info:
            await gateway.complete("Hi")
        assert isinstance(exc_info.value.__cause__, QuotaError)
        assert gateway.last_failure_time is not None
        assert len(engine.calls) == 3

    @pytest.mark.asyncio
    async def test_non_quota_error_passes_through(self, clock: FakeClock):
        engine = ScriptedEngine([ValueError("API key not valid")])
        gateway = _gateway(engine, clock)

        with pytest.raises(ValueError, match="API key not valid"):
            await gateway.complete("Hi")
        assert gateway.current_index == 0
        assert gateway.last_failure_time is None
        assert len(engine.calls) == 1

    @pytest.mark.asyncio
    async def test_degraded_tier_sticks_until_cooldown(self, clock: FakeClock):
        engine = ScriptedEngine([QuotaError(), "one", "two", "three"])
        gateway = _gateway(engine, clock)

        first = await gateway.complete("Hi")
        assert first.tier_label == "flash"

        clock.now += 30
        second = await gateway.complete("Hi")
        assert second.tier_label == "flash"

        # Deadline counts from the first degraded success, not the latest
        clock.now += 30
        third = await gateway.complete("Hi")
        assert third.tier_label == "pro"
        assert engine.models == ["model-pro", "model-flash", "model-flash", "model-pro"]

    @pytest.mark.asyncio
    async def test_top_tier_success_schedules_nothing(self, clock: FakeClock):
        engine = ScriptedEngine(["one"])
        gateway = _gateway(engine, clock)
        await gateway.complete("Hi")
        assert gateway._reset_due_at is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timeout", [0.01, 0])
    async def test_timeout_is_not_a_quota_error(self, clock: FakeClock, timeout):
        class SlowEngine(ScriptedEngine):
            async def generate(self, prompt: str, *, model: str) -> EngineResponse:
                self.calls.append((model, prompt))
                await asyncio.sleep(1)
                return EngineResponse(text="late")

        engine = SlowEngine([])
        gateway = _gateway(engine, clock)
        with pytest.raises(asyncio.TimeoutError):
            await gateway.complete("Hi", timeout=timeout)
        assert gateway.current_index == 0

    @pytest.mark.asyncio
    async def test_prompt_layout(self, clock: FakeClock):
        engine = ScriptedEngine(["ok"])
        gateway = _gateway(engine, clock)
        await gateway.complete("Do you ship?", "FAQ: We ship worldwide")

        prompt = engine.calls[0][1]
        assert prompt.startswith(gateway.system_prompt)
        assert "Relevant company information:\nFAQ: We ship worldwide" in prompt
        assert prompt.endswith("Customer question: Do you ship?\n\nResponse:")
        assert prompt.index("Relevant company information") < prompt.index("Customer question")

    def test_prompt_without_context(self, clock: FakeClock):
        gateway = _gateway(ScriptedEngine([]), clock)
        prompt = gateway.build_prompt("Hello")
        assert "Relevant company information" not in prompt

    @pytest.mark.asyncio
    async def test_status(self, clock: FakeClock):
        engine = ScriptedEngine([QuotaError(), "ok"])
        gateway = _gateway(engine, clock)
        await gateway.complete("Hi")
        status = gateway.status()
        assert status["current_model"] == "model-flash"
        assert status["current_tier"] == "flash"
        assert status["model_index"] == 1
        assert status["total_tiers"] == 3


class TestQuotaClassification:
    def test_status_code(self):
        err = Exception("boom")
        err.status_code = 429
        assert is_quota_error(err)

    def test_status_enum(self):
        err = Exception("boom")
        err.status = "RESOURCE_EXHAUSTED"
        assert is_quota_error(err)

    @pytest.mark.parametrize(
        "message",
        [
            "Quota exceeded for model",
            "Rate limit reached",
            "429 Too Many Requests",
            "Resource exhausted, try later",
            "RATE_LIMIT_EXCEEDED",
            "QUOTA_EXCEEDED",
        ],
    )
    def test_message_phrases(self, message: str):
        assert is_quota_error(RuntimeError(message))

    @pytest.mark.parametrize(
        "err",
        [ValueError("invalid argument"), PermissionError("API key not valid"), asyncio.TimeoutError()],
    )
    def test_other_errors(self, err: Exception):
        assert not is_quota_error(err)
