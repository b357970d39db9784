"""Shared pytest fixtures."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import (
    AppConfig,
    DefaultsConfig,
    InboxConfig,
    ModeConfig,
    PromptsConfig,
    ProviderConfig,
    StageModelConfig,
)
from consensus.events import CollectingSink, Emitter
from consensus.models import AgentDescriptor, AgentExecution, ChatCompletion, ChatRequest
from consensus.providers.base import ChatProvider

# Scripted reply that never returns; the caller's timeout has to fire.
HANG = object()

DEFAULT_REPLY = "Mock agent reply with enough characters to be usable."


class MockProvider(ChatProvider):
    """Test double ChatProvider scripted per model id.

    A script value may be a string (returned as content), an exception
    (raised), ``HANG`` (never returns) or a list of those consumed in order.
    """

    def __init__(
        self,
        provider_name: str = "mock",
        script: dict[str, object] | None = None,
        default: object = DEFAULT_REPLY,
    ) -> None:
        self._name = provider_name
        self._script = dict(script or {})
        self._default = default
        # Instance-level AsyncMock keeps call history; ABC check passes
        # because complete is defined in the class body below.
        self.complete = AsyncMock(side_effect=self._respond)  # type: ignore[method-assign]

    def name(self) -> str:
        return self._name

    @property
    def models_called(self) -> list[str]:
        return [call.args[0].model for call in self.complete.call_args_list]

    async def _respond(self, request: ChatRequest) -> ChatCompletion:
        value = self._script.get(request.model, self._default)
        if isinstance(value, list):
            value = value.pop(0) if len(value) > 1 else value[0]
        if value is HANG:
            await asyncio.sleep(3600)
        if isinstance(value, BaseException):
            raise value
        return ChatCompletion(
            content=str(value),
            model=request.model,
            completion_id=f"cmpl-{request.model}",
            latency_sec=0.01,
            token_count=10,
        )

    async def complete(self, request: ChatRequest) -> ChatCompletion:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return await self._respond(request)


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        swarm={
            "standard": "You are a specialist agent.",
            "deep": "You are a deep reasoning agent.",
            "coder": "You are a coding agent.",
        },
        critique='Critique these facts. Output JSON: {"attacks": []}',
        writer='Write the report. Output JSON: {"report": "..."}',
    )


@pytest.fixture
def fast_mode_config() -> ModeConfig:
    return ModeConfig(
        name="standard",
        timeout_sec=0.2,
        max_tokens=200,
        critique=StageModelConfig(provider="cerebras", model="critic-model", max_tokens=100),
        writer=StageModelConfig(provider="cerebras", model="writer-model", max_tokens=300),
    )


@pytest.fixture
def sample_app_config(tmp_path: Path, sample_prompts_config: PromptsConfig, fast_mode_config: ModeConfig) -> AppConfig:
    deep = ModeConfig(
        name="deep",
        timeout_sec=0.2,
        max_tokens=200,
        critique=StageModelConfig(provider="blackbox", model="deep-critic", max_tokens=100),
        writer=StageModelConfig(provider="blackbox", model="deep-writer", max_tokens=300),
    )
    coder = ModeConfig(
        name="coder",
        timeout_sec=0.2,
        max_tokens=200,
        critique=StageModelConfig(provider="cerebras", model="critic-model", max_tokens=100),
        writer=StageModelConfig(provider="cerebras", model="writer-model", max_tokens=300),
    )
    return AppConfig(
        defaults=DefaultsConfig(mode="standard", output_dir=tmp_path / "reports"),
        inbox=InboxConfig(dir=tmp_path / "inbox", archive_dir=tmp_path / "inbox" / "archive"),
        providers={
            "blackbox": ProviderConfig("blackbox", "https://blackbox.test", "BLACKBOX_API_KEY"),
            "cerebras": ProviderConfig("cerebras", "https://cerebras.test/v1", "CEREBRAS_API_KEY"),
        },
        modes={"standard": fast_mode_config, "deep": deep, "coder": coder},
        prompts=sample_prompts_config,
        available_providers={"blackbox", "cerebras"},
    )


@pytest.fixture
def three_agents() -> tuple[AgentDescriptor, ...]:
    return (
        AgentDescriptor("alpha", "Alpha", "model-a", ("model-a2",)),
        AgentDescriptor("beta", "Beta", "model-b"),
        AgentDescriptor("gamma", "Gamma", "model-c"),
    )


@pytest.fixture
def sink() -> CollectingSink:
    return CollectingSink()


@pytest.fixture
def emitter(sink: CollectingSink) -> Emitter:
    return Emitter(sink)


def make_execution(agent_id: str, content: str, *, ok: bool = True, model: str = "m") -> AgentExecution:
    return AgentExecution(
        agent_id=agent_id,
        agent_name=agent_id.title(),
        model_used=model,
        status="completed" if ok else "failed",
        content=content if ok else "",
        error=None if ok else "boom",
        duration_ms=10,
    )
