"""Static per-mode agent rosters."""

from consensus.errors import ConfigurationError
from consensus.models import AgentDescriptor

_BLACKBOX_FALLBACKS = (
    "blackboxai/openai/gpt-4o-mini",
    "blackboxai/meta-llama/llama-3.3-70b-instruct",
)

_CEREBRAS_FALLBACKS = ("llama-3.3-70b", "llama3.1-8b")

STANDARD_AGENTS: tuple[AgentDescriptor, ...] = (
    AgentDescriptor("efficient_backup", "GPT-4o Mini", "blackboxai/openai/gpt-4o-mini"),
    AgentDescriptor("generalist", "Llama 3.3", "blackboxai/meta-llama/llama-3.3-70b-instruct"),
    AgentDescriptor("context_king", "GPT-4o", "blackboxai/openai/gpt-4o", _BLACKBOX_FALLBACKS),
    AgentDescriptor("reasoner", "DeepSeek V3", "blackboxai/deepseek/deepseek-chat", _BLACKBOX_FALLBACKS),
    AgentDescriptor("math_code_wizard", "Claude 3 Haiku", "blackboxai/anthropic/claude-3-haiku", _BLACKBOX_FALLBACKS),
)

DEEP_AGENTS: tuple[AgentDescriptor, ...] = (
    AgentDescriptor("deep_hermes", "Hermes 3 405B", "blackboxai/nousresearch/hermes-3-llama-3.1-405b", _BLACKBOX_FALLBACKS),
    AgentDescriptor("deep_gpt4o", "GPT-4o", "blackboxai/openai/gpt-4o", _BLACKBOX_FALLBACKS),
    AgentDescriptor("deep_haiku", "Claude 3 Haiku", "blackboxai/anthropic/claude-3-haiku", _BLACKBOX_FALLBACKS),
    AgentDescriptor("deep_gpt4o_2", "GPT-4o (second opinion)", "blackboxai/openai/gpt-4o", _BLACKBOX_FALLBACKS),
    AgentDescriptor("deep_haiku_2", "Claude 3 Haiku (second opinion)", "blackboxai/anthropic/claude-3-haiku", _BLACKBOX_FALLBACKS),
)

CODER_AGENTS: tuple[AgentDescriptor, ...] = (
    AgentDescriptor("coder_llama_70b", "Llama 3.3 70B (Coder)", "llama-3.3-70b", _CEREBRAS_FALLBACKS, "cerebras"),
    AgentDescriptor("coder_llama_8b", "Llama 3.1 8B (Coder)", "llama3.1-8b", _CEREBRAS_FALLBACKS, "cerebras"),
    AgentDescriptor("coder_qwen_32b", "Qwen 3 32B (Coder)", "qwen-3-32b", _CEREBRAS_FALLBACKS, "cerebras"),
)

ROSTERS: dict[str, tuple[AgentDescriptor, ...]] = {
    "standard": STANDARD_AGENTS,
    "deep": DEEP_AGENTS,
    "coder": CODER_AGENTS,
}

MODE_ALIASES: dict[str, str] = {
    "": "standard",
    "thinking": "deep",
    "deep_thinking": "deep",
    "super_coder": "coder",
}


def resolve_mode(raw: str | None) -> str:
    """Map a user-supplied mode selector onto a roster key."""
    mode = str(raw or "").strip().lower().replace("-", "_")
    mode = MODE_ALIASES.get(mode, mode)
    if mode not in ROSTERS:
        raise ConfigurationError(
            f"Unknown mode {raw!r}. Expected one of: {', '.join(sorted(ROSTERS))}"
        )
    return mode


def get_roster(mode: str) -> tuple[AgentDescriptor, ...]:
    return ROSTERS[resolve_mode(mode)]


def attempt_chain(agent: AgentDescriptor) -> list[str]:
    """Primary model then fallbacks, duplicates removed, order kept."""
    chain: list[str] = []
    for model in (agent.primary_model, *agent.fallback_models):
        if model and model not in chain:
            chain.append(model)
    return chain
