"""Provider health checks: ping each roster agent's primary model before a run."""

import asyncio
import logging
from collections.abc import Mapping, Sequence

from consensus.models import AgentDescriptor, ChatRequest
from consensus.providers.base import ChatProvider
from consensus.redact import redact_secrets

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_TIMEOUT_SEC = 15.0
_PING_MAX_TOKENS = 8


async def _check_one(agent: AgentDescriptor, provider: ChatProvider) -> tuple[str, bool, str]:
    """Ping a single agent's primary model. Returns (agent_id, ok, error_message)."""
    request = ChatRequest(
        model=agent.primary_model,
        messages=[{"role": "user", "content": _PING_PROMPT}],
        max_tokens=_PING_MAX_TOKENS,
        timeout_sec=_TIMEOUT_SEC,
    )
    try:
        await asyncio.wait_for(provider.complete(request), timeout=_TIMEOUT_SEC)
        return agent.id, True, ""
    except TimeoutError:
        return agent.id, False, f"Timed out after {_TIMEOUT_SEC:g}s"
    except Exception as exc:
        return agent.id, False, redact_secrets(str(exc))


async def run_health_checks(
    agents: Sequence[AgentDescriptor],
    providers: Mapping[str, ChatProvider],
) -> dict[str, tuple[bool, str]]:
    """Ping all agents in parallel.

    Agents whose provider has no client are reported as failed without a call.

    Returns:
        Dict mapping agent id -> (ok, error_message).
        error_message is "" when ok is True.
    """
    results: dict[str, tuple[bool, str]] = {}
    pending = []
    for agent in agents:
        provider = providers.get(agent.provider)
        if provider is None:
            results[agent.id] = (False, f"No client for provider '{agent.provider}'")
        else:
            pending.append(_check_one(agent, provider))

    for agent_id, ok, err in await asyncio.gather(*pending):
        if not ok:
            logger.warning("Health check failed for %s: %s", agent_id, err)
        results[agent_id] = (ok, err)
    return results
