"""Swarm fan-out: one concurrent chat call per roster agent, with fallback chains."""

import asyncio
import logging
import re
import time
from collections import Counter
from collections.abc import Mapping, Sequence

from config.config_loader import ModeConfig
from consensus.errors import ConfigurationError, SwarmFailureError
from consensus.events import Emitter
from consensus.models import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    AgentDescriptor,
    AgentExecution,
    ChatRequest,
    SwarmResult,
)
from consensus.providers.base import ChatProvider, ProviderError
from consensus.redact import redact_secrets
from consensus.roster import attempt_chain
from consensus.text import normalize_snippet

logger = logging.getLogger(__name__)

STEP = 1

TRANSIENT_STATUSES = frozenset({404, 408, 409, 425, 429, 500, 502, 503, 504})

# Output shorter than this is treated as a degraded reply
MIN_USABLE_CHARS = 24
SIMULATION_SENTINEL = "simulation mode:"

_RATE_LIMIT_PHRASES = ("rate limit", "too many requests", "overloaded", "busy", "temporarily", "try again")
_TIMEOUT_PHRASES = ("timeout", "timed out", "aborted", "abort")
_UNUSABLE_PHRASES = ("malformed", "empty model output", "empty response")
_NETWORK_PHRASES = ("connection", "econnrefused", "enotfound", "network", "fetch failed")

NETWORK_ERROR = "NETWORK_ERROR"
MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
RATE_LIMITED = "RATE_LIMITED"
UNAUTHORIZED = "UNAUTHORIZED"
BAD_REQUEST = "BAD_REQUEST"
SERVER_ERROR = "SERVER_ERROR"
TIMEOUT = "TIMEOUT"
UNUSABLE_OUTPUT = "UNUSABLE_OUTPUT"
UNKNOWN = "UNKNOWN"

_FATAL_TYPES = frozenset({UNAUTHORIZED, BAD_REQUEST})

_REASONING_PREFIX = re.compile(r"^\s*(chain[- ]of[- ]thought|step[- ]by[- ]step|reasoning)\s*:\s*", re.IGNORECASE | re.MULTILINE)
_THINK_ALOUD = re.compile(r"^\s*let'?s\s+think\s+step\s+by\s+step\s*[:.-]?\s*$", re.IGNORECASE | re.MULTILINE)


def validate_query(query: str | None) -> str:
    """Return the stripped query or raise ConfigurationError."""
    text = str(query or "").strip()
    if not text:
        raise ConfigurationError("Missing user query")
    return text


def require_providers(
    agents: Sequence[AgentDescriptor],
    providers: Mapping[str, ChatProvider],
) -> None:
    """Fail fast when an agent's provider has no configured client."""
    missing = sorted({a.provider for a in agents if a.provider not in providers})
    if missing:
        raise ConfigurationError(f"No credentials configured for provider(s): {', '.join(missing)}")


def clean_agent_text(text: str) -> str:
    """Strip leaked reasoning preambles from an agent reply."""
    out = _REASONING_PREFIX.sub("", str(text or ""))
    out = _THINK_ALOUD.sub("", out)
    return out.strip()


def is_usable_content(text: str) -> bool:
    stripped = str(text or "").strip()
    if len(stripped) < MIN_USABLE_CHARS:
        return False
    return SIMULATION_SENTINEL not in stripped.lower()


def _status_of(exc: Exception) -> int | None:
    status = getattr(exc, "status", None)
    return status if isinstance(status, int) else None


def classify_error(exc: Exception) -> str:
    """Bucket a failed call into one of the error type names above."""
    status = _status_of(exc)
    msg = str(exc).lower()

    if any(p in msg for p in _NETWORK_PHRASES):
        return NETWORK_ERROR
    if status == 404:
        return MODEL_NOT_FOUND
    if status == 429:
        return RATE_LIMITED
    if status in (401, 403):
        return UNAUTHORIZED
    if status == 400:
        return BAD_REQUEST
    if status is not None and status >= 500:
        return SERVER_ERROR
    if any(p in msg for p in _TIMEOUT_PHRASES):
        return TIMEOUT
    if any(p in msg for p in _RATE_LIMIT_PHRASES):
        return RATE_LIMITED
    if any(p in msg for p in _UNUSABLE_PHRASES):
        return UNUSABLE_OUTPUT
    return UNKNOWN


def is_transient(exc: Exception) -> bool:
    """True when advancing to the next model could help.

    Errors without an HTTP status (dropped connections, SDK failures) count
    as transient; auth and bad-request errors never do.
    """
    error_type = classify_error(exc)
    if error_type in _FATAL_TYPES:
        return False
    if error_type != UNKNOWN:
        return True
    status = _status_of(exc)
    return status is None or status in TRANSIENT_STATUSES


def summarize_failures(executions: Sequence[AgentExecution]) -> str:
    """Per-type failure counts, e.g. ``MODEL_NOT_FOUND(2), TIMEOUT(1)``."""
    counts = Counter(e.error_type or UNKNOWN for e in executions if not e.ok)
    return ", ".join(f"{error_type}({count})" for error_type, count in counts.items())


async def call_agent(provider: ChatProvider, request: ChatRequest) -> tuple[str, str | None]:
    """Issue one bounded chat call and return (cleaned content, completion id).

    Raises:
        ProviderError: On timeout, API failure, or unusable content.
    """
    try:
        completion = await asyncio.wait_for(provider.complete(request), timeout=request.timeout_sec)
    except TimeoutError as exc:
        raise ProviderError(provider.name(), f"Request timed out after {request.timeout_sec:g}s") from exc
    except ProviderError:
        raise
    except Exception as exc:
        raise ProviderError(provider.name(), f"Unexpected error: {exc}") from exc

    content = clean_agent_text(completion.content)
    if not is_usable_content(content):
        raise ProviderError(provider.name(), "Malformed or empty model output")
    return content, completion.completion_id


async def _run_agent(
    index: int,
    agent: AgentDescriptor,
    provider: ChatProvider,
    messages: list[dict[str, str]],
    mode_config: ModeConfig,
    slots: list[AgentExecution | None],
    emitter: Emitter,
    unavailable: set[str],
) -> None:
    """Walk one agent's attempt chain and write the outcome into its slot.

    Models in ``unavailable`` returned 404 earlier in this run and are
    skipped without a call; new 404s are added to it.
    """
    started = time.monotonic()
    chain = attempt_chain(agent)
    emitter.agent_start(STEP, agent.id, agent.display_name, chain[0])

    used_model = chain[0]
    content = ""
    completion_id: str | None = None
    error: str | None = None
    error_type: str | None = None

    for attempt, model in enumerate(chain):
        used_model = model
        if model in unavailable:
            logger.debug("Agent %s: skipping %s, cached as unavailable (404)", agent.id, model)
            error = f"Model {model} cached as unavailable (404)"
            error_type = MODEL_NOT_FOUND
            continue
        request = ChatRequest(
            model=model,
            messages=messages,
            max_tokens=mode_config.max_tokens,
            timeout_sec=mode_config.timeout_sec,
        )
        try:
            content, completion_id = await call_agent(provider, request)
            error = None
            error_type = None
            break
        except ProviderError as exc:
            message = redact_secrets(str(exc))
            error_type = classify_error(exc)
            if error_type == MODEL_NOT_FOUND:
                unavailable.add(model)
            if attempt < len(chain) - 1 and is_transient(exc):
                next_model = chain[attempt + 1]
                logger.warning("Agent %s: %s failed (%s), trying %s", agent.id, model, message, next_model)
                emitter.log(STEP, f"{agent.display_name} replaced ({model} -> {next_model}).")
                error = message
                continue
            content = ""
            error = message
            break

    duration_ms = int((time.monotonic() - started) * 1000)
    status = STATUS_FAILED if error else STATUS_COMPLETED
    slots[index] = AgentExecution(
        agent_id=agent.id,
        agent_name=agent.display_name,
        model_used=used_model,
        status=status,
        content=content,
        error=error,
        duration_ms=duration_ms,
        completion_id=completion_id,
        error_type=error_type if error else None,
    )

    emitter.agent_finish(
        STEP,
        agent.id,
        agent.display_name,
        used_model,
        status,
        duration_ms,
        output_snippet="" if error else normalize_snippet(content),
        error=error,
    )

    finished = sum(1 for s in slots if s is not None)
    emitter.progress(STEP, round(finished / len(slots) * 100))

    if error:
        logger.warning("Agent %s failed after %d ms: %s", agent.id, duration_ms, error)
        emitter.log(STEP, f"{agent.display_name} failed: {error}")
    else:
        logger.info("Agent %s finished with %s in %d ms", agent.id, used_model, duration_ms)
        emitter.log(STEP, f"{agent.display_name} finished in {duration_ms / 1000:.1f}s")


async def run_swarm(
    query: str,
    mode: str,
    agents: Sequence[AgentDescriptor],
    providers: Mapping[str, ChatProvider],
    mode_config: ModeConfig,
    system_prompt: str,
    emitter: Emitter | None = None,
) -> SwarmResult:
    """Fan the query out to every agent and join all of them.

    Args:
        query: The user query (must be non-blank).
        mode: Resolved mode name, recorded on the result.
        agents: The active roster. Agent ids must be unique.
        providers: Chat providers keyed by provider name.
        mode_config: Per-mode timeout and token budget.
        system_prompt: System message sent to every agent.
        emitter: Progress emitter; events are dropped when omitted.

    Returns:
        SwarmResult with one execution per agent, in roster order.

    Raises:
        ConfigurationError: Blank query, empty roster or missing credentials.
        SwarmFailureError: If no agent produced usable content.
    """
    query = validate_query(query)
    if not agents:
        raise ConfigurationError(f"No agents configured for mode '{mode}'")
    ids = [a.id for a in agents]
    if len(set(ids)) != len(ids):
        raise ConfigurationError(f"Duplicate agent ids in roster for mode '{mode}'")
    require_providers(agents, providers)

    emitter = emitter or Emitter()
    emitter.log(STEP, f"Mode '{mode}' engaged. Spawning {len(agents)} agents.")
    logger.info("Dispatching %d agents for mode %s", len(agents), mode)

    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": query},
    ]
    slots: list[AgentExecution | None] = [None] * len(agents)
    unavailable: set[str] = set()

    await asyncio.gather(
        *(
            _run_agent(i, agent, providers[agent.provider], messages, mode_config, slots, emitter, unavailable)
            for i, agent in enumerate(agents)
        )
    )

    executions = tuple(s for s in slots if s is not None)
    successful = [e for e in executions if e.ok]

    if not successful:
        summary = summarize_failures(executions)
        logger.error("All %d agents failed for mode %s. Errors: %s", len(agents), mode, summary)
        emitter.log(STEP, f"All {len(agents)} agents failed. Errors: {summary}")
        raise SwarmFailureError(f"Swarm failed for all {len(agents)} agents. Errors: {summary}")

    # Quality gate: warn when fewer than 2 agents answer on a 3+ roster
    if len(agents) >= 3 and len(successful) < 2:
        logger.warning(
            "Only %d/%d agents produced usable output. Agreement scoring is degraded.",
            len(successful),
            len(agents),
        )

    emitter.log(STEP, f"Swarm completed with {len(successful)}/{len(agents)} usable outputs.")
    return SwarmResult(mode=mode, executions=executions)
