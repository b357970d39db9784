"""Tests for consensus/dispatcher.py."""

import logging

import pytest

from consensus.dispatcher import (
    MODEL_NOT_FOUND,
    NETWORK_ERROR,
    SERVER_ERROR,
    TIMEOUT,
    UNAUTHORIZED,
    call_agent,
    classify_error,
    clean_agent_text,
    is_transient,
    is_usable_content,
    require_providers,
    run_swarm,
    validate_query,
)
from consensus.errors import ConfigurationError, SwarmFailureError
from consensus.events import AgentFinish, AgentStart, LogEvent, StepProgress
from consensus.models import AgentDescriptor, ChatRequest
from consensus.providers.base import ProviderError
from tests.conftest import HANG, MockProvider

GOOD_A = "Alpha says the cache should be warmed before traffic shifts."
GOOD_B = "Beta says the cache must be warmed before any traffic shift."
GOOD_C = "Gamma recommends warming the cache ahead of the traffic shift."


def test_validate_query_strips():
    assert validate_query("  hello  ") == "hello"


@pytest.mark.parametrize("query", ["", "   ", None])
def test_validate_query_rejects_blank(query):
    with pytest.raises(ConfigurationError, match="Missing user query"):
        validate_query(query)


def test_require_providers_missing(three_agents):
    with pytest.raises(ConfigurationError, match="blackbox"):
        require_providers(three_agents, {})


def test_clean_agent_text_strips_reasoning_preamble():
    text = "Let's think step by step:\nReasoning: the answer is forty-two and nothing else."
    assert clean_agent_text(text) == "the answer is forty-two and nothing else."


def test_is_usable_content():
    assert is_usable_content("x" * 24)
    assert not is_usable_content("too short")
    assert not is_usable_content("Simulation mode: no real model answered this request.")


def test_is_transient_by_status_and_phrase():
    assert is_transient(ProviderError("p", "boom", status=429))
    assert is_transient(ProviderError("p", "model not found", status=404))
    assert is_transient(ProviderError("p", "Request timed out after 45s"))
    assert is_transient(ProviderError("p", "Server overloaded, try again later"))
    assert is_transient(ProviderError("p", "Malformed or empty model output"))
    assert not is_transient(ProviderError("p", "Invalid API key", status=401))


async def test_call_agent_rejects_unusable_content():
    provider = MockProvider("blackbox", default="ok")
    request = ChatRequest(model="m", messages=[], max_tokens=10, timeout_sec=1)
    with pytest.raises(ProviderError, match="Malformed or empty"):
        await call_agent(provider, request)


async def test_call_agent_times_out():
    provider = MockProvider("blackbox", default=HANG)
    request = ChatRequest(model="m", messages=[], max_tokens=10, timeout_sec=0.05)
    with pytest.raises(ProviderError, match="timed out"):
        await call_agent(provider, request)


async def test_run_swarm_one_timeout_no_fallback(fast_mode_config, sink, emitter):
    """3 agents: 2 answer, 1 times out with no fallback model left."""
    agents = (
        AgentDescriptor("alpha", "Alpha", "model-a"),
        AgentDescriptor("beta", "Beta", "model-b"),
        AgentDescriptor("gamma", "Gamma", "model-c"),
    )
    provider = MockProvider("blackbox", {"model-a": GOOD_A, "model-b": GOOD_B, "model-c": HANG})

    result = await run_swarm("warm the cache?", "standard", agents, {"blackbox": provider}, fast_mode_config, "sys", emitter)

    finishes = sink.of_type(AgentFinish)
    assert len(finishes) == 3
    assert sorted(f.status for f in finishes) == ["completed", "completed", "failed"]
    failed = next(f for f in finishes if f.status == "failed")
    assert failed.agent == "gamma"
    assert "timed out" in failed.error
    assert failed.output_snippet == ""

    assert [e.agent_id for e in result.successful] == ["alpha", "beta"]
    assert [e.agent_id for e in result.executions] == ["alpha", "beta", "gamma"]


async def test_run_swarm_walks_fallback_on_transient(fast_mode_config, sink, emitter):
    agents = (AgentDescriptor("alpha", "Alpha", "model-a", ("model-a2",)),)
    provider = MockProvider(
        "blackbox",
        {"model-a": ProviderError("blackbox", "rate limit exceeded", status=429), "model-a2": GOOD_A},
    )

    result = await run_swarm("q", "standard", agents, {"blackbox": provider}, fast_mode_config, "sys", emitter)

    assert provider.models_called == ["model-a", "model-a2"]
    execution = result.executions[0]
    assert execution.ok
    assert execution.model_used == "model-a2"
    assert execution.completion_id == "cmpl-model-a2"
    assert any("replaced (model-a -> model-a2)" in e.message for e in sink.of_type(LogEvent))
    assert len(sink.of_type(AgentStart)) == 1
    assert len(sink.of_type(AgentFinish)) == 1


async def test_run_swarm_fallback_on_short_output(fast_mode_config, emitter):
    agents = (AgentDescriptor("alpha", "Alpha", "model-a", ("model-a2",)),)
    provider = MockProvider("blackbox", {"model-a": "nope", "model-a2": GOOD_A})

    result = await run_swarm("q", "standard", agents, {"blackbox": provider}, fast_mode_config, "sys", emitter)

    assert result.executions[0].model_used == "model-a2"


async def test_run_swarm_non_transient_does_not_fall_back(fast_mode_config, emitter):
    agents = (
        AgentDescriptor("alpha", "Alpha", "model-a", ("model-a2",)),
        AgentDescriptor("beta", "Beta", "model-b"),
    )
    provider = MockProvider(
        "blackbox",
        {"model-a": ProviderError("blackbox", "Invalid request", status=400), "model-b": GOOD_B},
    )

    result = await run_swarm("q", "standard", agents, {"blackbox": provider}, fast_mode_config, "sys", emitter)

    assert "model-a2" not in provider.models_called
    assert not result.executions[0].ok
    assert "Invalid request" in result.executions[0].error


async def test_run_swarm_all_fail_raises(three_agents, fast_mode_config, sink, emitter):
    provider = MockProvider("blackbox", default=ProviderError("blackbox", "Invalid API key", status=401))

    with pytest.raises(SwarmFailureError, match="Swarm failed for all 3 agents"):
        await run_swarm("q", "standard", three_agents, {"blackbox": provider}, fast_mode_config, "sys", emitter)

    assert len(sink.of_type(AgentFinish)) == 3


async def test_run_swarm_redacts_secret_in_error(fast_mode_config, sink, emitter, caplog):
    secret = "sk-abcdef1234567890XYZ"
    agents = (AgentDescriptor("alpha", "Alpha", "model-a"), AgentDescriptor("beta", "Beta", "model-b"))
    provider = MockProvider(
        "blackbox",
        {"model-a": RuntimeError(f"Incorrect API key provided: {secret}"), "model-b": GOOD_B},
    )

    with caplog.at_level(logging.WARNING):
        result = await run_swarm("q", "standard", agents, {"blackbox": provider}, fast_mode_config, "sys", emitter)

    assert secret not in result.executions[0].error
    assert "[REDACTED]" in result.executions[0].error
    for event in sink.events:
        assert secret not in str(event.to_dict())
    assert secret not in caplog.text


async def test_run_swarm_progress_reaches_100(three_agents, fast_mode_config, sink, emitter):
    provider = MockProvider("blackbox", {"model-a": GOOD_A, "model-b": GOOD_B, "model-c": GOOD_C})

    await run_swarm("q", "standard", three_agents, {"blackbox": provider}, fast_mode_config, "sys", emitter)

    percents = [e.percent for e in sink.of_type(StepProgress)]
    # step start (0%) belongs to the pipeline loop
    assert sorted(percents) == [33, 67, 100]


async def test_run_swarm_start_precedes_finish_per_agent(three_agents, fast_mode_config, sink, emitter):
    provider = MockProvider("blackbox", {"model-a": GOOD_A, "model-b": GOOD_B, "model-c": GOOD_C})

    await run_swarm("q", "standard", three_agents, {"blackbox": provider}, fast_mode_config, "sys", emitter)

    for agent in ("alpha", "beta", "gamma"):
        kinds = [type(e) for e in sink.events if getattr(e, "agent", None) == agent]
        assert kinds == [AgentStart, AgentFinish]


async def test_run_swarm_rejects_duplicate_ids(fast_mode_config):
    agents = (AgentDescriptor("alpha", "A", "m1"), AgentDescriptor("alpha", "A2", "m2"))
    with pytest.raises(ConfigurationError, match="Duplicate"):
        await run_swarm("q", "standard", agents, {"blackbox": MockProvider("blackbox")}, fast_mode_config, "sys")


async def test_run_swarm_quality_gate_warns(three_agents, fast_mode_config, caplog):
    provider = MockProvider(
        "blackbox",
        {"model-a": GOOD_A, "model-b": ProviderError("blackbox", "bad", status=400), "model-c": ProviderError("blackbox", "bad", status=400)},
    )
    with caplog.at_level(logging.WARNING):
        await run_swarm("q", "standard", three_agents, {"blackbox": provider}, fast_mode_config, "sys")
    assert "Only 1/3 agents produced usable output" in caplog.text


@pytest.mark.parametrize(
    "exc,expected",
    [
        (ProviderError("blackbox", "API call failed: Connection error."), NETWORK_ERROR),
        (ProviderError("blackbox", "connect ECONNREFUSED 127.0.0.1:443"), NETWORK_ERROR),
        (ProviderError("blackbox", "model not found", status=404), MODEL_NOT_FOUND),
        (ProviderError("blackbox", "forbidden", status=403), UNAUTHORIZED),
        (ProviderError("blackbox", "bad gateway", status=502), SERVER_ERROR),
        (ProviderError("blackbox", "Request timed out after 45s"), TIMEOUT),
    ],
)
def test_classify_error(exc, expected):
    assert classify_error(exc) == expected


def test_status_less_and_network_errors_are_transient():
    assert is_transient(ProviderError("blackbox", "API call failed: Connection error."))
    assert is_transient(ProviderError("blackbox", "Unexpected error: something odd"))
    assert not is_transient(ProviderError("blackbox", "Unprocessable", status=422))


async def test_run_swarm_falls_back_on_connection_error(fast_mode_config, emitter):
    agents = (AgentDescriptor("alpha", "Alpha", "model-a", ("model-a2",)),)
    provider = MockProvider(
        "blackbox",
        {"model-a": ProviderError("blackbox", "API call failed: Connection error."), "model-a2": GOOD_A},
    )

    result = await run_swarm("q", "standard", agents, {"blackbox": provider}, fast_mode_config, "sys", emitter)

    assert provider.models_called == ["model-a", "model-a2"]
    assert result.executions[0].ok


async def test_run_swarm_skips_model_that_returned_404(fast_mode_config, emitter):
    agents = (
        AgentDescriptor("alpha", "Alpha", "model-gone", ("model-a2",)),
        AgentDescriptor("beta", "Beta", "model-b", ("model-gone", "model-b2")),
    )
    provider = MockProvider(
        "blackbox",
        {
            "model-gone": ProviderError("blackbox", "model not found", status=404),
            "model-a2": GOOD_A,
            "model-b": ProviderError("blackbox", "upstream unavailable", status=503),
            "model-b2": GOOD_B,
        },
    )

    result = await run_swarm("q", "standard", agents, {"blackbox": provider}, fast_mode_config, "sys", emitter)

    assert provider.models_called.count("model-gone") == 1
    assert [e.model_used for e in result.executions] == ["model-a2", "model-b2"]
    assert all(e.ok for e in result.executions)


async def test_run_swarm_fails_agent_when_only_cached_404_models_remain(fast_mode_config, emitter):
    agents = (
        AgentDescriptor("alpha", "Alpha", "model-gone", ("model-a2",)),
        AgentDescriptor("beta", "Beta", "model-b", ("model-gone",)),
    )
    provider = MockProvider(
        "blackbox",
        {
            "model-gone": ProviderError("blackbox", "model not found", status=404),
            "model-a2": GOOD_A,
            "model-b": ProviderError("blackbox", "upstream unavailable", status=503),
        },
    )

    result = await run_swarm("q", "standard", agents, {"blackbox": provider}, fast_mode_config, "sys", emitter)

    beta = result.executions[1]
    assert not beta.ok
    assert beta.error_type == MODEL_NOT_FOUND
    assert "cached as unavailable (404)" in beta.error
    assert provider.models_called.count("model-gone") == 1


async def test_run_swarm_failure_lists_error_types(three_agents, fast_mode_config, sink, emitter):
    provider = MockProvider(
        "blackbox",
        {
            "model-a": ProviderError("blackbox", "model not found", status=404),
            "model-a2": ProviderError("blackbox", "model not found", status=404),
            "model-b": HANG,
            "model-c": ProviderError("blackbox", "Invalid API key", status=401),
        },
    )

    with pytest.raises(SwarmFailureError) as exc_info:
        await run_swarm("q", "standard", three_agents, {"blackbox": provider}, fast_mode_config, "sys", emitter)

    message = str(exc_info.value)
    assert "Swarm failed for all 3 agents" in message
    assert "MODEL_NOT_FOUND(1)" in message
    assert "TIMEOUT(1)" in message
    assert "UNAUTHORIZED(1)" in message
    assert any("Errors:" in e.message for e in sink.of_type(LogEvent))
