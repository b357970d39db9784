"""Tests for consensus/writer.py."""

import json

from config.config_loader import StageModelConfig
from consensus.models import (
    Attack,
    Conflict,
    CritiqueResult,
    Fact,
    GuardFlag,
    GuardResult,
    LogicResult,
    PipelineContext,
    SwarmResult,
)
from consensus.providers.base import ProviderError
from consensus.writer import EMPTY_FALLBACK, build_context_bundle, parse_report, write_report
from tests.conftest import MockProvider, make_execution

STAGE = StageModelConfig(provider="cerebras", model="writer-model", max_tokens=300)


def _context() -> PipelineContext:
    fact = Fact("Rotate keys quarterly.", frozenset({"rotate"}), 3, 0.7, frozenset({"generalist"}), "reasoner", "m")
    return PipelineContext(
        query="How often should we rotate keys?",
        mode="standard",
        swarm=SwarmResult("standard", (make_execution("reasoner", "Rotate keys quarterly."), make_execution("x", "", ok=False))),
        facts=(fact,),
        logic=LogicResult(accepted=(fact,), rejected=(), conflicts=(Conflict("t", "a", "b", "generalist"),)),
        critique=CritiqueResult(attacks=(Attack("Too rigid", "Rotate keys", 0.4),)),
        draft="draft",
        verified="verified draft",
        refined="refined",
        formatted="formatted draft",
        guard=GuardResult(safe_output="guarded draft", flags=(GuardFlag("bias_keywords", ("gender",)),), risk=0.1),
    )


def test_build_context_bundle_is_json_serialisable():
    bundle = build_context_bundle(_context())
    json.dumps(bundle)
    assert bundle["userQuery"] == "How often should we rotate keys?"
    assert [r["agent"] for r in bundle["swarmResults"]] == ["reasoner"]
    assert bundle["keyFacts"][0]["agreeingAgents"] == ["generalist"]
    assert bundle["logicConflicts"][0]["tieBreaker"] == "generalist"
    assert bundle["critiqueAttacks"][0]["supportScore"] == 0.4
    assert bundle["guardFlags"][0] == {"type": "bias_keywords", "hits": ["gender"], "score": None}
    assert bundle["formattedDraft"] == "guarded draft"


def test_parse_report():
    assert parse_report('{"report": "# Title"}') == "# Title"
    assert parse_report("plain markdown report") == "plain markdown report"
    assert parse_report('{"other": 1}') == '{"other": 1}'


async def test_write_report_uses_writer_json():
    provider = MockProvider("cerebras", {"writer-model": json.dumps({"report": "# Final\n\nRotate keys quarterly."})})

    report = await write_report(_context(), provider, STAGE, "sys", 1.0)

    request = provider.complete.call_args.args[0]
    assert request.json_mode is True
    assert request.messages[1]["content"].startswith("Context Data:\n")
    assert report.answer == "# Final\n\nRotate keys quarterly."
    assert report.model == "writer-model"
    assert report.fallback is False


async def test_write_report_redacts_answer():
    provider = MockProvider("cerebras", {"writer-model": json.dumps({"report": "Set BLACKBOX_API_KEY=bb_live_abcdefghijklmnop now"})})
    report = await write_report(_context(), provider, STAGE, "sys", 1.0)
    assert "bb_live_abcdefghijklmnop" not in report.answer
    assert "BLACKBOX_API_KEY=[REDACTED]" in report.answer


async def test_write_report_falls_back_to_guarded_draft():
    provider = MockProvider("cerebras", default=ProviderError("cerebras", "overloaded", status=503))
    report = await write_report(_context(), provider, STAGE, "sys", 1.0)
    assert report.answer == "guarded draft"
    assert report.fallback is True
    assert report.model is None


async def test_write_report_fallback_without_drafts():
    provider = MockProvider("cerebras", default=ProviderError("cerebras", "down", status=500))
    report = await write_report(PipelineContext(query="q", mode="standard"), provider, STAGE, "sys", 1.0)
    assert report.answer == EMPTY_FALLBACK
