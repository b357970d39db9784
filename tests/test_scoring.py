"""Tests for consensus/scoring.py."""

import pytest

from consensus.scoring import (
    AGREEMENT_THRESHOLD,
    CandidateFact,
    clamp01,
    confidence_for,
    jaccard,
    reliability_for,
    score_facts,
)
from consensus.text import tokenize_words

REVENUE = "Revenue grew 12% year over year."


def _candidate(text: str, agent: str, model: str = "m") -> CandidateFact:
    return CandidateFact(text=text, words=tuple(tokenize_words(text)), source_agent=agent, source_model=model)


def test_jaccard_symmetric_and_reflexive():
    a = {"cache", "warm", "traffic"}
    b = {"cache", "cold", "traffic", "shift"}
    assert jaccard(a, b) == jaccard(b, a)
    assert jaccard(a, a) == 1.0


def test_jaccard_empty_is_zero():
    assert jaccard(set(), {"x"}) == 0.0
    assert jaccard(set(), set()) == 0.0


def test_clamp01():
    assert clamp01(-0.2) == 0.0
    assert clamp01(1.7) == 1.0
    assert clamp01(0.4) == 0.4


def test_reliability_default_for_unknown_role():
    assert reliability_for("reasoner") == 0.62
    assert reliability_for("deep_hermes") == 0.5


def test_revenue_sentence_agreement():
    facts = score_facts([_candidate(REVENUE, "generalist"), _candidate(REVENUE, "reasoner")])

    assert jaccard(facts[0].tokens, facts[1].tokens) >= AGREEMENT_THRESHOLD
    assert facts[0].agreeing_agents == frozenset({"reasoner"})
    assert facts[1].agreeing_agents == frozenset({"generalist"})
    assert all(f.agreeing_agent_count == 1 for f in facts)

    alone = score_facts([_candidate(REVENUE, "generalist")])[0]
    assert facts[0].confidence > alone.confidence
    assert facts[0].confidence == pytest.approx(0.15 + 0.58 * 0.55 + 0.25 * 0.35)


def test_same_agent_never_agrees_with_itself():
    facts = score_facts([_candidate(REVENUE, "generalist"), _candidate(REVENUE, "generalist")])
    for fact in facts:
        assert fact.source_agent not in fact.agreeing_agents
        assert fact.agreeing_agent_count == 0


def test_agreement_counts_distinct_agents():
    candidates = [
        _candidate(REVENUE, "generalist"),
        _candidate(REVENUE, "reasoner"),
        _candidate(REVENUE + " ", "reasoner"),
        _candidate(REVENUE, "context_king"),
    ]
    assert score_facts(candidates)[0].agreeing_agents == frozenset({"reasoner", "context_king"})


def test_dissimilar_facts_do_not_agree():
    facts = score_facts(
        [
            _candidate("Postgres handles transactional workloads with strong consistency.", "generalist"),
            _candidate("Redis is an in-memory key value store used for caching.", "reasoner"),
        ]
    )
    assert all(f.agreeing_agent_count == 0 for f in facts)


def test_confidence_bounded():
    assert 0.0 <= confidence_for(1.0, 10, 100) <= 1.0
    assert confidence_for(0.0, 0, 0) == pytest.approx(0.15)
