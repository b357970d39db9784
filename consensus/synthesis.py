"""Core synthesis: weight accepted facts by agent specialty and render the draft."""

import logging
from collections.abc import Sequence

from consensus.errors import SynthesisError
from consensus.events import Emitter
from consensus.models import Attack, Conflict, Fact, ScoredFact
from consensus.scoring import clamp01
from consensus.text import normalize_key

logger = logging.getLogger(__name__)

STEP = 5

DRAFT_TITLE = "# Swarm Consensus Output"

CLUSTER_WORDS = 7
MAX_FINDINGS = 22
SUMMARY_FACTS = 8
SUMMARY_MAX_CHARS = 650
MAX_CONFLICTS_SHOWN = 6

DEFAULT_SPECIALTY_WEIGHT = 1.0
SPECIALTY_WEIGHTS: dict[str, float] = {
    "reasoner": 1.15,
    "math_code_wizard": 1.12,
    "context_king": 1.05,
    "generalist": 1.0,
    "efficient_backup": 0.9,
}

NO_SUMMARY = "No summary could be synthesized."
NO_CONFLICTS = "- No direct contradictions detected by heuristic scan."
NO_ATTACKS = "- No adversarial counters generated."


def specialty_weight(agent_id: str) -> float:
    return SPECIALTY_WEIGHTS.get(agent_id, DEFAULT_SPECIALTY_WEIGHT)


def score_facts_for_synthesis(facts: Sequence[Fact]) -> list[ScoredFact]:
    """Weight each fact by its agent's specialty, highest composite score first."""
    scored = []
    for fact in facts:
        weight = specialty_weight(fact.source_agent)
        scored.append(ScoredFact(fact=fact, specialty_weight=weight, composite_score=clamp01(fact.confidence * weight)))
    return sorted(scored, key=lambda s: s.composite_score, reverse=True)


def cluster_key(text: str) -> str:
    return " ".join(normalize_key(text).split()[:CLUSTER_WORDS])


def cluster_facts(scored: Sequence[ScoredFact]) -> list[ScoredFact]:
    """Keep the best-scoring fact per cluster key.

    Running it on its own output returns the same list.
    """
    best: dict[str, ScoredFact] = {}
    for item in scored:
        key = cluster_key(item.fact.text)
        current = best.get(key)
        if current is None or item.composite_score > current.composite_score:
            best[key] = item
    return sorted(best.values(), key=lambda s: s.composite_score, reverse=True)


def summarize_facts(facts: Sequence[ScoredFact], max_chars: int = SUMMARY_MAX_CHARS) -> str:
    lines: list[str] = []
    used = 0
    for item in facts:
        text = item.fact.text.strip()
        if not text:
            continue
        if used + len(text) > max_chars:
            break
        lines.append(text if text.endswith(".") else f"{text}.")
        used += len(text)
    return " ".join(lines)


def _finding_line(item: ScoredFact) -> str:
    fact = item.fact
    return (
        f"- ({fact.source_agent or 'unknown'} | {fact.confidence:.2f} | score {item.composite_score:.2f}) "
        f"{fact.text} [{fact.source_model or 'unknown'}]"
    )


def _conflict_block(conflicts: Sequence[Conflict]) -> str:
    if not conflicts:
        return NO_CONFLICTS
    return "\n".join(
        f"- Topic: {c.topic}\n  - A: {c.a}\n  - B: {c.b}\n  - Tie-breaker: {c.tie_breaker}"
        for c in conflicts[:MAX_CONFLICTS_SHOWN]
    )


def _attack_block(attacks: Sequence[Attack]) -> str:
    if not attacks:
        return NO_ATTACKS
    return "\n".join(
        f"- Attack {i}: {a.counter}\n  - Target: {a.target_fact}\n  - Support score: {a.support_score:.2f}"
        for i, a in enumerate(attacks, start=1)
    )


def render_draft(
    top: Sequence[ScoredFact],
    summary: str,
    conflicts: Sequence[Conflict],
    attacks: Sequence[Attack],
) -> str:
    return "\n".join(
        [
            DRAFT_TITLE,
            "",
            "## Core Answer",
            summary or NO_SUMMARY,
            "",
            "## Weighted Findings",
            *(_finding_line(item) for item in top),
            "",
            "## Conflict Resolution",
            _conflict_block(conflicts),
            "",
            "## Adversarial Critique",
            _attack_block(attacks),
        ]
    )


def synthesize(
    accepted: Sequence[Fact],
    conflicts: Sequence[Conflict] = (),
    attacks: Sequence[Attack] = (),
    emitter: Emitter | None = None,
) -> str:
    """Build the markdown draft from accepted facts, conflicts and critique.

    Args:
        accepted: Facts accepted by the logic stage.
        conflicts: Contradictions the logic stage resolved.
        attacks: Red-team counters from the critique stage.
        emitter: Progress emitter; events are dropped when omitted.

    Returns:
        Markdown draft with core answer, findings, conflicts and critique.

    Raises:
        SynthesisError: If there are no accepted facts.
    """
    emitter = emitter or Emitter()
    if not accepted:
        raise SynthesisError("Synthesis failed: no accepted facts")

    emitter.log(STEP, "Core synthesis engaged. Weighting facts by model specialty.")
    scored = score_facts_for_synthesis(accepted)

    emitter.log(STEP, "Clustering high-score facts to reduce redundancy.")
    top = cluster_facts(scored)[:MAX_FINDINGS]
    summary = summarize_facts(top[:SUMMARY_FACTS])

    logger.info("Synthesis: %d accepted facts merged into %d findings", len(accepted), len(top))
    emitter.log(STEP, "Synthesizing consensus narrative.")
    return render_draft(top, summary, conflicts, attacks)
