"""Cross-agent agreement scoring.

Every candidate fact is compared with every fact from a *different* agent.
Two facts agree when the Jaccard index of their token sets reaches
``AGREEMENT_THRESHOLD``. Confidence blends three signals:

    confidence = clamp01(0.15 + reliability * 0.55
                         + agreement * 0.35 + length * 0.10)

where ``reliability`` is a fixed prior per agent role, ``agreement`` saturates
at four independent corroborators, and ``length`` is a mild bonus for claims
with more than six content words.

The pass is O(n^2) over all facts in a run. Per-run fact counts are bounded by
roster size times segments per reply, so this stays small.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from consensus.models import Fact

AGREEMENT_THRESHOLD = 0.72
AGREEMENT_SATURATION = 4

DEFAULT_RELIABILITY = 0.5
RELIABILITY: dict[str, float] = {
    "reasoner": 0.62,
    "math_code_wizard": 0.60,
    "generalist": 0.58,
    "context_king": 0.56,
    "efficient_backup": 0.52,
}


@dataclass(frozen=True)
class CandidateFact:
    """A segment before scoring: text, its words and where it came from."""

    text: str
    words: tuple[str, ...]
    source_agent: str
    source_model: str

    @property
    def tokens(self) -> frozenset[str]:
        return frozenset(self.words)


def clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


def reliability_for(agent_id: str) -> float:
    return RELIABILITY.get(agent_id, DEFAULT_RELIABILITY)


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    """Intersection over union of two token collections; 0 if either is empty."""
    sa, sb = set(a), set(b)
    if not sa or not sb:
        return 0.0
    inter = len(sa & sb)
    union = len(sa) + len(sb) - inter
    return inter / union if union else 0.0


def confidence_for(reliability: float, agreeing_agents: int, token_count: int) -> float:
    agreement = clamp01(agreeing_agents / AGREEMENT_SATURATION)
    length = clamp01((token_count - 6) / 18)
    return clamp01(0.15 + reliability * 0.55 + agreement * 0.35 + length * 0.10)


def score_facts(candidates: Sequence[CandidateFact]) -> list[Fact]:
    """Score every candidate against all candidates from other agents.

    Returns facts in input order; callers sort as needed.
    """
    token_sets = [c.tokens for c in candidates]
    facts: list[Fact] = []

    for i, a in enumerate(candidates):
        agreeing: set[str] = set()
        for j, b in enumerate(candidates):
            if i == j or not b.source_agent or b.source_agent == a.source_agent:
                continue
            if b.source_agent in agreeing:
                continue
            if jaccard(token_sets[i], token_sets[j]) >= AGREEMENT_THRESHOLD:
                agreeing.add(b.source_agent)

        facts.append(
            Fact(
                text=a.text,
                tokens=token_sets[i],
                token_count=len(a.words),
                confidence=confidence_for(reliability_for(a.source_agent), len(agreeing), len(a.words)),
                agreeing_agents=frozenset(agreeing),
                source_agent=a.source_agent,
                source_model=a.source_model,
            )
        )

    return facts
