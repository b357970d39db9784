"""Topic clustering and contradiction resolution over extracted facts."""

import logging
import re
from collections.abc import Sequence

from consensus.errors import StageError
from consensus.events import Emitter
from consensus.models import Conflict, Fact, LogicResult, RejectedFact
from consensus.text import normalize_key

logger = logging.getLogger(__name__)

STEP = 3

TOPIC_WORDS = 10
MAX_ACCEPTED = 60
TIE_BREAKER_AGENT = "generalist"

REASON_HEDGED = "low_confidence_language"
REASON_REDUNDANT = "redundant_same_topic"
REASON_CONFLICT = "conflict_rejected"

_HEDGE = re.compile(r"\b(maybe|might|could|possibly|i think|i believe|seems|often|usually)\b", re.IGNORECASE)
_NEGATION = re.compile(r"\b(no|not|never|cannot|can t|won t|without)\b")


def has_hedging(text: str) -> bool:
    return bool(_HEDGE.search(text or ""))


def is_negated(text: str) -> bool:
    # matched against normalize_key output, where "can't" becomes "can t"
    return bool(_NEGATION.search(normalize_key(text)))


def topic_key(text: str) -> str:
    return " ".join(normalize_key(text).split(" ")[:TOPIC_WORDS])


def is_conflict(a: str, b: str) -> bool:
    """Same topic, opposite polarity."""
    if not a or not b or topic_key(a) != topic_key(b):
        return False
    return is_negated(a) != is_negated(b)


def pick_winner(items: Sequence[Fact]) -> Fact:
    for item in items:
        if item.source_agent == TIE_BREAKER_AGENT:
            return item
    return max(items, key=lambda f: f.confidence)


def resolve(facts: Sequence[Fact], emitter: Emitter | None = None) -> LogicResult:
    """Accept one fact per topic and record every rejection with its reason.

    Raises:
        StageError: If there are no facts or every fact was rejected.
    """
    emitter = emitter or Emitter()
    if not facts:
        raise StageError("Logic stage failed: missing facts")

    emitter.log(STEP, "Conflict resolution engaged. Building topic clusters.")

    clusters: dict[str, list[Fact]] = {}
    for fact in facts:
        key = topic_key(fact.text)
        if key:
            clusters.setdefault(key, []).append(fact)

    emitter.log(STEP, f"Clustered into {len(clusters)} topics. Scanning for contradictions.")

    accepted: list[Fact] = []
    rejected: list[RejectedFact] = []
    conflicts: list[Conflict] = []
    seen: set[str] = set()

    def accept(fact: Fact) -> None:
        key = normalize_key(fact.text)
        if key not in seen:
            seen.add(key)
            accepted.append(fact)

    for topic, items in clusters.items():
        ranked = sorted(items, key=lambda f: f.confidence, reverse=True)
        usable = [f for f in ranked if not has_hedging(f.text)]
        if not usable:
            rejected.extend(RejectedFact(f, REASON_HEDGED) for f in ranked)
            continue

        topic_conflicts = [
            Conflict(topic=topic, a=a.text, b=b.text, tie_breaker=TIE_BREAKER_AGENT)
            for i, a in enumerate(usable)
            for b in usable[i + 1 :]
            if is_conflict(a.text, b.text)
        ]

        if not topic_conflicts:
            accept(usable[0])
            rejected.extend(RejectedFact(f, REASON_REDUNDANT) for f in usable[1:])
            continue

        conflicts.extend(topic_conflicts)
        winner = pick_winner(usable)
        accept(winner)
        rejected.extend(
            RejectedFact(f, REASON_CONFLICT, conflicts_with=winner.text) for f in usable if f is not winner
        )

    final = sorted(accepted, key=lambda f: f.confidence, reverse=True)[:MAX_ACCEPTED]
    if not final:
        raise StageError("Logic stage failed: all facts rejected")

    logger.info("Logic: %d accepted, %d rejected, %d conflicts", len(final), len(rejected), len(conflicts))
    emitter.log(STEP, f"Accepted {len(final)} facts. Conflicts resolved: {len(conflicts)}.")
    return LogicResult(accepted=tuple(final), rejected=tuple(rejected), conflicts=tuple(conflicts))
